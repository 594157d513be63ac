"""Turns stored quizzes and bucket pools into deliverable question sets."""
import hashlib
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from quizproctor.core.database import unit_of_work
from quizproctor.core.errors import InsufficientQuestions, MalformedStoredData, ValidationError
from quizproctor.models.domain import (
    Difficulty, ProctoringConfig, Question, RandomizationConfig, RandomizationOverride,
)
from quizproctor.models.orm import BucketQuestion, Quiz
from quizproctor.services.randomizer import randomize_quiz
from quizproctor.store.codec import from_json, to_json
from quizproctor.store.quiz_store import DeliveryEntry, QuizStore, decode_question_entries

logger = logging.getLogger(__name__)


@dataclass
class DeliveredQuiz:
    quiz_id: str
    name: str
    description: str
    points_per_question: int
    is_custom: bool
    questions: List[DeliveryEntry]
    effective_config: RandomizationConfig
    proctoring_settings: ProctoringConfig
    has_error: bool = False

    @property
    def final_question_count(self) -> int:
        return len(self.questions)


@dataclass
class CatalogueEntry:
    quiz_id: str
    name: str
    description: str
    points_per_question: int
    is_custom: bool
    question_count: int
    created_at: datetime
    updated_at: datetime
    has_error: bool = False
    error_message: Optional[str] = None


@dataclass
class ComposedQuiz:
    quiz_id: str
    bucket_id: int
    selected: Dict[str, int] = field(default_factory=dict)

    @property
    def total_questions(self) -> int:
        return sum(self.selected.values())


def resolve_config(stored: Optional[RandomizationConfig], override: Optional[RandomizationOverride]) -> RandomizationConfig:
    """Per-request override fields win one by one; unset ones fall back to the stored config."""
    base = stored or RandomizationConfig()
    if override is None:
        return base.model_copy()
    return RandomizationConfig(
        randomize_questions=base.randomize_questions if override.randomize_questions is None else override.randomize_questions,
        randomize_options=base.randomize_options if override.randomize_options is None else override.randomize_options,
        question_limit=base.question_limit if override.question_limit is None else override.question_limit,
    )


def bucket_question_to_quiz_question(row: BucketQuestion) -> Question:
    """Map a bucket row (``question_text``/``correct_answer``) to the quiz shape (``question``/``correct``)."""
    options = from_json(row.options, None)
    if not isinstance(options, list):
        raise MalformedStoredData(f"Bucket question {row.id} has unreadable options")
    tags = from_json(row.tags, [])
    try:
        return Question.model_validate({
            "question": row.question_text,
            "options": options,
            "correct": row.correct_answer,
            "difficulty": row.difficulty,
            "points": row.points or 1,
            "explanation": row.explanation or "",
            "tags": tags if isinstance(tags, list) else [],
        })
    except PydanticValidationError as e:
        raise MalformedStoredData(f"Bucket question {row.id} is invalid: {e.error_count()} errors") from e


class QuizAssemblyService:
    def __init__(self, store: QuizStore, variant_cache=None, rng: Optional[random.Random] = None):
        self.store = store
        self.variant_cache = variant_cache
        self.rng = rng

    def get_deliverable_quiz(self, quiz_id: str, override: Optional[RandomizationOverride] = None,
                             session_id: Optional[str] = None) -> DeliveredQuiz:
        quiz = self.store.get_quiz(quiz_id)
        config = resolve_config(self.store.load_randomization(quiz), override)
        delivered = DeliveredQuiz(
            quiz_id=quiz.id, name=quiz.name, description=quiz.description or "",
            points_per_question=quiz.points_per_question or 1, is_custom=quiz.is_custom,
            questions=[], effective_config=config, proctoring_settings=self.store.load_proctoring(quiz),
        )
        try:
            questions, damaged = self.store.load_questions_for_delivery(quiz)
        except MalformedStoredData as e:
            logger.warning(f"Delivering quiz {quiz_id} without questions: {e.message}")
            delivered.has_error = True
            delivered.effective_config = RandomizationConfig()
            return delivered
        if damaged:
            logger.warning(f"Quiz {quiz_id} has invalid questions at {damaged}; delivering them unshuffled")
            delivered.has_error = True

        if not config.is_active:
            delivered.questions = questions
            return delivered

        key = _variant_key(quiz, session_id, config) if session_id and self.variant_cache is not None else None
        if key is not None:
            cached = self._cached_variant(key)
            if cached is not None:
                delivered.questions = cached
                return delivered

        delivered.questions = randomize_quiz(
            questions, config.randomize_questions, config.randomize_options, config.question_limit, rng=self.rng,
        )
        logger.debug(f"Quiz {quiz_id} randomized: {len(questions)} -> {len(delivered.questions)} questions")
        if key is not None:
            self.variant_cache.set(key, [
                q.model_dump(by_alias=True, mode="json") if isinstance(q, Question) else q
                for q in delivered.questions
            ])
        return delivered

    def _cached_variant(self, key: str) -> Optional[List[DeliveryEntry]]:
        payload = self.variant_cache.get(key)
        if not isinstance(payload, list):
            return None
        questions, _ = decode_question_entries(payload)
        return questions

    def compose_from_bucket(self, quiz_id: str, name: str, bucket_id: int, easy: int = 0, medium: int = 0, hard: int = 0,
                            description: str = "", points_per_question: int = 1,
                            randomization: Optional[RandomizationConfig] = None,
                            proctoring: Optional[ProctoringConfig] = None) -> ComposedQuiz:
        """Snapshot a random selection of bucket questions into a new custom quiz.

        Each tier is sampled uniformly without replacement from the bucket's
        active questions of that difficulty. Nothing is written unless every
        tier can be satisfied.
        """
        if easy + medium + hard <= 0:
            raise ValidationError("At least one question must be requested")
        self.store.get_bucket(bucket_id)
        rng = self.rng or random.Random()
        quotas = {Difficulty.EASY: easy, Difficulty.MEDIUM: medium, Difficulty.HARD: hard}
        selected: List[Question] = []
        for tier, wanted in quotas.items():
            if wanted <= 0:
                continue
            pool = self.store.list_bucket_questions(bucket_id, difficulty=tier, active_only=True)
            if len(pool) < wanted:
                raise InsufficientQuestions(tier.value, wanted, len(pool))
            selected.extend(bucket_question_to_quiz_question(row) for row in rng.sample(pool, wanted))

        with unit_of_work(self.store.db):
            self.store.create_quiz(
                quiz_id=quiz_id, name=name, description=description, questions=selected,
                points_per_question=points_per_question, is_custom=True,
                randomization=randomization, proctoring=proctoring, commit=False,
            )
            self.store.create_bucket_mapping(quiz_id, bucket_id, easy, medium, hard, commit=False)
        logger.info(f"Quiz {quiz_id} composed from bucket {bucket_id}: {easy} easy, {medium} medium, {hard} hard")
        return ComposedQuiz(quiz_id=quiz_id, bucket_id=bucket_id,
                            selected={t.value: max(n, 0) for t, n in quotas.items()})

    def list_catalogue(self) -> List[CatalogueEntry]:
        entries = []
        for quiz in self.store.list_quizzes():
            entry = _catalogue_entry(quiz)
            try:
                questions, damaged = self.store.load_questions_for_delivery(quiz)
            except MalformedStoredData as e:
                logger.warning(f"Listing quiz {quiz.id} as damaged: {e.message}")
                entry.has_error = True
                entry.error_message = e.message
            else:
                entry.question_count = len(questions)
                if damaged:
                    entry.has_error = True
                    entry.error_message = f"Quiz {quiz.id} has invalid questions at positions {damaged}"
            entries.append(entry)
        return entries


def _catalogue_entry(quiz: Quiz) -> CatalogueEntry:
    return CatalogueEntry(
        quiz_id=quiz.id, name=quiz.name, description=quiz.description or "",
        points_per_question=quiz.points_per_question or 1, is_custom=quiz.is_custom,
        question_count=0, created_at=quiz.created_at, updated_at=quiz.updated_at,
    )


def _variant_key(quiz: Quiz, session_id: str, config: RandomizationConfig) -> str:
    # a question edit or a different effective config starts a fresh variant
    fingerprint = hashlib.md5(f"{quiz.questions}|{to_json(config.model_dump())}".encode()).hexdigest()
    return f"{quiz.id}:{session_id}:{fingerprint}"


def summarize(delivered: DeliveredQuiz) -> Dict[str, Any]:
    return {
        "questions": delivered.effective_config.randomize_questions,
        "options": delivered.effective_config.randomize_options,
        "question_limit": delivered.effective_config.question_limit,
        "final_question_count": delivered.final_question_count,
    }
