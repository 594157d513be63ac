"""Quiz and question-bucket persistence."""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from quizproctor.core.errors import DuplicateId, MalformedStoredData, NotFound, QuizProtected
from quizproctor.models.domain import Difficulty, ProctoringConfig, Question, RandomizationConfig
from quizproctor.models.orm import BucketQuestion, Quiz, QuestionBucket, QuizBucketMapping, QuizParticipant
from quizproctor.store.codec import from_json, retry_once, to_json

logger = logging.getLogger(__name__)

QUIZ_FIELDS = ("name", "description", "points_per_question")

# a delivered entry is either a valid Question or a stored object that failed validation
DeliveryEntry = Union[Question, Dict[str, Any]]


@dataclass
class RepairOutcome:
    quiz_id: str
    repaired: bool
    question_count: int
    dropped: int = 0


@dataclass
class QuizHealth:
    quiz_id: str
    name: str
    status: str = "ok"
    issues: List[str] = field(default_factory=list)


def decode_question_entries(raw: List[Any]) -> Tuple[List[DeliveryEntry], List[int]]:
    """Validate stored entries one by one.

    Malformed objects are kept as stored; anything that is not an object is
    dropped. Returns the entries and the indexes of every damaged one.
    """
    entries: List[DeliveryEntry] = []
    damaged: List[int] = []
    for i, item in enumerate(raw):
        try:
            entries.append(Question.model_validate(item))
        except PydanticValidationError:
            damaged.append(i)
            if isinstance(item, dict):
                entries.append(item)
    return entries, damaged


class QuizStore:
    """SQLAlchemy-backed store for quizzes, buckets and bucket questions.

    Quiz questions are inlined in the quiz row as a JSON list in the canonical
    ``question``/``options``/``correct`` shape. Bucket questions are rows of
    their own; every change to them recomputes the bucket's counts in the
    same transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    # ---------- quizzes ----------

    def find_quiz(self, quiz_id: str, for_update: bool = False) -> Optional[Quiz]:
        stmt = select(Quiz).where(Quiz.id == quiz_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.scalar(stmt)

    def get_quiz(self, quiz_id: str, for_update: bool = False) -> Quiz:
        quiz = self.find_quiz(quiz_id, for_update)
        if quiz is None:
            raise NotFound(f"Quiz {quiz_id} not found")
        return quiz

    def list_quizzes(self) -> List[Quiz]:
        return list(self.db.scalars(select(Quiz).order_by(Quiz.created_at.desc())).all())

    def count_quizzes(self) -> int:
        return self.db.scalar(select(func.count()).select_from(Quiz)) or 0

    def create_quiz(self, quiz_id: str, name: str, questions: List[Question], description: str = "",
                    points_per_question: int = 1, is_custom: bool = True,
                    randomization: Optional[RandomizationConfig] = None,
                    proctoring: Optional[ProctoringConfig] = None, commit: bool = True) -> Quiz:
        if self.find_quiz(quiz_id) is not None:
            raise DuplicateId(f"Quiz with id {quiz_id} already exists")
        quiz = Quiz(
            id=quiz_id, name=name, description=description or "", is_custom=is_custom,
            points_per_question=points_per_question,
            questions=to_json([q.to_stored() for q in questions]),
            randomization_settings=to_json(randomization.model_dump()) if randomization else None,
            proctoring_settings=to_json(proctoring.model_dump(mode="json")) if proctoring else None,
        )
        self.db.add(quiz)
        try:
            self.db.flush()
        except IntegrityError as e:
            self.db.rollback()
            raise DuplicateId(f"Quiz with id {quiz_id} already exists") from e
        if commit:
            self.db.commit()
        return quiz

    def update_quiz(self, quiz_id: str, patch: Dict[str, Any]) -> Quiz:
        quiz = self.get_quiz(quiz_id, for_update=True)
        for attr in QUIZ_FIELDS:
            if patch.get(attr) is not None:
                setattr(quiz, attr, patch[attr])
        if patch.get("questions") is not None:
            quiz.questions = to_json([q.to_stored() for q in patch["questions"]])
        if "randomization" in patch:
            cfg = patch["randomization"]
            quiz.randomization_settings = to_json(cfg.model_dump()) if cfg else None
        if "proctoring" in patch:
            cfg = patch["proctoring"]
            quiz.proctoring_settings = to_json(cfg.model_dump(mode="json")) if cfg else None
        self.db.commit()
        return quiz

    def delete_quiz(self, quiz_id: str) -> None:
        quiz = self.get_quiz(quiz_id)
        if not quiz.is_custom:
            raise QuizProtected(f"Quiz {quiz_id} is a default quiz and cannot be deleted")
        self.db.delete(quiz)
        self.db.commit()
        logger.info(f"Quiz deleted: {quiz_id}")

    def delete_all_quizzes(self) -> int:
        """Remove every custom quiz; default quizzes stay protected."""
        custom = select(Quiz.id).where(Quiz.is_custom.is_(True))
        for child in (QuizBucketMapping, QuizParticipant):
            self.db.execute(delete(child).where(child.quiz_id.in_(custom)).execution_options(synchronize_session=False))
        result = self.db.execute(delete(Quiz).where(Quiz.is_custom.is_(True)).execution_options(synchronize_session=False))
        self.db.commit()
        logger.info(f"Deleted {result.rowcount} custom quizzes")
        return result.rowcount

    def _raw_questions(self, quiz: Quiz) -> List[Any]:
        try:
            raw = from_json(quiz.questions)
        except ValueError as e:
            raise MalformedStoredData(f"Quiz {quiz.id} has unreadable questions: {e}") from e
        if not isinstance(raw, list):
            raise MalformedStoredData(f"Quiz {quiz.id} questions payload is {type(raw).__name__}, not a list")
        return raw

    def load_questions(self, quiz: Quiz) -> List[Question]:
        raw = self._raw_questions(quiz)
        try:
            return [Question.model_validate(q) for q in raw]
        except PydanticValidationError as e:
            raise MalformedStoredData(f"Quiz {quiz.id} has invalid questions: {e.error_count()} errors") from e

    def load_questions_for_delivery(self, quiz: Quiz) -> Tuple[List[DeliveryEntry], List[int]]:
        """Per-question decode for read paths; see ``decode_question_entries``.

        Raises MalformedStoredData only when the payload as a whole is unreadable.
        """
        return decode_question_entries(self._raw_questions(quiz))

    def repair_quiz(self, quiz_id: str) -> RepairOutcome:
        """Rewrite a quiz's questions keeping only the entries that validate.

        An unreadable payload becomes an empty list. Nothing is written when
        the stored questions are already clean.
        """
        quiz = self.get_quiz(quiz_id, for_update=True)
        try:
            raw = self._raw_questions(quiz)
        except MalformedStoredData as e:
            logger.warning(f"Repairing quiz {quiz_id}: {e.message}")
            self.save_questions(quiz, [])
            return RepairOutcome(quiz_id=quiz_id, repaired=True, question_count=0)
        entries, damaged = decode_question_entries(raw)
        if not damaged:
            self.db.rollback()
            return RepairOutcome(quiz_id=quiz_id, repaired=False, question_count=len(entries))
        kept = [q for q in entries if isinstance(q, Question)]
        self.save_questions(quiz, kept)
        logger.warning(f"Repaired quiz {quiz_id}: dropped invalid questions at {damaged}")
        return RepairOutcome(quiz_id=quiz_id, repaired=True, question_count=len(kept), dropped=len(damaged))

    def repair_all_quizzes(self) -> List[RepairOutcome]:
        quiz_ids = list(self.db.scalars(select(Quiz.id).order_by(Quiz.id)).all())
        return [self.repair_quiz(quiz_id) for quiz_id in quiz_ids]

    def inspect_quiz(self, quiz: Quiz) -> QuizHealth:
        health = QuizHealth(quiz_id=quiz.id, name=quiz.name)
        try:
            raw = self._raw_questions(quiz)
        except MalformedStoredData as e:
            health.status = "error"
            health.issues.append(e.message)
            return health
        _, damaged = decode_question_entries(raw)
        if damaged:
            health.status = "error"
            health.issues.append(f"Invalid questions at positions {damaged}")
        elif not raw:
            health.status = "warning"
            health.issues.append("Empty questions array")
        return health

    def load_randomization(self, quiz: Quiz) -> Optional[RandomizationConfig]:
        raw = from_json(quiz.randomization_settings, None)
        if not isinstance(raw, dict):
            return None
        try:
            return RandomizationConfig.model_validate(raw)
        except PydanticValidationError:
            logger.warning(f"Quiz {quiz.id} has invalid randomization settings, using defaults")
            return None

    def load_proctoring(self, quiz: Quiz) -> ProctoringConfig:
        raw = from_json(quiz.proctoring_settings, None)
        if not isinstance(raw, dict):
            return ProctoringConfig()
        try:
            return ProctoringConfig.model_validate(raw)
        except PydanticValidationError:
            logger.warning(f"Quiz {quiz.id} has invalid proctoring settings, using defaults")
            return ProctoringConfig()

    def save_questions(self, quiz: Quiz, questions: List[Question]) -> None:
        quiz.questions = to_json([q.to_stored() for q in questions])
        self.db.commit()

    def append_questions(self, quiz_id: str, questions: List[Question]) -> int:
        quiz = self.get_quiz(quiz_id, for_update=True)
        current = self.load_questions(quiz)
        current.extend(questions)
        self.save_questions(quiz, current)
        return len(current)

    def replace_question(self, quiz_id: str, index: int, question: Question) -> None:
        quiz = self.get_quiz(quiz_id, for_update=True)
        current = self.load_questions(quiz)
        if not 0 <= index < len(current):
            raise NotFound(f"Question index {index} out of range for quiz {quiz_id}")
        current[index] = question
        self.save_questions(quiz, current)

    def remove_question(self, quiz_id: str, index: int) -> int:
        quiz = self.get_quiz(quiz_id, for_update=True)
        current = self.load_questions(quiz)
        if not 0 <= index < len(current):
            raise NotFound(f"Question index {index} out of range for quiz {quiz_id}")
        del current[index]
        self.save_questions(quiz, current)
        return len(current)

    # ---------- buckets ----------

    def get_bucket(self, bucket_id: int, active_only: bool = True) -> QuestionBucket:
        stmt = select(QuestionBucket).where(QuestionBucket.id == bucket_id)
        if active_only:
            stmt = stmt.where(QuestionBucket.is_active.is_(True))
        bucket = self.db.scalar(stmt)
        if bucket is None:
            raise NotFound(f"Bucket {bucket_id} not found")
        return bucket

    def list_buckets(self) -> List[QuestionBucket]:
        stmt = select(QuestionBucket).where(QuestionBucket.is_active.is_(True)).order_by(QuestionBucket.subject, QuestionBucket.name)
        return list(self.db.scalars(stmt).all())

    def create_bucket(self, name: str, subject: str, description: str = "") -> QuestionBucket:
        bucket = QuestionBucket(name=name, subject=subject, description=description or "")
        self.db.add(bucket)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise DuplicateId(f"Bucket {name!r} already exists in subject {subject!r}") from e
        return bucket

    def update_bucket(self, bucket_id: int, name: str, subject: str, description: str = "", is_active: bool = True) -> QuestionBucket:
        bucket = self.get_bucket(bucket_id, active_only=False)
        bucket.name, bucket.subject, bucket.description, bucket.is_active = name, subject, description or "", is_active
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise DuplicateId(f"Bucket {name!r} already exists in subject {subject!r}") from e
        return bucket

    def list_bucket_questions(self, bucket_id: int, difficulty: Optional[Difficulty] = None, active_only: bool = True) -> List[BucketQuestion]:
        stmt = select(BucketQuestion).where(BucketQuestion.bucket_id == bucket_id)
        if difficulty is not None:
            stmt = stmt.where(BucketQuestion.difficulty == Difficulty(difficulty).value)
        if active_only:
            stmt = stmt.where(BucketQuestion.is_active.is_(True))
        return list(self.db.scalars(stmt.order_by(BucketQuestion.difficulty, BucketQuestion.id)).all())

    def get_bucket_question(self, question_id: int) -> BucketQuestion:
        row = self.db.get(BucketQuestion, question_id)
        if row is None:
            raise NotFound(f"Question {question_id} not found")
        return row

    @retry_once
    def add_bucket_question(self, bucket_id: int, question: Question) -> BucketQuestion:
        self.get_bucket(bucket_id)
        row = BucketQuestion(bucket_id=bucket_id)
        _fill_bucket_row(row, question)
        self.db.add(row)
        self.db.flush()
        self._recompute(bucket_id)
        self.db.commit()
        return row

    @retry_once
    def update_bucket_question(self, question_id: int, question: Question, is_active: bool = True) -> BucketQuestion:
        row = self.get_bucket_question(question_id)
        _fill_bucket_row(row, question)
        row.is_active = is_active
        self.db.flush()
        self._recompute(row.bucket_id)
        self.db.commit()
        return row

    @retry_once
    def delete_bucket_question(self, question_id: int) -> None:
        row = self.get_bucket_question(question_id)
        bucket_id = row.bucket_id
        self.db.delete(row)
        self.db.flush()
        self._recompute(bucket_id)
        self.db.commit()

    @retry_once
    def recompute_bucket_counts(self, bucket_id: int) -> QuestionBucket:
        bucket = self._recompute(bucket_id)
        self.db.commit()
        return bucket

    def _recompute(self, bucket_id: int) -> QuestionBucket:
        # the bucket row lock serializes concurrent recomputes of one bucket
        bucket = self.db.scalar(select(QuestionBucket).where(QuestionBucket.id == bucket_id).with_for_update())
        if bucket is None:
            raise NotFound(f"Bucket {bucket_id} not found")
        rows = self.db.execute(
            select(BucketQuestion.difficulty, func.count())
            .where(BucketQuestion.bucket_id == bucket_id, BucketQuestion.is_active.is_(True))
            .group_by(BucketQuestion.difficulty)
        ).all()
        counts = {d.value: 0 for d in Difficulty}
        for difficulty, n in rows:
            if difficulty in counts:
                counts[difficulty] = n
        bucket.easy_count = counts["easy"]
        bucket.medium_count = counts["medium"]
        bucket.hard_count = counts["hard"]
        bucket.total_questions = sum(counts.values())
        return bucket

    def create_bucket_mapping(self, quiz_id: str, bucket_id: int, easy: int, medium: int, hard: int, commit: bool = True) -> QuizBucketMapping:
        mapping = QuizBucketMapping(quiz_id=quiz_id, bucket_id=bucket_id, easy_count=easy, medium_count=medium,
                                    hard_count=hard, total_questions=easy + medium + hard)
        self.db.add(mapping)
        if commit:
            self.db.commit()
        return mapping

    def get_bucket_mappings(self, quiz_id: str) -> List[QuizBucketMapping]:
        return list(self.db.scalars(select(QuizBucketMapping).where(QuizBucketMapping.quiz_id == quiz_id)).all())


def _fill_bucket_row(row: BucketQuestion, question: Question) -> None:
    row.question_text = question.text
    row.options = to_json(question.options)
    row.correct_answer = question.correct_index
    row.difficulty = question.difficulty.value
    row.points = question.points
    row.explanation = question.explanation
    row.tags = to_json(question.tags) if question.tags else None
