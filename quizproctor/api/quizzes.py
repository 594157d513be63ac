from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, constr
from typing import Any, Dict, List, Optional, Union
from datetime import datetime
from sqlalchemy.orm import Session
from quizproctor.core.cache import variant_cache
from quizproctor.core.database import get_db
from quizproctor.core.auth import require_admin
from quizproctor.models.domain import ProctoringConfig, Question, RandomizationConfig, RandomizationOverride
from quizproctor.services.assembly import QuizAssemblyService, summarize
from quizproctor.store.quiz_store import QuizStore

router = APIRouter()

def get_assembly(db: Session = Depends(get_db)) -> QuizAssemblyService:
    return QuizAssemblyService(QuizStore(db), variant_cache=variant_cache)

class CatalogueRow(BaseModel):
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

class RandomizationApplied(BaseModel):
    questions: bool
    options: bool
    question_limit: Optional[int] = None
    final_question_count: int

class DeliveredQuizOut(BaseModel):
    quiz_id: str
    name: str
    description: str
    questions: List[Union[Question, Dict[str, Any]]]
    points_per_question: int
    is_custom: bool
    randomization_applied: RandomizationApplied
    proctoring_settings: ProctoringConfig
    has_error: bool = False

class QuizCreate(BaseModel):
    id: constr(min_length=1, max_length=50, pattern=r"^[A-Za-z0-9_\-]+$")
    name: constr(min_length=1, max_length=255)
    description: str = ""
    questions: List[Question] = Field(min_length=1)
    points_per_question: int = Field(default=1, ge=1)
    randomization_settings: Optional[RandomizationConfig] = None
    proctoring_settings: Optional[ProctoringConfig] = None

class QuizUpdate(BaseModel):
    name: Optional[constr(min_length=1, max_length=255)] = None
    description: Optional[str] = None
    questions: Optional[List[Question]] = None
    points_per_question: Optional[int] = Field(default=None, ge=1)
    randomization_settings: Optional[RandomizationConfig] = None
    proctoring_settings: Optional[ProctoringConfig] = None

class QuestionsAdd(BaseModel):
    questions: List[Question] = Field(min_length=1)

class QuizChanged(BaseModel):
    quiz_id: str
    message: str
    total_questions: Optional[int] = None

@router.get("", response_model=List[CatalogueRow])
def list_quizzes(svc: QuizAssemblyService = Depends(get_assembly)):
    return [CatalogueRow(**vars(entry)) for entry in svc.list_catalogue()]

@router.get("/{quiz_id}", response_model=DeliveredQuizOut)
def deliver_quiz(quiz_id: str,
                 randomize_questions: Optional[bool] = None,
                 randomize_options: Optional[bool] = None,
                 question_limit: Optional[int] = Query(None),
                 session_id: Optional[str] = Query(None, max_length=100),
                 svc: QuizAssemblyService = Depends(get_assembly)):
    override = RandomizationOverride(randomize_questions=randomize_questions, randomize_options=randomize_options,
                                     question_limit=question_limit)
    d = svc.get_deliverable_quiz(quiz_id, override, session_id=session_id)
    return DeliveredQuizOut(
        quiz_id=d.quiz_id, name=d.name, description=d.description, questions=d.questions,
        points_per_question=d.points_per_question, is_custom=d.is_custom,
        randomization_applied=RandomizationApplied(**summarize(d)),
        proctoring_settings=d.proctoring_settings, has_error=d.has_error,
    )

@router.post("", response_model=QuizChanged, status_code=201, dependencies=[Depends(require_admin)])
def create_quiz(payload: QuizCreate, db: Session = Depends(get_db)):
    QuizStore(db).create_quiz(
        quiz_id=payload.id, name=payload.name, description=payload.description, questions=payload.questions,
        points_per_question=payload.points_per_question, is_custom=True,
        randomization=payload.randomization_settings, proctoring=payload.proctoring_settings,
    )
    return QuizChanged(quiz_id=payload.id, message="Quiz created", total_questions=len(payload.questions))

@router.put("/{quiz_id}", response_model=QuizChanged, dependencies=[Depends(require_admin)])
def update_quiz(quiz_id: str, payload: QuizUpdate, db: Session = Depends(get_db)):
    patch = payload.model_dump(include={"name", "description", "points_per_question"}, exclude_none=True)
    if payload.questions is not None: patch["questions"] = payload.questions
    if "randomization_settings" in payload.model_fields_set: patch["randomization"] = payload.randomization_settings
    if "proctoring_settings" in payload.model_fields_set: patch["proctoring"] = payload.proctoring_settings
    QuizStore(db).update_quiz(quiz_id, patch)
    return QuizChanged(quiz_id=quiz_id, message="Quiz updated")

@router.delete("/{quiz_id}", response_model=QuizChanged, dependencies=[Depends(require_admin)])
def delete_quiz(quiz_id: str, db: Session = Depends(get_db)):
    QuizStore(db).delete_quiz(quiz_id)
    return QuizChanged(quiz_id=quiz_id, message="Quiz deleted")

@router.post("/{quiz_id}/questions", response_model=QuizChanged, dependencies=[Depends(require_admin)])
def add_questions(quiz_id: str, payload: QuestionsAdd, db: Session = Depends(get_db)):
    total = QuizStore(db).append_questions(quiz_id, payload.questions)
    return QuizChanged(quiz_id=quiz_id, message=f"{len(payload.questions)} questions added", total_questions=total)

@router.post("/{quiz_id}/questions/single", response_model=QuizChanged, dependencies=[Depends(require_admin)])
def add_question(quiz_id: str, payload: Question, db: Session = Depends(get_db)):
    total = QuizStore(db).append_questions(quiz_id, [payload])
    return QuizChanged(quiz_id=quiz_id, message="Question added", total_questions=total)

@router.put("/{quiz_id}/questions/{index}", response_model=QuizChanged, dependencies=[Depends(require_admin)])
def replace_question(quiz_id: str, index: int, payload: Question, db: Session = Depends(get_db)):
    QuizStore(db).replace_question(quiz_id, index, payload)
    return QuizChanged(quiz_id=quiz_id, message=f"Question {index} updated")

@router.delete("/{quiz_id}/questions/{index}", response_model=QuizChanged, dependencies=[Depends(require_admin)])
def remove_question(quiz_id: str, index: int, db: Session = Depends(get_db)):
    total = QuizStore(db).remove_question(quiz_id, index)
    return QuizChanged(quiz_id=quiz_id, message=f"Question {index} deleted", total_questions=total)
