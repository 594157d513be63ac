from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, constr
from typing import Dict, List, Optional
from sqlalchemy.orm import Session
from quizproctor.core.database import get_db
from quizproctor.core.auth import require_admin
from quizproctor.models.domain import Difficulty, ProctoringConfig, Question, RandomizationConfig
from quizproctor.models.orm import BucketQuestion, QuestionBucket
from quizproctor.services.assembly import QuizAssemblyService, bucket_question_to_quiz_question
from quizproctor.store.quiz_store import QuizStore

router = APIRouter(dependencies=[Depends(require_admin)])

class BucketIn(BaseModel):
    name: constr(min_length=1, max_length=255)
    subject: constr(min_length=1, max_length=100)
    description: str = ""
    is_active: bool = True

class BucketOut(BaseModel):
    id: int
    name: str
    subject: str
    description: str
    total_questions: int
    easy_count: int
    medium_count: int
    hard_count: int
    is_active: bool

class BucketQuestionOut(BaseModel):
    id: int
    bucket_id: int
    is_active: bool
    question: Question

class BucketDetail(BucketOut):
    questions: List[BucketQuestionOut]

class BucketQuestionUpdate(Question):
    is_active: bool = True

class ComposeRequest(BaseModel):
    quiz_id: constr(min_length=1, max_length=50, pattern=r"^[A-Za-z0-9_\-]+$")
    quiz_name: constr(min_length=1, max_length=255)
    description: str = ""
    bucket_id: int
    easy_count: int = Field(default=0, ge=0)
    medium_count: int = Field(default=0, ge=0)
    hard_count: int = Field(default=0, ge=0)
    points_per_question: int = Field(default=1, ge=1)
    randomization_settings: Optional[RandomizationConfig] = None
    proctoring_settings: Optional[ProctoringConfig] = None

class ComposeResult(BaseModel):
    quiz_id: str
    bucket_id: int
    questions_selected: int
    selection: Dict[str, int]

def _bucket_out(b: QuestionBucket) -> BucketOut:
    return BucketOut(id=b.id, name=b.name, subject=b.subject, description=b.description or "",
                     total_questions=b.total_questions, easy_count=b.easy_count, medium_count=b.medium_count,
                     hard_count=b.hard_count, is_active=b.is_active)

def _question_out(row: BucketQuestion) -> BucketQuestionOut:
    return BucketQuestionOut(id=row.id, bucket_id=row.bucket_id, is_active=row.is_active,
                             question=bucket_question_to_quiz_question(row))

@router.get("", response_model=List[BucketOut])
def list_buckets(db: Session = Depends(get_db)):
    return [_bucket_out(b) for b in QuizStore(db).list_buckets()]

@router.get("/{bucket_id}", response_model=BucketDetail)
def get_bucket(bucket_id: int, difficulty: Optional[Difficulty] = Query(None), db: Session = Depends(get_db)):
    store = QuizStore(db)
    bucket = store.get_bucket(bucket_id)
    rows = store.list_bucket_questions(bucket_id, difficulty=difficulty)
    return BucketDetail(**_bucket_out(bucket).model_dump(), questions=[_question_out(r) for r in rows])

@router.post("", response_model=BucketOut, status_code=201)
def create_bucket(payload: BucketIn, db: Session = Depends(get_db)):
    return _bucket_out(QuizStore(db).create_bucket(payload.name, payload.subject, payload.description))

@router.put("/{bucket_id}", response_model=BucketOut)
def update_bucket(bucket_id: int, payload: BucketIn, db: Session = Depends(get_db)):
    return _bucket_out(QuizStore(db).update_bucket(bucket_id, payload.name, payload.subject, payload.description, payload.is_active))

@router.post("/{bucket_id}/questions", response_model=BucketQuestionOut, status_code=201)
def add_bucket_question(bucket_id: int, payload: Question, db: Session = Depends(get_db)):
    return _question_out(QuizStore(db).add_bucket_question(bucket_id, payload))

@router.put("/questions/{question_id}", response_model=BucketQuestionOut)
def update_bucket_question(question_id: int, payload: BucketQuestionUpdate, db: Session = Depends(get_db)):
    question = Question.model_validate(payload.model_dump(exclude={"is_active"}))
    return _question_out(QuizStore(db).update_bucket_question(question_id, question, payload.is_active))

@router.delete("/questions/{question_id}")
def delete_bucket_question(question_id: int, db: Session = Depends(get_db)):
    QuizStore(db).delete_bucket_question(question_id)
    return {"message": "Question deleted", "question_id": question_id}

@router.post("/compose", response_model=ComposeResult, status_code=201)
def compose_quiz(payload: ComposeRequest, db: Session = Depends(get_db)):
    composed = QuizAssemblyService(QuizStore(db)).compose_from_bucket(
        quiz_id=payload.quiz_id, name=payload.quiz_name, bucket_id=payload.bucket_id,
        easy=payload.easy_count, medium=payload.medium_count, hard=payload.hard_count,
        description=payload.description, points_per_question=payload.points_per_question,
        randomization=payload.randomization_settings, proctoring=payload.proctoring_settings,
    )
    return ComposeResult(quiz_id=composed.quiz_id, bucket_id=composed.bucket_id,
                         questions_selected=composed.total_questions, selection=composed.selected)
