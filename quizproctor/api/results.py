from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field, constr
from typing import Any, List
from datetime import datetime
from sqlalchemy.orm import Session
from quizproctor.core.database import get_db
from quizproctor.core.auth import require_admin
from quizproctor.models.orm import AssessmentResult
from quizproctor.services import results as results_service

router = APIRouter()

class ResultIn(BaseModel):
    name: constr(min_length=1, max_length=255)
    email: EmailStr
    assessment_track: constr(min_length=1, max_length=255)
    track_id: constr(min_length=1, max_length=50)
    login_date_time: datetime
    completion_time: datetime
    max_score: int = Field(ge=0)
    achieved_score: int = Field(ge=0)
    total_questions: int = Field(ge=0)
    duration: int = Field(ge=0)
    answers: List[Any] = Field(default_factory=list)

class ResultOut(BaseModel):
    name: str
    email: str
    assessment_track: str
    track_id: str
    login_date_time: datetime
    completion_time: datetime
    max_score: int
    achieved_score: int
    total_questions: int
    duration: int
    answers: List[Any]

class DashboardStats(BaseModel):
    total_participants: int
    total_assessments: int
    total_quizzes: int
    average_score: int

def _out(r: AssessmentResult) -> ResultOut:
    return ResultOut(name=r.name, email=r.email, assessment_track=r.assessment_track, track_id=r.track_id,
                     login_date_time=r.login_date_time, completion_time=r.completion_time, max_score=r.max_score,
                     achieved_score=r.achieved_score, total_questions=r.total_questions,
                     duration=r.duration_seconds, answers=results_service.decode_answers(r))

@router.post("/results", status_code=201)
def submit_result(payload: ResultIn, db: Session = Depends(get_db)):
    row = results_service.submit_result(
        db, payload.name, payload.email, payload.assessment_track, payload.track_id, payload.login_date_time,
        payload.completion_time, payload.max_score, payload.achieved_score, payload.total_questions,
        payload.duration, payload.answers,
    )
    return {"message": "Result saved", "id": row.id}

@router.get("/results", response_model=List[ResultOut], dependencies=[Depends(require_admin)])
def list_results(db: Session = Depends(get_db)):
    return [_out(r) for r in results_service.list_results(db)]

@router.get("/results/recent", response_model=List[ResultOut], dependencies=[Depends(require_admin)])
def recent_results(db: Session = Depends(get_db)):
    return [_out(r) for r in results_service.recent_results(db)]

@router.get("/stats", response_model=DashboardStats, dependencies=[Depends(require_admin)])
def dashboard_stats(db: Session = Depends(get_db)):
    return DashboardStats(**results_service.dashboard_stats(db))

@router.delete("/results", dependencies=[Depends(require_admin)])
def clear_results(db: Session = Depends(get_db)):
    return {"message": "Results cleared", "deleted_count": results_service.clear_results(db)}
