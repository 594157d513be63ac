from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field, constr
from typing import Any, Dict, List, Optional, Union
from datetime import datetime
from sqlalchemy.orm import Session
from quizproctor.core.cache import variant_cache
from quizproctor.core.database import get_db
from quizproctor.core.auth import require_admin
from quizproctor.models.domain import ProctoringConfig, Question
from quizproctor.services import participants as participants_service
from quizproctor.services.assembly import QuizAssemblyService
from quizproctor.store.quiz_store import QuizStore

router = APIRouter()

class ParticipantIn(BaseModel):
    name: constr(max_length=255) = ""
    email: EmailStr
    department: constr(max_length=255) = ""

class InvitationRequest(BaseModel):
    quiz_id: constr(min_length=1, max_length=50)
    participants: List[ParticipantIn] = Field(min_length=1)
    assessment_link: str = ""

class InvitationOut(BaseModel):
    email: str
    status: str
    access_token: Optional[str] = None
    link: Optional[str] = None

class InvitationSummary(BaseModel):
    quiz_id: str
    sent: int
    results: List[InvitationOut]

class ParticipantRow(BaseModel):
    name: str
    email: str
    department: str
    invited_at: datetime
    expires_at: datetime
    accessed_at: Optional[datetime] = None
    completion_time: Optional[datetime] = None
    achieved_score: Optional[int] = None
    max_score: Optional[int] = None

class AccessQuiz(BaseModel):
    id: str
    name: str
    questions: List[Union[Question, Dict[str, Any]]]
    proctoring_settings: ProctoringConfig
    has_error: bool = False

class AccessGranted(BaseModel):
    valid: bool = True
    name: str
    email: str
    quiz: AccessQuiz

@router.post("/invitations", response_model=InvitationSummary, dependencies=[Depends(require_admin)])
def send_invitations(payload: InvitationRequest, db: Session = Depends(get_db)):
    invites = participants_service.invite_participants(
        db, payload.quiz_id, [p.model_dump() for p in payload.participants], payload.assessment_link,
    )
    return InvitationSummary(quiz_id=payload.quiz_id, sent=len(invites),
                             results=[InvitationOut(email=i.email, status=i.status, access_token=i.access_token, link=i.link) for i in invites])

@router.get("/quiz/{quiz_id}", response_model=List[ParticipantRow], dependencies=[Depends(require_admin)])
def list_participants(quiz_id: str, db: Session = Depends(get_db)):
    return [ParticipantRow(**row) for row in participants_service.list_participants(db, quiz_id)]

@router.get("/verify/{token}", response_model=AccessGranted)
def verify_access(token: str, db: Session = Depends(get_db)):
    participant = participants_service.verify_access(db, token)
    delivered = QuizAssemblyService(QuizStore(db), variant_cache=variant_cache).get_deliverable_quiz(
        participant.quiz_id, session_id=token,
    )
    return AccessGranted(
        name=participant.name, email=participant.email,
        quiz=AccessQuiz(id=delivered.quiz_id, name=delivered.name, questions=delivered.questions,
                        proctoring_settings=delivered.proctoring_settings, has_error=delivered.has_error),
    )
