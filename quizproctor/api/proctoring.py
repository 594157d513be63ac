from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, EmailStr, Field, constr
from typing import Dict, List, Optional
from datetime import datetime
from sqlalchemy.orm import Session
from quizproctor.core.cache import session_cache
from quizproctor.core.database import get_db
from quizproctor.core.auth import require_admin
from quizproctor.models.domain import Evidence, ProctoringLevel, SessionStatus, Severity, ViolationType
from quizproctor.models.orm import ProctoringSession, ProctoringViolation
from quizproctor.services.proctoring import ProctoringSessionManager
from quizproctor.store.proctoring_store import ProctoringStore, decode_evidence, decode_settings

router = APIRouter()

def get_manager(db: Session = Depends(get_db)) -> ProctoringSessionManager:
    return ProctoringSessionManager(ProctoringStore(db), session_cache)

class SessionStart(BaseModel):
    session_id: constr(min_length=1, max_length=100)
    user_email: EmailStr
    user_name: constr(max_length=255) = ""
    assessment_id: constr(min_length=1, max_length=50)
    level: ProctoringLevel = ProctoringLevel.BASIC
    strict_mode: bool = False
    settings: Dict = Field(default_factory=dict)

class ViolationIn(BaseModel):
    session_id: constr(min_length=1, max_length=100)
    violation_type: ViolationType
    severity: Severity = Severity.MEDIUM
    description: str = ""
    evidence: Evidence = Field(default_factory=Evidence)
    auto_flagged: bool = True

class SessionEnd(BaseModel):
    session_id: constr(min_length=1, max_length=100)
    reason: constr(min_length=1, max_length=64) = "completed"

class SessionRef(BaseModel):
    session_id: constr(min_length=1, max_length=100)

class ViolationOut(BaseModel):
    id: int
    violation_type: str
    severity: str
    description: str
    evidence: Dict
    auto_flagged: bool
    timestamp: datetime

class SessionOut(BaseModel):
    session_id: str
    user_email: str
    user_name: str
    assessment_id: str
    level: str
    strict_mode: bool
    status: str
    settings: Dict
    start_time: datetime
    end_time: Optional[datetime] = None
    end_reason: Optional[str] = None
    violation_count: int

class SessionDetail(SessionOut):
    violations: List[ViolationOut]

class ViolationLogged(BaseModel):
    session_id: str
    violation_count: int
    status: SessionStatus
    terminated: bool

class ProctoringStats(BaseModel):
    timeframe: str
    total_sessions: int
    sessions_by_status: Dict[str, int]
    flagged_sessions: int
    total_violations: int
    average_violations: float
    violations_by_type: Dict[str, int]

def _session_out(row: ProctoringSession) -> SessionOut:
    return SessionOut(session_id=row.session_id, user_email=row.user_email, user_name=row.user_name,
                      assessment_id=row.assessment_id, level=row.level, strict_mode=row.strict_mode, status=row.status,
                      settings=decode_settings(row), start_time=row.start_time, end_time=row.end_time,
                      end_reason=row.end_reason, violation_count=row.violation_count)

def _violation_out(v: ProctoringViolation) -> ViolationOut:
    return ViolationOut(id=v.id, violation_type=v.violation_type, severity=v.severity, description=v.description or "",
                        evidence=decode_evidence(v), auto_flagged=v.auto_flagged, timestamp=v.timestamp)

@router.post("/start", response_model=SessionOut, status_code=201)
def start_session(payload: SessionStart, mgr: ProctoringSessionManager = Depends(get_manager)):
    row = mgr.start_session(payload.session_id, payload.user_email, payload.user_name or payload.user_email,
                            payload.assessment_id, payload.level, payload.strict_mode, payload.settings)
    return _session_out(row)

@router.post("/log", response_model=ViolationLogged)
def log_violation(payload: ViolationIn, mgr: ProctoringSessionManager = Depends(get_manager)):
    outcome = mgr.log_violation(payload.session_id, payload.violation_type, payload.severity,
                                payload.description, payload.evidence, payload.auto_flagged)
    return ViolationLogged(session_id=outcome.session_id, violation_count=outcome.violation_count,
                           status=outcome.status, terminated=outcome.terminated)

@router.post("/end", response_model=SessionOut)
def end_session(payload: SessionEnd, mgr: ProctoringSessionManager = Depends(get_manager)):
    return _session_out(mgr.end_session(payload.session_id, payload.reason))

@router.post("/pause", response_model=SessionOut)
def pause_session(payload: SessionRef, mgr: ProctoringSessionManager = Depends(get_manager)):
    return _session_out(mgr.pause_session(payload.session_id))

@router.post("/resume", response_model=SessionOut)
def resume_session(payload: SessionRef, mgr: ProctoringSessionManager = Depends(get_manager)):
    return _session_out(mgr.resume_session(payload.session_id))

@router.get("/stats", response_model=ProctoringStats, dependencies=[Depends(require_admin)])
def stats(timeframe: str = Query("24h"), mgr: ProctoringSessionManager = Depends(get_manager)):
    return ProctoringStats(**mgr.get_statistics(timeframe))

@router.get("/sessions", response_model=List[SessionOut], dependencies=[Depends(require_admin)])
def list_sessions(status: Optional[SessionStatus] = None, assessment_id: Optional[str] = None,
                  user_email: Optional[str] = None, mgr: ProctoringSessionManager = Depends(get_manager)):
    return [_session_out(r) for r in mgr.list_sessions(status, assessment_id, user_email)]

@router.get("/sessions/{session_id}", response_model=SessionDetail, dependencies=[Depends(require_admin)])
def get_session(session_id: str, mgr: ProctoringSessionManager = Depends(get_manager)):
    view = mgr.get_session(session_id)
    return SessionDetail(**_session_out(view.session).model_dump(), violations=[_violation_out(v) for v in view.violations])
