from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, constr
from typing import List, Optional
from datetime import datetime
from sqlalchemy.orm import Session
from quizproctor.core.database import get_db
from quizproctor.core.auth import require_admin
from quizproctor.models.orm import CodingChallenge, CodingTestCase
from quizproctor.services import grading

router = APIRouter()

_runner: Optional[grading.SandboxRunner] = None

def get_runner() -> grading.SandboxRunner:
    global _runner
    if _runner is None:
        _runner = grading.SandboxRunner()
    return _runner

class CaseOut(BaseModel):
    input: str
    expected_output: str
    is_hidden: bool
    order_index: int

class ChallengeSummary(BaseModel):
    id: int
    title: str
    description: str
    difficulty: str
    time_limit: int
    created_at: datetime

class ChallengeDetail(ChallengeSummary):
    starter_code: str
    test_cases: List[CaseOut]

class AdminChallengeDetail(ChallengeDetail):
    solution_code: Optional[str] = None

class SubmissionIn(BaseModel):
    user_name: constr(min_length=1, max_length=255)
    code: constr(min_length=1, max_length=100_000)
    time_spent: int = Field(default=0, ge=0)

class CaseResultOut(BaseModel):
    index: int
    passed: bool
    hidden: bool
    actual_output: Optional[str] = None
    error: Optional[str] = None

class SubmissionOut(BaseModel):
    submission_id: int
    score: int
    passed_tests: int
    total_tests: int
    results: List[CaseResultOut]

def _summary(c: CodingChallenge) -> dict:
    return dict(id=c.id, title=c.title, description=c.description, difficulty=c.difficulty,
                time_limit=c.time_limit, created_at=c.created_at)

def _case(t: CodingTestCase) -> CaseOut:
    return CaseOut(input=t.input, expected_output=t.expected_output, is_hidden=t.is_hidden, order_index=t.order_index)

@router.get("/challenges", response_model=List[ChallengeSummary], dependencies=[Depends(require_admin)])
def list_all(db: Session = Depends(get_db)):
    return [ChallengeSummary(**_summary(c)) for c in grading.list_challenges(db)]

@router.get("/challenges/available", response_model=List[ChallengeDetail])
def list_available(db: Session = Depends(get_db)):
    return [ChallengeDetail(**_summary(c), starter_code=c.starter_code,
                            test_cases=[_case(t) for t in grading.list_test_cases(db, c.id)])
            for c in grading.list_challenges(db, active_only=True)]

@router.get("/challenges/{challenge_id}", response_model=ChallengeDetail)
def get_challenge(challenge_id: int, db: Session = Depends(get_db)):
    c = grading.get_challenge(db, challenge_id)
    return ChallengeDetail(**_summary(c), starter_code=c.starter_code,
                           test_cases=[_case(t) for t in grading.list_test_cases(db, c.id)])

@router.get("/challenges/{challenge_id}/full", response_model=AdminChallengeDetail, dependencies=[Depends(require_admin)])
def get_challenge_full(challenge_id: int, db: Session = Depends(get_db)):
    c = grading.get_challenge(db, challenge_id)
    return AdminChallengeDetail(**_summary(c), starter_code=c.starter_code, solution_code=c.solution_code,
                                test_cases=[_case(t) for t in grading.list_test_cases(db, c.id, include_hidden=True)])

@router.post("/challenges/{challenge_id}/submissions", response_model=SubmissionOut, status_code=201)
def submit(challenge_id: int, payload: SubmissionIn, db: Session = Depends(get_db),
           runner: grading.SandboxRunner = Depends(get_runner)):
    submission, report = grading.grade_submission(db, runner, challenge_id, payload.user_name, payload.code, payload.time_spent)
    return SubmissionOut(submission_id=submission.id, score=report.score, passed_tests=report.passed,
                         total_tests=report.total, results=[CaseResultOut(**r.public()) for r in report.results])
