from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, constr
from typing import Any, Dict, List, Optional
from rq.exceptions import NoSuchJobError
from rq.job import Job
from sqlalchemy.orm import Session
from quizproctor.core.database import get_db
from quizproctor.core.auth import require_admin
from quizproctor.jobs.queue import queue
from quizproctor.jobs.import_job import import_quiz_pool_job
from quizproctor.services.maintenance import health_report
from quizproctor.store.quiz_store import QuizStore

router = APIRouter(dependencies=[Depends(require_admin)])

class ImportRequest(BaseModel):
    csv_data: constr(min_length=1)

class ImportQueued(BaseModel):
    job_id: str
    state: str

class ImportStatus(BaseModel):
    job_id: str
    state: str
    done: int = 0
    total: int = 0
    result: Optional[dict] = None
    error: Optional[str] = None

@router.post("/import-quiz-pool", response_model=ImportQueued, status_code=202)
def start_import(payload: ImportRequest):
    job = queue.enqueue(import_quiz_pool_job, payload.csv_data, job_timeout=1800, result_ttl=86400)
    return ImportQueued(job_id=job.get_id(), state="queued")

@router.get("/import-quiz-pool/{job_id}", response_model=ImportStatus)
def import_status(job_id: str):
    try:
        job = Job.fetch(job_id, connection=queue.connection)
    except NoSuchJobError:
        raise HTTPException(404, "Import job not found")
    meta = job.meta or {}
    status = job.get_status()
    state = meta.get("state") or (status.value if status else "unknown")
    return ImportStatus(
        job_id=job_id, state=state,
        done=int(meta.get("done") or 0), total=int(meta.get("total") or 0),
        result=job.return_value() if state == "done" else None,
        error=(job.exc_info or "").strip().splitlines()[-1] if state == "failed" and job.exc_info else None,
    )

class RepairOut(BaseModel):
    quiz_id: str
    repaired: bool
    question_count: int
    dropped: int = 0

class RepairSummary(BaseModel):
    repaired_count: int
    results: List[RepairOut]

class QuizzesDeleted(BaseModel):
    deleted_count: int

@router.post("/quizzes/repair", response_model=RepairSummary)
def repair_all_quizzes(db: Session = Depends(get_db)):
    outcomes = QuizStore(db).repair_all_quizzes()
    return RepairSummary(repaired_count=sum(1 for o in outcomes if o.repaired),
                         results=[RepairOut(**vars(o)) for o in outcomes])

@router.post("/quizzes/{quiz_id}/repair", response_model=RepairOut)
def repair_quiz(quiz_id: str, db: Session = Depends(get_db)):
    return RepairOut(**vars(QuizStore(db).repair_quiz(quiz_id)))

@router.delete("/quizzes", response_model=QuizzesDeleted)
def delete_all_quizzes(db: Session = Depends(get_db)):
    return QuizzesDeleted(deleted_count=QuizStore(db).delete_all_quizzes())

@router.get("/health-check", response_model=Dict[str, Any])
def admin_health_check(db: Session = Depends(get_db)):
    return health_report(db)
