"""Assessment results: submission, listing and dashboard figures."""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from quizproctor.core.config import ALLOWED_EMAIL_DOMAIN, RESULTS_RECENT_HOURS
from quizproctor.core.errors import ValidationError
from quizproctor.models.orm import AssessmentResult, Quiz
from quizproctor.store.codec import from_json, to_json

logger = logging.getLogger(__name__)


def submit_result(db: Session, name: str, email: str, assessment_track: str, track_id: str,
                  login_date_time: datetime, completion_time: datetime, max_score: int, achieved_score: int,
                  total_questions: int, duration_seconds: int, answers: Optional[List[Any]] = None) -> AssessmentResult:
    if ALLOWED_EMAIL_DOMAIN and not email.lower().endswith("@" + ALLOWED_EMAIL_DOMAIN.lower()):
        raise ValidationError(f"Only {ALLOWED_EMAIL_DOMAIN} email addresses are allowed")
    if max_score < 0 or achieved_score < 0:
        raise ValidationError("Scores must not be negative")
    if achieved_score > max_score:
        raise ValidationError(f"Achieved score {achieved_score} exceeds max score {max_score}")
    login_date_time, completion_time = _as_utc(login_date_time), _as_utc(completion_time)
    if completion_time < login_date_time:
        raise ValidationError("Completion time precedes login time")
    row = AssessmentResult(
        name=name, email=email, assessment_track=assessment_track, track_id=track_id,
        login_date_time=login_date_time, completion_time=completion_time, max_score=max_score,
        achieved_score=achieved_score, total_questions=total_questions, duration_seconds=duration_seconds,
        answers=to_json(answers or []),
    )
    db.add(row)
    db.commit()
    logger.info(f"Result saved for {email} on {track_id}: {achieved_score}/{max_score}")
    return row


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value.astimezone(timezone.utc)


def decode_answers(row: AssessmentResult) -> List[Any]:
    answers = from_json(row.answers, [])
    return answers if isinstance(answers, list) else []


def list_results(db: Session, since: Optional[datetime] = None) -> List[AssessmentResult]:
    stmt = select(AssessmentResult)
    if since is not None:
        stmt = stmt.where(AssessmentResult.completion_time >= since)
    return list(db.scalars(stmt.order_by(AssessmentResult.completion_time.desc(), AssessmentResult.id.desc())).all())


def recent_results(db: Session, hours: int = RESULTS_RECENT_HOURS) -> List[AssessmentResult]:
    return list_results(db, since=datetime.now(timezone.utc) - timedelta(hours=hours))


def dashboard_stats(db: Session) -> Dict[str, Any]:
    participants = db.scalar(select(func.count(func.distinct(AssessmentResult.email)))) or 0
    assessments = db.scalar(select(func.count()).select_from(AssessmentResult)) or 0
    quizzes = db.scalar(select(func.count()).select_from(Quiz)) or 0
    avg = db.scalar(
        select(func.avg(AssessmentResult.achieved_score * 100.0 / AssessmentResult.max_score))
        .where(AssessmentResult.max_score > 0)
    )
    return {
        "total_participants": participants,
        "total_assessments": assessments,
        "total_quizzes": quizzes,
        "average_score": round(float(avg or 0)),
    }


def clear_results(db: Session) -> int:
    result = db.execute(delete(AssessmentResult).execution_options(synchronize_session=False))
    db.commit()
    logger.warning(f"Cleared {result.rowcount} assessment results")
    return result.rowcount
