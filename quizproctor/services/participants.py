"""Quiz invitations and access-token verification."""
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, select
from sqlalchemy.orm import Session

from quizproctor.core.config import INVITE_TTL_DAYS
from quizproctor.core.errors import NotFound
from quizproctor.models.orm import AssessmentResult, QuizParticipant
from quizproctor.store.quiz_store import QuizStore

logger = logging.getLogger(__name__)


@dataclass
class Invitation:
    email: str
    status: str
    access_token: Optional[str] = None
    link: Optional[str] = None
    error: Optional[str] = None


def new_access_token() -> str:
    return secrets.token_hex(16)


def invite_participants(db: Session, quiz_id: str, participants: List[Dict[str, Any]],
                        assessment_link: str = "", ttl_days: int = INVITE_TTL_DAYS) -> List[Invitation]:
    """Create or refresh one participant row per entry.

    Re-inviting an address replaces its token and pushes out the expiry, so
    earlier links stop working.
    """
    QuizStore(db).get_quiz(quiz_id)
    now = datetime.now(timezone.utc)
    results = []
    for p in participants:
        email = p["email"]
        token = new_access_token()
        row = db.scalar(select(QuizParticipant).where(QuizParticipant.quiz_id == quiz_id, QuizParticipant.email == email))
        if row is None:
            row = QuizParticipant(quiz_id=quiz_id, email=email)
            db.add(row)
        row.name = p.get("name") or email
        row.department = p.get("department") or ""
        row.access_token = token
        row.invited_at = now
        row.expires_at = now + timedelta(days=ttl_days)
        row.accessed_at = None
        results.append(Invitation(
            email=email, status="sent", access_token=token,
            link=f"{assessment_link}{'&' if '?' in assessment_link else '?'}token={token}" if assessment_link else None,
        ))
    db.commit()
    logger.info(f"Invited {len(results)} participants to quiz {quiz_id}")
    return results


def list_participants(db: Session, quiz_id: str) -> List[Dict[str, Any]]:
    stmt = (
        select(QuizParticipant, AssessmentResult)
        .outerjoin(AssessmentResult, and_(AssessmentResult.email == QuizParticipant.email,
                                          AssessmentResult.track_id == QuizParticipant.quiz_id))
        .where(QuizParticipant.quiz_id == quiz_id)
        .order_by(QuizParticipant.invited_at.desc(), QuizParticipant.id.desc())
    )
    out = []
    for participant, result in db.execute(stmt).all():
        out.append({
            "name": participant.name,
            "email": participant.email,
            "department": participant.department,
            "invited_at": participant.invited_at,
            "expires_at": participant.expires_at,
            "accessed_at": participant.accessed_at,
            "completion_time": result.completion_time if result else None,
            "achieved_score": result.achieved_score if result else None,
            "max_score": result.max_score if result else None,
        })
    return out


def verify_access(db: Session, token: str) -> QuizParticipant:
    """Resolve a live access token to its participant and stamp the first access."""
    row = db.scalar(select(QuizParticipant).where(
        QuizParticipant.access_token == token,
        QuizParticipant.expires_at > datetime.now(timezone.utc),
    ))
    if row is None:
        raise NotFound("Invalid or expired access token")
    if row.accessed_at is None:
        row.accessed_at = datetime.now(timezone.utc)
        db.commit()
    return row
