"""Proctoring session and violation persistence.

The session row is the single source of truth for status and violation
count. Counter increments are conditional UPDATE statements so concurrent
reports for one session never lose an increment.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from quizproctor.core.errors import DuplicateSession, SessionNotActive, SessionNotFound
from quizproctor.models.domain import SessionStatus, ViolationType
from quizproctor.models.orm import ProctoringSession, ProctoringViolation, utcnow
from quizproctor.store.codec import from_json, retry_once, to_json

logger = logging.getLogger(__name__)

THRESHOLD_REASON = "violation_threshold_exceeded"


class ProctoringStore:
    def __init__(self, db: Session):
        self.db = db

    def find_session(self, session_id: str) -> Optional[ProctoringSession]:
        return self.db.scalar(select(ProctoringSession).where(ProctoringSession.session_id == session_id))

    def get_session(self, session_id: str) -> ProctoringSession:
        row = self.find_session(session_id)
        if row is None:
            raise SessionNotFound(session_id)
        return row

    def create_session(self, session_id: str, user_email: str, user_name: str, assessment_id: str,
                       level: str, strict_mode: bool, settings: Dict[str, Any]) -> ProctoringSession:
        if self.find_session(session_id) is not None:
            raise DuplicateSession(f"Proctoring session {session_id} already exists")
        row = ProctoringSession(
            session_id=session_id, user_email=user_email, user_name=user_name, assessment_id=assessment_id,
            level=level, strict_mode=strict_mode, status=SessionStatus.ACTIVE.value,
            settings=to_json(settings or {}), violation_count=0, start_time=utcnow(),
        )
        self.db.add(row)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise DuplicateSession(f"Proctoring session {session_id} already exists") from e
        return row

    @retry_once
    def record_violation(self, session_id: str, violation_type: str, severity: str, description: str,
                         evidence: Dict[str, Any], auto_flagged: bool,
                         terminate_at: Optional[int] = None) -> Tuple[int, str]:
        """Append a violation and bump the session counter in one transaction.

        When ``terminate_at`` is given and the new count reaches it, the session
        is terminated inside the same transaction. Returns the new count and
        the session status after the write.
        """
        now = utcnow()
        bumped = self.db.execute(
            update(ProctoringSession)
            .where(ProctoringSession.session_id == session_id, ProctoringSession.status == SessionStatus.ACTIVE.value)
            .values(violation_count=ProctoringSession.violation_count + 1, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if bumped.rowcount == 0:
            self.db.rollback()
            row = self.get_session(session_id)
            raise SessionNotActive(session_id, row.status)

        # the row lock from the UPDATE is held until commit, so this read is exact
        count = self.db.scalar(select(ProctoringSession.violation_count).where(ProctoringSession.session_id == session_id))
        self.db.add(ProctoringViolation(
            session_id=session_id, violation_type=violation_type, severity=severity,
            description=description or "", evidence=to_json(evidence or {}),
            auto_flagged=auto_flagged, timestamp=now,
        ))
        status = SessionStatus.ACTIVE.value
        if terminate_at is not None and count >= terminate_at:
            self.db.execute(
                update(ProctoringSession)
                .where(ProctoringSession.session_id == session_id)
                .values(status=SessionStatus.TERMINATED.value, end_time=now, end_reason=THRESHOLD_REASON, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            status = SessionStatus.TERMINATED.value
        self.db.commit()
        return count, status

    @retry_once
    def update_session_status(self, session_id: str, status: SessionStatus, from_statuses: Iterable[SessionStatus],
                              end_reason: Optional[str] = None) -> bool:
        """Move a session to ``status`` if it is currently in one of ``from_statuses``.

        Returns False when no row matched (unknown id or a different current status).
        """
        now = utcnow()
        values: Dict[str, Any] = {"status": status.value, "updated_at": now}
        if status.is_terminal:
            values.update(end_time=now, end_reason=end_reason)
        result = self.db.execute(
            update(ProctoringSession)
            .where(ProctoringSession.session_id == session_id,
                   ProctoringSession.status.in_([s.value for s in from_statuses]))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount > 0

    def list_violations(self, session_id: str) -> List[ProctoringViolation]:
        stmt = (select(ProctoringViolation)
                .where(ProctoringViolation.session_id == session_id)
                .order_by(ProctoringViolation.timestamp.desc(), ProctoringViolation.id.desc()))
        return list(self.db.scalars(stmt).all())

    def count_violations(self, session_id: str) -> int:
        stmt = select(func.count()).select_from(ProctoringViolation).where(ProctoringViolation.session_id == session_id)
        return self.db.scalar(stmt) or 0

    def list_sessions(self, status: Optional[str] = None, assessment_id: Optional[str] = None,
                      user_email: Optional[str] = None, limit: int = 100) -> List[ProctoringSession]:
        stmt = select(ProctoringSession)
        if status:
            stmt = stmt.where(ProctoringSession.status == status)
        if assessment_id:
            stmt = stmt.where(ProctoringSession.assessment_id == assessment_id)
        if user_email:
            stmt = stmt.where(ProctoringSession.user_email == user_email)
        stmt = stmt.order_by(ProctoringSession.start_time.desc(), ProctoringSession.id.desc()).limit(limit)
        return list(self.db.scalars(stmt).all())

    def aggregate_statistics(self, since: Optional[datetime] = None) -> Dict[str, Any]:
        """Session counts by status and violation counts by type, zero-filled."""
        window = [ProctoringSession.start_time >= since] if since is not None else []

        by_status = {s.value: 0 for s in SessionStatus}
        rows = self.db.execute(
            select(ProctoringSession.status, func.count()).where(*window).group_by(ProctoringSession.status)
        ).all()
        for status, n in rows:
            by_status[status] = by_status.get(status, 0) + n

        flagged, avg = self.db.execute(
            select(func.count(case((ProctoringSession.violation_count > 0, 1))), func.avg(ProctoringSession.violation_count))
            .where(*window)
        ).one()

        by_type = {t.value: 0 for t in ViolationType}
        rows = self.db.execute(
            select(ProctoringViolation.violation_type, func.count())
            .join(ProctoringSession, ProctoringSession.session_id == ProctoringViolation.session_id)
            .where(*window)
            .group_by(ProctoringViolation.violation_type)
        ).all()
        for violation_type, n in rows:
            by_type[violation_type] = by_type.get(violation_type, 0) + n

        return {
            "total_sessions": sum(by_status.values()),
            "sessions_by_status": by_status,
            "flagged_sessions": flagged or 0,
            "total_violations": sum(by_type.values()),
            "average_violations": round(float(avg or 0), 2),
            "violations_by_type": by_type,
        }


def decode_settings(row: ProctoringSession) -> Dict[str, Any]:
    value = from_json(row.settings, {})
    return value if isinstance(value, dict) else {}


def decode_evidence(row: ProctoringViolation) -> Dict[str, Any]:
    value = from_json(row.evidence, {})
    return value if isinstance(value, dict) else {}
