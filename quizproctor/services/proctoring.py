"""Proctoring session state machine.

    active ──pause──▶ paused ──resume──▶ active
    active|paused ──end──▶ completed | terminated
    active ──3rd violation (strict mode)──▶ terminated

``completed`` and ``terminated`` are terminal. The store is authoritative for
status and counts; the cache only remembers per-session attributes that
never change after start (strict mode, level, assessment) so violation
logging can skip a read.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from quizproctor.core.config import SESSION_LIST_LIMIT
from quizproctor.core.errors import SessionNotActive, ValidationError
from quizproctor.models.domain import Evidence, ProctoringLevel, SessionStatus, Severity, ViolationType
from quizproctor.models.orm import ProctoringSession, ProctoringViolation
from quizproctor.store.proctoring_store import THRESHOLD_REASON, ProctoringStore

logger = logging.getLogger(__name__)

VIOLATION_THRESHOLD = 3

TIMEFRAMES = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "all": None,
}


@dataclass
class ViolationOutcome:
    session_id: str
    violation_count: int
    status: SessionStatus
    terminated: bool


@dataclass
class SessionView:
    session: ProctoringSession
    violations: List[ProctoringViolation]


class ProctoringSessionManager:
    def __init__(self, store: ProctoringStore, cache, threshold: int = VIOLATION_THRESHOLD):
        self.store = store
        self.cache = cache
        self.threshold = threshold

    def start_session(self, session_id: str, user_email: str, user_name: str, assessment_id: str,
                      level: ProctoringLevel = ProctoringLevel.BASIC, strict_mode: bool = False,
                      settings: Optional[Dict[str, Any]] = None) -> ProctoringSession:
        row = self.store.create_session(
            session_id=session_id, user_email=user_email, user_name=user_name, assessment_id=assessment_id,
            level=ProctoringLevel(level).value, strict_mode=strict_mode, settings=settings or {},
        )
        self._remember(row)
        logger.info(f"Proctoring session started: {session_id} for {user_email} (assessment {assessment_id}, strict={strict_mode})")
        return row

    def log_violation(self, session_id: str, violation_type: ViolationType, severity: Severity = Severity.MEDIUM,
                      description: str = "", evidence: Optional[Evidence] = None,
                      auto_flagged: bool = True) -> ViolationOutcome:
        strict = self._strict_mode(session_id)
        count, status = self.store.record_violation(
            session_id, ViolationType(violation_type).value, Severity(severity).value, description,
            (evidence or Evidence()).model_dump(exclude_none=True), auto_flagged,
            terminate_at=self.threshold if strict else None,
        )
        status = SessionStatus(status)
        terminated = status is SessionStatus.TERMINATED
        if terminated:
            self.cache.delete(session_id)
            logger.warning(f"Proctoring session {session_id} terminated: {THRESHOLD_REASON} ({count} violations)")
        else:
            logger.info(f"Violation {ViolationType(violation_type).value} logged for {session_id} (count {count})")
        return ViolationOutcome(session_id=session_id, violation_count=count, status=status, terminated=terminated)

    def end_session(self, session_id: str, reason: str = "completed") -> ProctoringSession:
        """End an active or paused session.

        A session that already reached a terminal state is returned unchanged:
        a client-side end racing a server-side termination is not an error.
        """
        target = SessionStatus.COMPLETED if reason == "completed" else SessionStatus.TERMINATED
        changed = self.store.update_session_status(
            session_id, target, from_statuses=(SessionStatus.ACTIVE, SessionStatus.PAUSED), end_reason=reason,
        )
        self.cache.delete(session_id)
        row = self.store.get_session(session_id)
        if changed:
            logger.info(f"Proctoring session ended: {session_id} ({reason})")
        else:
            logger.info(f"Proctoring session {session_id} already {row.status}; end ignored")
        return row

    def pause_session(self, session_id: str) -> ProctoringSession:
        if not self.store.update_session_status(session_id, SessionStatus.PAUSED, from_statuses=(SessionStatus.ACTIVE,)):
            row = self.store.get_session(session_id)
            raise SessionNotActive(session_id, row.status)
        logger.info(f"Proctoring session paused: {session_id}")
        return self.store.get_session(session_id)

    def resume_session(self, session_id: str) -> ProctoringSession:
        if not self.store.update_session_status(session_id, SessionStatus.ACTIVE, from_statuses=(SessionStatus.PAUSED,)):
            row = self.store.get_session(session_id)
            raise SessionNotActive(session_id, row.status, f"Proctoring session {session_id} is not paused (status: {row.status})")
        logger.info(f"Proctoring session resumed: {session_id}")
        return self.store.get_session(session_id)

    def get_session(self, session_id: str) -> SessionView:
        row = self.store.get_session(session_id)
        return SessionView(session=row, violations=self.store.list_violations(session_id))

    def list_sessions(self, status: Optional[SessionStatus] = None, assessment_id: Optional[str] = None,
                      user_email: Optional[str] = None) -> List[ProctoringSession]:
        return self.store.list_sessions(
            status=SessionStatus(status).value if status else None,
            assessment_id=assessment_id, user_email=user_email, limit=SESSION_LIST_LIMIT,
        )

    def get_statistics(self, timeframe: str = "24h") -> Dict[str, Any]:
        if timeframe not in TIMEFRAMES:
            raise ValidationError(f"Unknown timeframe {timeframe!r}; expected one of {', '.join(TIMEFRAMES)}")
        span = TIMEFRAMES[timeframe]
        since = datetime.now(timezone.utc) - span if span is not None else None
        stats = self.store.aggregate_statistics(since)
        stats["timeframe"] = timeframe
        return stats

    def _remember(self, row: ProctoringSession) -> None:
        self.cache.set(row.session_id, {
            "strict_mode": bool(row.strict_mode),
            "level": row.level,
            "assessment_id": row.assessment_id,
        })

    def _strict_mode(self, session_id: str) -> bool:
        cached = self.cache.get(session_id)
        if cached is not None:
            return bool(cached.get("strict_mode"))
        row = self.store.get_session(session_id)
        if not SessionStatus(row.status).is_terminal:
            self._remember(row)
        return bool(row.strict_mode)
