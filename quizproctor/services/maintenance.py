"""Admin health report over the stored quizzes and results."""
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from quizproctor.models.orm import AssessmentResult
from quizproctor.store.quiz_store import QuizStore

logger = logging.getLogger(__name__)


def health_report(db: Session) -> Dict[str, Any]:
    report: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": {"connection": "ok"},
        "quizzes": {"total_count": 0, "details": []},
        "results": {"total_count": 0},
    }
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        db.rollback()
        report["database"] = {"connection": "error", "error": str(e)}
        return report

    store = QuizStore(db)
    details = [store.inspect_quiz(quiz) for quiz in store.list_quizzes()]
    report["quizzes"] = {
        "total_count": len(details),
        "damaged": sum(1 for d in details if d.status == "error"),
        "details": [vars(d) for d in details],
    }
    report["results"]["total_count"] = db.scalar(select(func.count()).select_from(AssessmentResult)) or 0
    return report
