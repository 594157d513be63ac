"""
Tests for the admin health report.
"""
from quizproctor.services.maintenance import health_report
from quizproctor.services.seed import seed_defaults

from conftest import make_question


class TestHealthReport:
    """health_report over seeded and damaged data."""

    def test_empty_database(self, db):
        report = health_report(db)
        assert report["database"] == {"connection": "ok"}
        assert report["quizzes"]["total_count"] == 0
        assert report["results"]["total_count"] == 0

    def test_flags_damaged_quiz(self, db, quiz_store):
        seed_defaults(db)
        broken = quiz_store.create_quiz("broken", "Broken", [make_question()])
        broken.questions = "not json"
        db.commit()

        report = health_report(db)
        assert report["quizzes"]["total_count"] == 4
        assert report["quizzes"]["damaged"] == 1
        details = {d["quiz_id"]: d for d in report["quizzes"]["details"]}
        assert details["broken"]["status"] == "error"
        assert details["broken"]["issues"]
        assert (details["python"]["status"], details["python"]["issues"]) == ("ok", [])
