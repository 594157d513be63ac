"""
Tests for invitations, access tokens and assessment results.
"""
from datetime import datetime, timedelta, timezone

import pytest

from quizproctor.core.errors import NotFound, ValidationError
from quizproctor.services import participants, results


def _result(db, email="ada@example.com", achieved=8, max_score=10, track_id="javascript", finished=None):
    finished = finished or datetime.now(timezone.utc)
    return results.submit_result(
        db, name="Ada", email=email, assessment_track="JavaScript Fundamentals", track_id=track_id,
        login_date_time=finished - timedelta(minutes=20), completion_time=finished,
        max_score=max_score, achieved_score=achieved, total_questions=10, duration_seconds=1200,
        answers=[0, 1, 2],
    )


class TestInvitations:
    """Invitation tokens."""

    def test_invite_and_verify(self, db, javascript_quiz):
        [invite] = participants.invite_participants(db, "javascript", [{"email": "ada@example.com", "name": "Ada"}],
                                                    assessment_link="https://quiz.example.com/take")
        assert invite.status == "sent"
        assert len(invite.access_token) == 32
        assert invite.link == f"https://quiz.example.com/take?token={invite.access_token}"

        row = participants.verify_access(db, invite.access_token)
        assert row.email == "ada@example.com"
        assert row.accessed_at is not None

    def test_link_with_existing_query(self, db, javascript_quiz):
        [invite] = participants.invite_participants(db, "javascript", [{"email": "bo@example.com"}],
                                                    assessment_link="https://quiz.example.com/take?lang=en")
        assert invite.link.endswith(f"&token={invite.access_token}")

    def test_reinvite_rotates_token(self, db, javascript_quiz):
        [first] = participants.invite_participants(db, "javascript", [{"email": "ada@example.com"}])
        [second] = participants.invite_participants(db, "javascript", [{"email": "ada@example.com"}])
        assert first.access_token != second.access_token
        with pytest.raises(NotFound):
            participants.verify_access(db, first.access_token)
        assert participants.verify_access(db, second.access_token).email == "ada@example.com"
        assert len(participants.list_participants(db, "javascript")) == 1

    def test_expired_token(self, db, javascript_quiz):
        [invite] = participants.invite_participants(db, "javascript", [{"email": "ada@example.com"}], ttl_days=-1)
        with pytest.raises(NotFound):
            participants.verify_access(db, invite.access_token)

    def test_unknown_quiz(self, db):
        with pytest.raises(NotFound):
            participants.invite_participants(db, "nope", [{"email": "ada@example.com"}])

    def test_listing_joins_results(self, db, javascript_quiz):
        participants.invite_participants(db, "javascript", [{"email": "ada@example.com"}, {"email": "bo@example.com"}])
        _result(db, email="ada@example.com", achieved=9)
        listed = {p["email"]: p for p in participants.list_participants(db, "javascript")}
        assert listed["ada@example.com"]["achieved_score"] == 9
        assert listed["bo@example.com"]["achieved_score"] is None


class TestResults:
    """Result submission and dashboard figures."""

    def test_submit_and_list(self, db):
        row = _result(db)
        assert row.id is not None
        assert results.decode_answers(row) == [0, 1, 2]
        assert [r.id for r in results.list_results(db)] == [row.id]

    def test_achieved_over_max_rejected(self, db):
        with pytest.raises(ValidationError):
            _result(db, achieved=11, max_score=10)

    def test_negative_score_rejected(self, db):
        with pytest.raises(ValidationError):
            _result(db, achieved=-1)

    def test_completion_before_login_rejected(self, db):
        now = datetime.now(timezone.utc)
        with pytest.raises(ValidationError):
            results.submit_result(db, "Ada", "ada@example.com", "JS", "javascript", now, now - timedelta(seconds=1),
                                  10, 5, 10, 0)

    def test_naive_times_treated_as_utc(self, db):
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        row = results.submit_result(db, "Ada", "ada@example.com", "JS", "javascript", now - timedelta(minutes=1), now,
                                    10, 5, 10, 60)
        assert row.id is not None

    def test_email_domain_restriction(self, db, monkeypatch):
        monkeypatch.setattr(results, "ALLOWED_EMAIL_DOMAIN", "company.com")
        with pytest.raises(ValidationError):
            _result(db, email="ada@example.com")
        assert _result(db, email="ada@Company.com").id is not None

    def test_recent_window(self, db):
        fresh = _result(db)
        _result(db, email="old@example.com", finished=datetime.now(timezone.utc) - timedelta(hours=5))
        assert [r.id for r in results.recent_results(db, hours=2)] == [fresh.id]

    def test_dashboard_stats(self, db, javascript_quiz):
        _result(db, email="ada@example.com", achieved=8)
        _result(db, email="ada@example.com", achieved=5)
        _result(db, email="bo@example.com", achieved=0, max_score=0)
        stats = results.dashboard_stats(db)
        assert stats == {"total_participants": 2, "total_assessments": 3, "total_quizzes": 1, "average_score": 65}

    def test_dashboard_empty(self, db):
        assert results.dashboard_stats(db) == {"total_participants": 0, "total_assessments": 0,
                                               "total_quizzes": 0, "average_score": 0}

    def test_clear_results(self, db):
        _result(db)
        _result(db, email="bo@example.com")
        assert results.clear_results(db) == 2
        assert results.list_results(db) == []
        assert results.clear_results(db) == 0
