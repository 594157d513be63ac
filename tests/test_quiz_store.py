"""
Tests for quiz and bucket persistence.
"""
import pytest
from sqlalchemy import select

from quizproctor.core.errors import DuplicateId, MalformedStoredData, NotFound, QuizProtected
from quizproctor.models.domain import Difficulty, ProctoringConfig, RandomizationConfig
from quizproctor.models.orm import BucketQuestion
from quizproctor.store.codec import from_json, to_json

from conftest import make_question


def _assert_counts_match_rows(db, bucket):
    rows = db.scalars(select(BucketQuestion).where(BucketQuestion.bucket_id == bucket.id,
                                                   BucketQuestion.is_active.is_(True))).all()
    by_level = {d.value: sum(1 for r in rows if r.difficulty == d.value) for d in Difficulty}
    assert bucket.easy_count == by_level["easy"]
    assert bucket.medium_count == by_level["medium"]
    assert bucket.hard_count == by_level["hard"]
    assert bucket.total_questions == len(rows)


class TestCodec:
    """JSON column helpers."""

    def test_strict_decode_rejects_damage(self):
        with pytest.raises(ValueError):
            from_json("{not json")
        with pytest.raises(ValueError):
            from_json("undefined")

    def test_lenient_decode_returns_default(self):
        assert from_json("{not json", {}) == {}
        assert from_json(None, []) == []
        assert from_json('{"a": 1}', {}) == {"a": 1}

    def test_round_trip(self):
        assert from_json(to_json({"x": [1, 2]})) == {"x": [1, 2]}


class TestQuizzes:
    """Quiz rows and their inline questions."""

    def test_create_and_load(self, quiz_store):
        quiz = quiz_store.create_quiz("algebra", "Algebra", [make_question(), make_question(text="1 + 1?")],
                                      randomization=RandomizationConfig(randomize_options=True))
        assert quiz_store.get_quiz("algebra").name == "Algebra"
        loaded = quiz_store.load_questions(quiz)
        assert [q.text for q in loaded] == ["What is 2 + 2?", "1 + 1?"]
        assert quiz_store.load_randomization(quiz).randomize_options is True
        assert quiz_store.load_proctoring(quiz) == ProctoringConfig()

    def test_stored_shape_uses_canonical_keys(self, quiz_store):
        quiz = quiz_store.create_quiz("shape", "Shape", [make_question()])
        stored = from_json(quiz.questions)
        assert stored[0]["question"] == "What is 2 + 2?"
        assert stored[0]["correct"] == 1
        assert "original_order" not in stored[0]

    def test_duplicate_id(self, quiz_store):
        quiz_store.create_quiz("dup", "First", [make_question()])
        with pytest.raises(DuplicateId):
            quiz_store.create_quiz("dup", "Second", [make_question()])

    def test_default_quiz_cannot_be_deleted(self, quiz_store, javascript_quiz):
        with pytest.raises(QuizProtected):
            quiz_store.delete_quiz("javascript")
        assert quiz_store.find_quiz("javascript") is not None

    def test_custom_quiz_deleted(self, quiz_store):
        quiz_store.create_quiz("gone", "Gone", [make_question()])
        quiz_store.delete_quiz("gone")
        assert quiz_store.find_quiz("gone") is None
        with pytest.raises(NotFound):
            quiz_store.delete_quiz("gone")

    def test_malformed_questions(self, db, quiz_store):
        quiz = quiz_store.create_quiz("broken", "Broken", [make_question()])
        quiz.questions = "[{oops"
        db.commit()
        with pytest.raises(MalformedStoredData):
            quiz_store.load_questions(quiz)
        quiz.questions = '{"question": "not a list"}'
        db.commit()
        with pytest.raises(MalformedStoredData):
            quiz_store.load_questions(quiz)

    def test_damaged_settings_fall_back(self, db, quiz_store):
        quiz = quiz_store.create_quiz("settings", "Settings", [make_question()])
        quiz.randomization_settings = "garbage"
        quiz.proctoring_settings = '{"level": "extreme"}'
        db.commit()
        assert quiz_store.load_randomization(quiz) is None
        assert quiz_store.load_proctoring(quiz) == ProctoringConfig()

    def test_camel_case_settings_accepted(self, db, quiz_store):
        quiz = quiz_store.create_quiz("camel", "Camel", [make_question()])
        quiz.randomization_settings = '{"randomizeQuestions": true, "questionLimit": 2}'
        db.commit()
        cfg = quiz_store.load_randomization(quiz)
        assert cfg.randomize_questions is True
        assert cfg.question_limit == 2

    def test_update_patch(self, quiz_store):
        quiz_store.create_quiz("patch", "Before", [make_question()])
        quiz = quiz_store.update_quiz("patch", {"name": "After", "description": None,
                                                "proctoring": ProctoringConfig(enabled=True, strict_mode=True)})
        assert quiz.name == "After"
        assert quiz_store.load_proctoring(quiz).strict_mode is True

    def test_inline_edits(self, quiz_store):
        quiz_store.create_quiz("edits", "Edits", [make_question(text="one")])
        assert quiz_store.append_questions("edits", [make_question(text="two"), make_question(text="three")]) == 3
        quiz_store.replace_question("edits", 1, make_question(text="TWO"))
        assert quiz_store.remove_question("edits", 0) == 2
        texts = [q.text for q in quiz_store.load_questions(quiz_store.get_quiz("edits"))]
        assert texts == ["TWO", "three"]

    def test_inline_edit_index_out_of_range(self, quiz_store):
        quiz_store.create_quiz("short", "Short", [make_question()])
        with pytest.raises(NotFound):
            quiz_store.replace_question("short", 3, make_question())
        with pytest.raises(NotFound):
            quiz_store.remove_question("short", -1)


class TestRepair:
    """Repair, inspection and bulk delete of stored quizzes."""

    def _damage(self, db, quiz, payload):
        quiz.questions = payload
        db.commit()

    def test_repair_drops_only_invalid_entries(self, db, quiz_store):
        quiz = quiz_store.create_quiz("partial", "Partial", [make_question(text="kept 1"), make_question(text="kept 2")])
        self._damage(db, quiz, to_json(from_json(quiz.questions) + [{"question": "no options"}, "junk"]))

        outcome = quiz_store.repair_quiz("partial")
        assert (outcome.repaired, outcome.question_count, outcome.dropped) == (True, 2, 2)
        assert [q.text for q in quiz_store.load_questions(quiz_store.get_quiz("partial"))] == ["kept 1", "kept 2"]
        assert quiz_store.repair_quiz("partial").repaired is False

    def test_repair_unreadable_payload_empties_questions(self, db, quiz_store):
        quiz = quiz_store.create_quiz("broken", "Broken", [make_question()])
        self._damage(db, quiz, "[{oops")
        outcome = quiz_store.repair_quiz("broken")
        assert (outcome.repaired, outcome.question_count) == (True, 0)
        assert quiz_store.load_questions(quiz_store.get_quiz("broken")) == []

    def test_repair_unknown_quiz(self, quiz_store):
        with pytest.raises(NotFound):
            quiz_store.repair_quiz("nope")

    def test_repair_all(self, db, quiz_store, javascript_quiz):
        self._damage(db, quiz_store.create_quiz("broken", "Broken", [make_question()]), '{"not": "a list"}')
        outcomes = {o.quiz_id: o for o in quiz_store.repair_all_quizzes()}
        assert outcomes["broken"].repaired is True
        assert outcomes["javascript"].repaired is False
        assert outcomes["javascript"].question_count == 5

    def test_inspect(self, db, quiz_store, javascript_quiz):
        assert quiz_store.inspect_quiz(javascript_quiz).status == "ok"
        empty = quiz_store.create_quiz("empty", "Empty", [])
        assert quiz_store.inspect_quiz(empty).status == "warning"
        partial = quiz_store.create_quiz("partial", "Partial", [make_question()])
        self._damage(db, partial, to_json(from_json(partial.questions) + [{"correct": 1}]))
        health = quiz_store.inspect_quiz(partial)
        assert health.status == "error"
        assert health.issues == ["Invalid questions at positions [1]"]

    def test_delete_all_keeps_default_quizzes(self, quiz_store, javascript_quiz):
        quiz_store.create_quiz("custom-1", "Custom 1", [make_question()])
        quiz_store.create_quiz("custom-2", "Custom 2", [make_question()])
        assert quiz_store.delete_all_quizzes() == 2
        assert [q.id for q in quiz_store.list_quizzes()] == ["javascript"]


class TestBuckets:
    """Bucket counts always match the active question rows."""

    def test_counts_follow_every_change(self, db, quiz_store):
        bucket = quiz_store.create_bucket("Basics", "python")
        rows = [quiz_store.add_bucket_question(bucket.id, make_question(text=f"q{i}", difficulty=level))
                for i, level in enumerate(["easy", "easy", "medium", "hard"])]
        _assert_counts_match_rows(db, bucket)
        assert (bucket.easy_count, bucket.medium_count, bucket.hard_count) == (2, 1, 1)

        quiz_store.update_bucket_question(rows[0].id, make_question(text="q0", difficulty="hard"))
        _assert_counts_match_rows(db, bucket)
        assert (bucket.easy_count, bucket.hard_count) == (1, 2)

        quiz_store.update_bucket_question(rows[1].id, make_question(text="q1", difficulty="easy"), is_active=False)
        _assert_counts_match_rows(db, bucket)
        assert bucket.easy_count == 0

        quiz_store.delete_bucket_question(rows[2].id)
        _assert_counts_match_rows(db, bucket)
        assert bucket.total_questions == 2

    def test_recompute_repairs_drift(self, db, quiz_store):
        bucket = quiz_store.create_bucket("Drift", "js")
        quiz_store.add_bucket_question(bucket.id, make_question(difficulty="easy"))
        bucket.easy_count = 40
        bucket.total_questions = 40
        db.commit()
        quiz_store.recompute_bucket_counts(bucket.id)
        _assert_counts_match_rows(db, bucket)

    def test_duplicate_bucket_name_in_subject(self, quiz_store):
        quiz_store.create_bucket("Same", "sql")
        quiz_store.create_bucket("Same", "web")
        with pytest.raises(DuplicateId):
            quiz_store.create_bucket("Same", "sql")

    def test_inactive_bucket_hidden(self, quiz_store):
        bucket = quiz_store.create_bucket("Retired", "misc")
        quiz_store.update_bucket(bucket.id, "Retired", "misc", is_active=False)
        assert quiz_store.list_buckets() == []
        with pytest.raises(NotFound):
            quiz_store.get_bucket(bucket.id)
        with pytest.raises(NotFound):
            quiz_store.add_bucket_question(bucket.id, make_question())

    def test_filter_by_difficulty(self, quiz_store):
        bucket = quiz_store.create_bucket("Filter", "misc")
        quiz_store.add_bucket_question(bucket.id, make_question(text="e", difficulty="easy"))
        quiz_store.add_bucket_question(bucket.id, make_question(text="h", difficulty="hard"))
        rows = quiz_store.list_bucket_questions(bucket.id, difficulty=Difficulty.HARD)
        assert [r.question_text for r in rows] == ["h"]
