"""
Tests for the CSV quiz-pool import.
"""
from quizproctor.jobs.import_job import import_quiz_pool

CSV = """quiz code,quiz name,question,option a,option b,option c,option d,correct
algebra,Algebra,What is 2+2?,3,4,5,6,1
algebra,Algebra,What is 3*3?,6,9,12,3,1
javascript,JavaScript Fundamentals,Which keyword declares a constant?,var,let,const,def,2
algebra,Algebra,Broken row,1,2
geometry,Geometry,Sides of a triangle?,2,3,4,5,x
geometry,Geometry,Out of range?,a,b,c,d,7
geometry,Geometry,"Angles, summed, in a triangle?",90,180,270,360,1
"""


class TestImportQuizPool:
    """import_quiz_pool."""

    def test_summary_counts(self, quiz_store, javascript_quiz):
        result = import_quiz_pool(quiz_store, CSV)
        assert result["summary"] == {
            "total_quizzes": 2,
            "created_quizzes": 2,
            "updated_quizzes": 1,
            "processed_questions": 4,
            "skipped_lines": 3,
            "errors": 0,
        }
        actions = {r["quiz_code"]: r["action"] for r in result["results"]}
        assert actions == {"algebra": "created", "javascript": "updated", "geometry": "created"}

    def test_rows_land_in_quizzes(self, quiz_store, javascript_quiz):
        import_quiz_pool(quiz_store, CSV)
        algebra = quiz_store.get_quiz("algebra")
        assert algebra.is_custom is True
        assert algebra.description == "Imported quiz: Algebra"
        assert [q.correct_index for q in quiz_store.load_questions(algebra)] == [1, 1]

        js = quiz_store.load_questions(quiz_store.get_quiz("javascript"))
        assert len(js) == 6
        assert js[-1].options[js[-1].correct_index] == "const"

        [geometry_q] = quiz_store.load_questions(quiz_store.get_quiz("geometry"))
        assert geometry_q.text == "Angles, summed, in a triangle?"

    def test_progress_reported(self, quiz_store):
        calls = []
        import_quiz_pool(quiz_store, CSV, progress=lambda done, total: calls.append((done, total)))
        assert calls == [(1, 3), (2, 3), (3, 3)]

    def test_damaged_target_counts_errors(self, db, quiz_store):
        quiz_store.create_quiz("algebra", "Algebra", [])
        quiz = quiz_store.get_quiz("algebra")
        quiz.questions = "{broken"
        db.commit()
        result = import_quiz_pool(quiz_store, CSV)
        assert result["summary"]["errors"] == 2
        assert result["summary"]["created_quizzes"] == 2
        [failed] = [r for r in result["results"] if r["action"] == "error"]
        assert failed["quiz_code"] == "algebra"
        assert failed["lines"] == [2, 3]

    def test_header_only(self, quiz_store):
        result = import_quiz_pool(quiz_store, "code,name,question,a,b,c,d,correct\n")
        assert result["summary"]["processed_questions"] == 0
        assert result["results"] == []
