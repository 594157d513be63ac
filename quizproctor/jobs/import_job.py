"""Bulk quiz-pool import from CSV.

Row layout (first row is a header and is skipped)::

    quiz code, quiz name, question, option A, option B, option C, option D, correct index (0-3)

Rows for an existing quiz are appended to it; unknown codes create a new
custom quiz. Short or unparseable rows are counted as skipped.
"""
import csv
import io
import logging
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError
from rq import get_current_job

from quizproctor.core.database import SessionLocal
from quizproctor.core.errors import QuizProctorError
from quizproctor.models.domain import Question
from quizproctor.store.quiz_store import QuizStore

logger = logging.getLogger(__name__)

MIN_FIELDS = 8


def parse_rows(csv_text: str, summary: Dict[str, int]) -> Dict[str, Dict[str, Any]]:
    """Group valid rows by quiz code, preserving first-seen order."""
    groups: Dict[str, Dict[str, Any]] = {}
    reader = csv.reader(io.StringIO(csv_text.strip()), skipinitialspace=True)
    next(reader, None)
    for line_no, fields in enumerate(reader, start=2):
        if len(fields) < MIN_FIELDS or not any(f.strip() for f in fields):
            summary["skipped_lines"] += 1
            continue
        code, name, text, *options = (f.strip() for f in fields[:MIN_FIELDS])
        options, correct = options[:4], options[4]
        try:
            question = Question(text=text, options=options, correct_index=int(correct))
        except (ValueError, PydanticValidationError):
            summary["skipped_lines"] += 1
            continue
        group = groups.setdefault(code, {"name": name, "questions": [], "lines": []})
        group["questions"].append(question)
        group["lines"].append(line_no)
    return groups


def import_quiz_pool(store: QuizStore, csv_text: str,
                     progress: Optional[Callable[[int, int], None]] = None) -> Dict[str, Any]:
    summary = {
        "total_quizzes": 0,
        "created_quizzes": 0,
        "updated_quizzes": 0,
        "processed_questions": 0,
        "skipped_lines": 0,
        "errors": 0,
    }
    results: List[Dict[str, Any]] = []
    groups = parse_rows(csv_text, summary)
    for done, (code, group) in enumerate(groups.items(), start=1):
        questions = group["questions"]
        try:
            if store.find_quiz(code) is None:
                store.create_quiz(quiz_id=code, name=group["name"], description=f"Imported quiz: {group['name']}",
                                  questions=questions, is_custom=True)
                action, total = "created", len(questions)
                summary["total_quizzes"] += 1
                summary["created_quizzes"] += 1
            else:
                total = store.append_questions(code, questions)
                action = "updated"
                summary["updated_quizzes"] += 1
        except QuizProctorError as e:
            store.db.rollback()
            logger.warning(f"Import of quiz {code} failed: {e.message}")
            summary["errors"] += len(questions)
            results.append({"quiz_code": code, "action": "error", "lines": group["lines"], "error": e.message})
        else:
            summary["processed_questions"] += len(questions)
            results.append({"quiz_code": code, "name": group["name"], "action": action,
                            "questions_added": len(questions), "total_questions": total})
        if progress:
            progress(done, len(groups))
    logger.info(f"Quiz pool import finished: {summary}")
    return {"summary": summary, "results": results}


def import_quiz_pool_job(csv_text: str) -> Dict[str, Any]:
    job = get_current_job()

    def report(done: int, total: int) -> None:
        if job is not None:
            job.meta.update({"state": "running", "done": done, "total": total})
            job.save_meta()

    if job is not None:
        job.meta.update({"state": "running", "done": 0, "total": 0})
        job.save_meta()
    db = SessionLocal()
    try:
        result = import_quiz_pool(QuizStore(db), csv_text, progress=report)
    except Exception:
        if job is not None:
            job.meta.update({"state": "failed"})
            job.save_meta()
        raise
    finally:
        db.close()
    if job is not None:
        job.meta.update({"state": "done"})
        job.save_meta()
    return result
