"""Coding-challenge grading against an external sandbox.

Submissions are never executed in-process. Each test case is sent to a
Piston-compatible execution service (``SANDBOX_URL``) with the case input
on stdin; a case passes when the trimmed stdout equals the trimmed expected
output.
"""
import logging
from dataclasses import asdict, dataclass
from typing import List, Optional, Sequence

import httpx
from sqlalchemy import select
from sqlalchemy.orm import Session

from quizproctor.core.config import SANDBOX_LANGUAGE, SANDBOX_LANGUAGE_VERSION, SANDBOX_TIMEOUT, SANDBOX_URL
from quizproctor.core.errors import NotFound, SandboxUnavailable
from quizproctor.models.orm import CodingChallenge, CodingSubmission, CodingTestCase
from quizproctor.store.codec import to_json

logger = logging.getLogger(__name__)


@dataclass
class TestCase:
    __test__ = False

    input: str
    expected_output: str
    is_hidden: bool = False


@dataclass
class TestCaseResult:
    __test__ = False

    index: int
    passed: bool
    hidden: bool
    actual_output: Optional[str] = None
    error: Optional[str] = None

    def public(self) -> dict:
        """Hidden cases report only whether they passed."""
        data = asdict(self)
        if self.hidden:
            data["actual_output"] = None
            data["error"] = None
        return data


@dataclass
class GradeReport:
    results: List[TestCaseResult]

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def passed(self) -> int:
        return sum(1 for r in self.results if r.passed)

    @property
    def score(self) -> int:
        return round(self.passed / self.total * 100) if self.total else 0


class SandboxRunner:
    def __init__(self, url: str = SANDBOX_URL, language: str = SANDBOX_LANGUAGE,
                 version: str = SANDBOX_LANGUAGE_VERSION, timeout: float = SANDBOX_TIMEOUT,
                 client: Optional[httpx.Client] = None):
        self.url = url
        self.language = language
        self.version = version
        self.client = client or httpx.Client(timeout=timeout)

    def run(self, code: str, test_cases: Sequence[TestCase]) -> List[TestCaseResult]:
        return [self._run_case(i, code, case) for i, case in enumerate(test_cases)]

    def _run_case(self, index: int, code: str, case: TestCase) -> TestCaseResult:
        payload = {
            "language": self.language,
            "version": self.version,
            "files": [{"content": code}],
            "stdin": case.input,
        }
        try:
            resp = self.client.post(self.url, json=payload)
            resp.raise_for_status()
        except httpx.TimeoutException as e:
            raise SandboxUnavailable("Code sandbox timed out") from e
        except httpx.HTTPStatusError as e:
            raise SandboxUnavailable(f"Code sandbox returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise SandboxUnavailable(f"Code sandbox unreachable: {e}") from e

        body = resp.json()
        compile_stage = body.get("compile") or {}
        if compile_stage.get("code"):
            return TestCaseResult(index, False, case.is_hidden, error=compile_stage.get("stderr") or "compilation failed")
        run = body.get("run") or {}
        stdout = run.get("stdout") or ""
        if run.get("code"):
            return TestCaseResult(index, False, case.is_hidden, actual_output=stdout, error=run.get("stderr") or f"exit code {run.get('code')}")
        return TestCaseResult(index, stdout.strip() == case.expected_output.strip(), case.is_hidden, actual_output=stdout)


def get_challenge(db: Session, challenge_id: int) -> CodingChallenge:
    challenge = db.get(CodingChallenge, challenge_id)
    if challenge is None:
        raise NotFound(f"Challenge {challenge_id} not found")
    return challenge


def list_challenges(db: Session, active_only: bool = False) -> List[CodingChallenge]:
    stmt = select(CodingChallenge)
    if active_only:
        stmt = stmt.where(CodingChallenge.is_active.is_(True)).order_by(CodingChallenge.difficulty, CodingChallenge.title)
    else:
        stmt = stmt.order_by(CodingChallenge.created_at.desc())
    return list(db.scalars(stmt).all())


def list_test_cases(db: Session, challenge_id: int, include_hidden: bool = False) -> List[CodingTestCase]:
    stmt = select(CodingTestCase).where(CodingTestCase.challenge_id == challenge_id)
    if not include_hidden:
        stmt = stmt.where(CodingTestCase.is_hidden.is_(False))
    return list(db.scalars(stmt.order_by(CodingTestCase.order_index, CodingTestCase.id)).all())


def grade_submission(db: Session, runner: SandboxRunner, challenge_id: int, user_name: str, code: str,
                     time_spent: int = 0) -> tuple[CodingSubmission, GradeReport]:
    challenge = get_challenge(db, challenge_id)
    cases = [TestCase(c.input, c.expected_output, c.is_hidden) for c in list_test_cases(db, challenge.id, include_hidden=True)]
    report = GradeReport(runner.run(code, cases))
    submission = CodingSubmission(
        challenge_id=challenge.id, user_name=user_name, code=code, score=report.score,
        passed_tests=report.passed, total_tests=report.total, time_spent=time_spent,
        results=to_json([asdict(r) for r in report.results]),
    )
    db.add(submission)
    db.commit()
    logger.info(f"Challenge {challenge.id} graded for {user_name}: {report.passed}/{report.total} ({report.score}%)")
    return submission, report
