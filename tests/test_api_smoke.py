import httpx
import pytest
from quizproctor.api.coding import get_runner
from quizproctor.models.orm import Quiz
from quizproctor.services.grading import SandboxRunner
from quizproctor.services.seed import seed_defaults

@pytest.fixture
def seeded(db):
    seed_defaults(db)

def test_health(client):
    r = client.get("/health"); assert r.status_code == 200 and r.json() == {"status": "ok"}

def test_login(client, seeded):
    r = client.post("/v1/auth/login", json={"username": "admin", "password": "change-me"})
    assert r.status_code == 200; token = r.json()["access_token"]
    r = client.get("/v1/stats", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200 and r.json()["total_quizzes"] == 3
    r = client.post("/v1/auth/login", json={"username": "admin", "password": "wrong"})
    assert r.status_code == 401 and r.json()["error"]["type"] == "http_error"

def test_admin_routes_need_token(client, seeded):
    assert client.get("/v1/buckets").status_code in (401, 403)
    assert client.get("/v1/buckets", headers={"Authorization": "Bearer nonsense"}).status_code == 401

def test_deliver_quiz(client, seeded):
    r = client.get("/v1/quizzes/javascript", params={"randomize_options": True, "question_limit": 3})
    assert r.status_code == 200; body = r.json()
    assert len(body["questions"]) == 3
    assert body["randomization_applied"] == {"questions": False, "options": True, "question_limit": 3, "final_question_count": 3}
    q = body["questions"][0]
    assert q["question"] == "What is the correct way to declare a variable in JavaScript?"
    assert q["options"][q["correct"]] == "var myVar = 5;"
    r = client.get("/v1/quizzes/nope")
    assert r.status_code == 404 and r.json()["error"]["type"] == "not_found"

def test_catalogue(client, seeded):
    r = client.get("/v1/quizzes"); assert r.status_code == 200
    assert {row["quiz_id"] for row in r.json()} == {"javascript", "python", "react"}

def test_quiz_admin_flow(client, seeded, admin_headers):
    quiz = {"id": "custom-1", "name": "Custom", "questions": [{"question": "1 + 1?", "options": ["1", "2"], "correct": 1}]}
    assert client.post("/v1/quizzes", json=quiz).status_code in (401, 403)
    r = client.post("/v1/quizzes", json=quiz, headers=admin_headers); assert r.status_code == 201
    r = client.post("/v1/quizzes", json=quiz, headers=admin_headers)
    assert r.status_code == 409 and r.json()["error"]["type"] == "duplicate_id"
    r = client.post("/v1/quizzes/custom-1/questions/single", json={"question": "2 + 2?", "options": ["4", "5"], "correct": 0}, headers=admin_headers)
    assert r.json()["total_questions"] == 2
    r = client.delete("/v1/quizzes/javascript", headers=admin_headers)
    assert r.status_code == 403 and r.json()["error"]["type"] == "quiz_protected"
    assert client.delete("/v1/quizzes/custom-1", headers=admin_headers).status_code == 200

def test_request_validation_envelope(client, admin_headers):
    r = client.post("/v1/quizzes", json={"id": "bad id!", "name": "", "questions": []}, headers=admin_headers)
    assert r.status_code == 422; err = r.json()["error"]
    assert err["type"] == "request_validation_error" and err["details"]

def test_compose_from_bucket(client, seeded, admin_headers):
    buckets = {b["name"]: b for b in client.get("/v1/buckets", headers=admin_headers).json()}
    js = buckets["JavaScript Fundamentals"]
    assert (js["easy_count"], js["medium_count"], js["hard_count"]) == (1, 2, 2)
    req = {"quiz_id": "js-mini", "quiz_name": "JS mini", "bucket_id": js["id"], "easy_count": 1, "hard_count": 2}
    r = client.post("/v1/buckets/compose", json=req, headers=admin_headers)
    assert r.status_code == 201 and r.json()["questions_selected"] == 3
    r = client.post("/v1/buckets/compose", json=dict(req, quiz_id="js-big", easy_count=4), headers=admin_headers)
    assert r.status_code == 422; err = r.json()["error"]
    assert (err["type"], err["tier"], err["requested"], err["available"]) == ("insufficient_questions", "easy", 4, 1)

def test_proctoring_flow(client, admin_headers):
    start = {"session_id": "s-1", "user_email": "ada@example.com", "user_name": "Ada", "assessment_id": "javascript", "strict_mode": True}
    assert client.post("/v1/proctoring/start", json=start).status_code == 201
    assert client.post("/v1/proctoring/start", json=start).status_code == 409
    for n in (1, 2, 3):
        r = client.post("/v1/proctoring/log", json={"session_id": "s-1", "violation_type": "tab_switch"})
        assert r.status_code == 200 and r.json()["violation_count"] == n
    assert r.json()["terminated"] is True and r.json()["status"] == "terminated"
    r = client.post("/v1/proctoring/log", json={"session_id": "s-1", "violation_type": "tab_switch"})
    assert r.status_code == 409 and r.json()["error"]["type"] == "session_not_active"
    r = client.post("/v1/proctoring/end", json={"session_id": "s-1"})
    assert r.status_code == 200 and r.json()["status"] == "terminated"
    r = client.get("/v1/proctoring/sessions/s-1", headers=admin_headers)
    assert r.json()["violation_count"] == len(r.json()["violations"]) == 3
    r = client.get("/v1/proctoring/stats", params={"timeframe": "all"}, headers=admin_headers)
    assert r.json()["sessions_by_status"]["terminated"] == 1
    assert client.get("/v1/proctoring/stats", params={"timeframe": "1y"}, headers=admin_headers).status_code == 400
    r = client.post("/v1/proctoring/log", json={"session_id": "ghost", "violation_type": "tab_switch"})
    assert r.status_code == 404 and r.json()["error"]["type"] == "session_not_found"

def test_invitation_flow(client, seeded, admin_headers):
    r = client.post("/v1/participants/invitations", headers=admin_headers,
                    json={"quiz_id": "python", "participants": [{"name": "Ada", "email": "ada@example.com"}]})
    assert r.status_code == 200; token = r.json()["results"][0]["access_token"]
    r = client.get(f"/v1/participants/verify/{token}")
    assert r.status_code == 200 and r.json()["quiz"]["id"] == "python" and len(r.json()["quiz"]["questions"]) == 5
    assert client.get("/v1/participants/verify/not-a-token").status_code == 404

def test_results(client, admin_headers):
    result = {"name": "Ada", "email": "ada@example.com", "assessment_track": "Python", "track_id": "python",
              "login_date_time": "2026-01-01T10:00:00Z", "completion_time": "2026-01-01T10:20:00Z",
              "max_score": 5, "achieved_score": 4, "total_questions": 5, "duration": 1200, "answers": [0, 1, 1, 0, 2]}
    assert client.post("/v1/results", json=result).status_code == 201
    r = client.post("/v1/results", json=dict(result, achieved_score=6))
    assert r.status_code == 400 and r.json()["error"]["type"] == "validation_error"
    r = client.get("/v1/results", headers=admin_headers)
    assert [row["achieved_score"] for row in r.json()] == [4]

def test_coding_submission(client, seeded):
    from quizproctor.main import app
    def handler(request):
        return httpx.Response(200, json={"run": {"stdout": "True\n" if b"racecar" in request.content else "False\n", "code": 0}})
    app.dependency_overrides[get_runner] = lambda: SandboxRunner(client=httpx.Client(transport=httpx.MockTransport(handler)))
    challenges = {c["title"]: c for c in client.get("/v1/coding/challenges/available").json()}
    palindrome = challenges["Palindrome Check"]
    assert len(palindrome["test_cases"]) == 2 and not any(t["is_hidden"] for t in palindrome["test_cases"])
    r = client.post(f"/v1/coding/challenges/{palindrome['id']}/submissions", json={"user_name": "ada", "code": "print(True)"})
    assert r.status_code == 201; body = r.json()
    # racecar passes, hello passes (False), the hidden panama case expects True and fails
    assert (body["passed_tests"], body["total_tests"], body["score"]) == (2, 3, 67)
    assert body["results"][2]["hidden"] is True and body["results"][2]["actual_output"] is None

def test_partially_damaged_quiz_still_delivered(client, db, admin_headers):
    quiz = {"id": "partial", "name": "Partial", "questions": [{"question": "1 + 1?", "options": ["1", "2"], "correct": 1}] * 3}
    assert client.post("/v1/quizzes", json=quiz, headers=admin_headers).status_code == 201
    row = db.get(Quiz, "partial"); row.questions = row.questions[:-1] + ', {"question": "no options", "correct": 0}]'; db.commit()
    r = client.get("/v1/quizzes/partial", params={"randomize_options": True})
    assert r.status_code == 200 and r.json()["has_error"] is True and len(r.json()["questions"]) == 4
    assert r.json()["questions"][3] == {"question": "no options", "correct": 0}
    r = client.get("/v1/admin/health-check", headers=admin_headers)
    assert r.status_code == 200 and r.json()["quizzes"]["damaged"] == 1
    r = client.post("/v1/admin/quizzes/partial/repair", headers=admin_headers)
    assert r.json() == {"quiz_id": "partial", "repaired": True, "question_count": 3, "dropped": 1}
    r = client.get("/v1/quizzes/partial"); assert r.json()["has_error"] is False and len(r.json()["questions"]) == 3

def test_admin_bulk_maintenance(client, seeded, admin_headers):
    assert client.delete("/v1/admin/quizzes").status_code in (401, 403)
    client.post("/v1/quizzes", json={"id": "c1", "name": "C1", "questions": [{"question": "?", "options": ["a", "b"], "correct": 0}]}, headers=admin_headers)
    r = client.post("/v1/admin/quizzes/repair", headers=admin_headers)
    assert r.status_code == 200 and r.json()["repaired_count"] == 0 and len(r.json()["results"]) == 4
    r = client.delete("/v1/admin/quizzes", headers=admin_headers)
    assert r.status_code == 200 and r.json() == {"deleted_count": 1}
    assert {row["quiz_id"] for row in client.get("/v1/quizzes").json()} == {"javascript", "python", "react"}

def test_clear_results(client, admin_headers):
    result = {"name": "Ada", "email": "ada@example.com", "assessment_track": "Python", "track_id": "python",
              "login_date_time": "2026-01-01T10:00:00Z", "completion_time": "2026-01-01T10:20:00Z",
              "max_score": 5, "achieved_score": 4, "total_questions": 5, "duration": 1200}
    client.post("/v1/results", json=result)
    assert client.delete("/v1/results").status_code in (401, 403)
    r = client.delete("/v1/results", headers=admin_headers)
    assert r.status_code == 200 and r.json()["deleted_count"] == 1
    assert client.get("/v1/results", headers=admin_headers).json() == []

def test_proctoring_start_needs_valid_email(client):
    start = {"session_id": "s-2", "user_email": "not-an-email", "assessment_id": "javascript"}
    r = client.post("/v1/proctoring/start", json=start)
    assert r.status_code == 422 and r.json()["error"]["type"] == "request_validation_error"
