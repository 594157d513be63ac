"""Error taxonomy shared by stores, services and the HTTP layer."""


class QuizProctorError(Exception):
    status_code = 500
    error_type = "internal_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(QuizProctorError):
    status_code = 404
    error_type = "not_found"


class SessionNotFound(NotFound):
    error_type = "session_not_found"

    def __init__(self, session_id: str, message: str | None = None):
        super().__init__(message or f"Proctoring session {session_id} not found")
        self.session_id = session_id


class SessionNotActive(SessionNotFound):
    status_code = 409
    error_type = "session_not_active"

    def __init__(self, session_id: str, status: str, message: str | None = None):
        super().__init__(session_id, message or f"Proctoring session {session_id} is not active (status: {status})")
        self.status = status


class DuplicateId(QuizProctorError):
    status_code = 409
    error_type = "duplicate_id"


class DuplicateSession(DuplicateId):
    error_type = "duplicate_session"


class InsufficientQuestions(QuizProctorError):
    status_code = 422
    error_type = "insufficient_questions"

    def __init__(self, tier: str, requested: int, available: int):
        super().__init__(f"Bucket has {available} active {tier} questions, {requested} requested")
        self.tier = tier
        self.requested = requested
        self.available = available


class MalformedStoredData(QuizProctorError):
    error_type = "malformed_stored_data"


class ValidationError(QuizProctorError):
    status_code = 400
    error_type = "validation_error"


class QuizProtected(QuizProctorError):
    status_code = 403
    error_type = "quiz_protected"


class SandboxUnavailable(QuizProctorError):
    status_code = 503
    error_type = "sandbox_unavailable"
