import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from quizproctor.core.config import LOG_LEVEL, SEED_DEFAULTS
from quizproctor.core.database import SessionLocal, init_db
from quizproctor.core.errors import InsufficientQuestions, QuizProctorError
from quizproctor.services.seed import seed_defaults
from quizproctor.api.auth import router as auth_router
from quizproctor.api.quizzes import router as quizzes_router
from quizproctor.api.buckets import router as buckets_router
from quizproctor.api.proctoring import router as proctoring_router
from quizproctor.api.results import router as results_router
from quizproctor.api.participants import router as participants_router
from quizproctor.api.coding import router as coding_router
from quizproctor.api.admin import router as admin_router

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting QuizProctor API...")
    init_db()
    if SEED_DEFAULTS:
        db = SessionLocal()
        try:
            seed_defaults(db)
        finally:
            db.close()
    yield
    logger.info("QuizProctor API stopped")

app = FastAPI(title="QuizProctor API", version="1.0.0", lifespan=lifespan)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_credentials=True, allow_methods=["*"], allow_headers=["*"])
app.include_router(auth_router, prefix="/v1/auth", tags=["auth"])
app.include_router(quizzes_router, prefix="/v1/quizzes", tags=["quizzes"])
app.include_router(buckets_router, prefix="/v1/buckets", tags=["buckets"])
app.include_router(proctoring_router, prefix="/v1/proctoring", tags=["proctoring"])
app.include_router(results_router, prefix="/v1", tags=["results"])
app.include_router(participants_router, prefix="/v1/participants", tags=["participants"])
app.include_router(coding_router, prefix="/v1/coding", tags=["coding"])
app.include_router(admin_router, prefix="/v1/admin", tags=["admin"])

@app.exception_handler(QuizProctorError)
async def quizproctor_exception_handler(request: Request, exc: QuizProctorError):
    if exc.status_code >= 500:
        logger.error(f"{exc.error_type} on {request.url.path}: {exc.message}")
    body = {"type": exc.error_type, "message": exc.message}
    if isinstance(exc, InsufficientQuestions):
        body.update(tier=exc.tier, requested=exc.requested, available=exc.available)
    return JSONResponse(status_code=exc.status_code, content={"error": body})

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code,
                        content={"error": {"type": "http_error", "message": exc.detail, "status_code": exc.status_code}},
                        headers=getattr(exc, "headers", None))

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                        content={"error": {"type": "request_validation_error", "message": "Validation error",
                                           "details": jsonable_errors(exc)}})

def jsonable_errors(exc: RequestValidationError):
    # ctx may carry exception instances that JSON cannot encode
    return [{k: v for k, v in e.items() if k != "ctx"} for e in exc.errors()]

@app.get("/health")
def health(): return {"status": "ok"}
