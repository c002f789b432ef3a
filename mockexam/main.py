"""
Main FastAPI application entry point.
"""
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from mockexam.api.attempts import router as attempts_router
from mockexam.api.auth import router as auth_router
from mockexam.api.author import router as author_router
from mockexam.api.questions import router as questions_router
from mockexam.api.stats import router as stats_router
from mockexam.core.config import get_settings
from mockexam.core.database import init_db
from mockexam.core.errors import ExamError

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting %s %s", settings.APP_NAME, settings.APP_VERSION)
    if settings.AUTO_CREATE_TABLES:
        init_db()
        logger.info("Database initialized")
    yield
    logger.info("Shutdown complete")


app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION, lifespan=lifespan)
app.add_middleware(CORSMiddleware, allow_origins=settings.CORS_ORIGINS, allow_credentials=True, allow_methods=["*"], allow_headers=["*"])


def _error(status_code: int, message, error_type: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"message": message, "type": error_type, "status_code": status_code}},
    )


def jsonable_errors(exc: RequestValidationError):
    # ctx may carry exception objects that JSONResponse cannot encode
    return [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]


@app.exception_handler(ExamError)
async def exam_error_handler(request: Request, exc: ExamError):
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.error_type, request.method, request.url.path, exc.message, exc_info=exc)
    return _error(exc.status_code, exc.message, exc.error_type)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _error(exc.status_code, exc.detail, "http_error")


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={"error": {"message": "Validation error", "type": "validation_error", "status_code": 422, "details": jsonable_errors(exc)}},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    message = "An internal error occurred" if settings.is_production() else str(exc)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, message, "internal_error")


app.include_router(auth_router, prefix=f"{settings.API_V1_PREFIX}/auth", tags=["auth"])
app.include_router(author_router, prefix=f"{settings.API_V1_PREFIX}/author", tags=["authoring"])
app.include_router(questions_router, prefix=f"{settings.API_V1_PREFIX}/exams", tags=["questions"])
app.include_router(attempts_router, prefix=f"{settings.API_V1_PREFIX}/attempts", tags=["attempts"])
app.include_router(stats_router, prefix=f"{settings.API_V1_PREFIX}/stats", tags=["stats"])


@app.get("/health")
def health():
    return {"status": "ok", "version": settings.APP_VERSION}
