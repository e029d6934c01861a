import logging
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv

# .env from the project root wherever uvicorn is started
_PROJ_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(_PROJ_ROOT / ".env")

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlmodel import Session

from gitgrade.api.analysis import router as analysis_router
from gitgrade.api.checkout import router as checkout_router
from gitgrade.api.responses import error_response
from gitgrade.api.webhooks import router as webhooks_router
from gitgrade.core.config import is_openai_configured, is_paddle_configured, settings
from gitgrade.core.database import engine, init_db, ping
from gitgrade.core.rate_limit import limiter
from gitgrade.logging import setup_logging
from gitgrade.services.queue import queue_depth

setup_logging(level=settings.log_level)
log = logging.getLogger("gitgrade")


def _cors_origins_list() -> list[str]:
    if not settings.cors_origins or settings.cors_origins.strip() == "*":
        return ["*"]
    return [o.strip() for o in settings.cors_origins.split(",") if o.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    log.info("OpenAI configured: %s", "yes" if is_openai_configured() else "NO (add OPENAI_API_KEY=sk-... to .env)")
    log.info("Paddle configured: %s (sandbox=%s)", "yes" if is_paddle_configured() else "NO", settings.paddle_sandbox)
    if not settings.paddle_webhook_secret:
        log.warning("PADDLE_WEBHOOK_SECRET is empty: webhook signatures will not be verified")
    yield


app = FastAPI(
    title="GitGrade API",
    description="GitHub profile analysis with AI scoring and a paid full report",
    lifespan=lifespan,
)
app.state.limiter = limiter


def _rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    log.warning("Rate limit exceeded: path=%s limit=%s", request.url.path, exc.detail)
    return error_response(request, 429, "Too many requests. Please wait a minute.")


def _validation_error_message(exc: RequestValidationError) -> str:
    errs = exc.errors()
    if not errs:
        return "Invalid request."
    first = errs[0]
    loc = list(first.get("loc") or [])
    field = str(loc[-1]) if loc else None
    if first.get("type") == "missing":
        if field == "username":
            return "GitHub username is required."
        if field == "analysis_id":
            return "Analysis id is required."
        return f"Missing field: {field}" if field else "Invalid request."
    # Custom validators raise ValueError("..."); pydantic prefixes it with "Value error, "
    return (first.get("msg") or "Invalid request.").removeprefix("Value error, ")


def jsonable_errors(errs) -> list[dict]:
    # ctx may hold the raw ValueError, which is not JSON serializable
    return [{k: v for k, v in e.items() if k != "ctx"} for e in errs]


@app.exception_handler(RequestValidationError)
def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errs = exc.errors()
    log.warning(
        "Request validation error (422): path=%s method=%s detail=%s",
        request.url.path,
        request.method,
        errs,
    )
    return error_response(request, 422, _validation_error_message(exc), errors=jsonable_errors(errs))


app.add_exception_handler(RateLimitExceeded, _rate_limit_handler)


@app.exception_handler(HTTPException)
def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return error_response(request, exc.status_code, exc.detail if isinstance(exc.detail, str) else str(exc.detail))


@app.exception_handler(Exception)
def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception("Unhandled exception: path=%s %s", request.url.path, exc, exc_info=True)
    return error_response(request, 500, "Unexpected server error.")


@app.middleware("http")
async def request_id_and_latency(request: Request, call_next):
    request.state.request_id = str(uuid.uuid4())
    start = time.perf_counter()
    response = await call_next(request)
    latency_ms = (time.perf_counter() - start) * 1000
    response.headers["X-Request-ID"] = request.state.request_id
    log.info(
        "request_id=%s method=%s path=%s status=%s latency_ms=%.2f",
        request.state.request_id,
        request.method,
        request.url.path,
        response.status_code,
        latency_ms,
    )
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(analysis_router)
app.include_router(checkout_router)
app.include_router(webhooks_router)


@app.get("/health")
def health():
    database = "connected"
    pending = None
    try:
        ping()
        with Session(engine) as db:
            pending = queue_depth(db)
    except Exception as e:
        log.warning("Health check database error: %s", e)
        database = "disconnected"
    return {
        "status": "ok" if database == "connected" else "degraded",
        "database": database,
        "openai_configured": is_openai_configured(),
        "paddle_configured": is_paddle_configured(),
        "queue": {"pending": pending},
    }
