import logging
import time
import traceback
import uuid
from contextlib import asynccontextmanager
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root wherever uvicorn is started from
_PROJ_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(_PROJ_ROOT / ".env")

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from careconnect.api.auth import router as auth_router
from careconnect.api.diagnosis import router as diagnosis_router
from careconnect.api.directory import router as directory_router
from careconnect.api.documents import router as documents_router
from careconnect.core.config import is_ai_configured, settings
from careconnect.core.database import engine, init_db, ping_db
from careconnect.core.errors import CareConnectError, QuotaExceeded
from careconnect.core.rate_limit import _get_client_ip, limiter
from careconnect.core.throttle import SessionRegistry
from careconnect.logging import setup_logging
from careconnect.models import ErrorLog, SecurityLog

setup_logging()
log = logging.getLogger("careconnect")


def _cors_origins_list() -> list[str]:
    if not settings.cors_origins or settings.cors_origins.strip() == "*":
        return ["*"]
    return [o.strip() for o in settings.cors_origins.split(",") if o.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    log.info("AI_API_KEY loaded: %s", "yes" if is_ai_configured() else "NO (add AI_API_KEY=... to .env)")
    yield


app = FastAPI(
    title="CareConnect API",
    description="Symptom triage, doctor directory, appointments and medical documents",
    lifespan=lifespan,
)
app.state.limiter = limiter
# Per-login volatile state (cooldown timestamps); lost on restart
app.state.chat_sessions = SessionRegistry(
    idle_ttl=max(timedelta(minutes=10), timedelta(seconds=settings.ai_request_cooldown_seconds))
)


def _error_response(request: Request, status_code: int, detail: str, headers: dict | None = None) -> JSONResponse:
    rid = getattr(request.state, "request_id", None)
    body = {"error": detail, "status_code": status_code, "success": False}
    if rid:
        body["request_id"] = rid
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def _rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    try:
        ip = _get_client_ip(request)
        with Session(engine) as db:
            db.add(SecurityLog(event="rate_limit", ip=ip or None, endpoint=request.url.path, detail="Rate limit exceeded"))
            db.commit()
    except SQLAlchemyError as e:
        log.warning("SecurityLog rate_limit write failed: %s", e)
    return _error_response(request, 429, "Too many requests. Please wait a minute.")


def _validation_error_message(exc: RequestValidationError) -> str:
    errs = exc.errors()
    if not errs:
        return "Invalid request."
    first = errs[0]
    loc = list(first.get("loc") or [])
    field = str(loc[-1]) if len(loc) > 0 else None
    if first.get("type") == "missing":
        if field == "password":
            return "Please enter a password (at least 6 characters)."
        if field == "email":
            return "Please enter your email address."
        if field == "file":
            return "No file was sent. Please choose the file again."
        if field:
            return f"Missing field: {field}."
    return first.get("msg") or "Invalid request."


@app.exception_handler(RequestValidationError)
def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errs = exc.errors()
    log.warning(
        "Request validation error (422): path=%s method=%s detail=%s",
        request.url.path,
        request.method,
        errs,
    )
    rid = getattr(request.state, "request_id", None)
    body = {
        "error": _validation_error_message(exc),
        "status_code": 422,
        "success": False,
        "detail": [{"loc": list(e.get("loc") or []), "msg": e.get("msg"), "type": e.get("type")} for e in errs],
    }
    if rid:
        body["request_id"] = rid
    return JSONResponse(status_code=422, content=body)


app.add_exception_handler(RateLimitExceeded, _rate_limit_handler)


@app.exception_handler(CareConnectError)
def careconnect_error_handler(request: Request, exc: CareConnectError) -> JSONResponse:
    headers = None
    if isinstance(exc, QuotaExceeded):
        headers = {"Retry-After": str(max(1, int(exc.retry_after + 0.999)))}
    if exc.status_code >= 500:
        log.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
    return _error_response(request, exc.status_code, exc.message, headers)


@app.exception_handler(HTTPException)
def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return _error_response(request, exc.status_code, detail, exc.headers)


@app.exception_handler(Exception)
def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception("Unhandled exception: path=%s %s", request.url.path, exc)
    try:
        with Session(engine) as db:
            db.add(ErrorLog(
                user_id=None,
                endpoint=request.url.path,
                method=request.method,
                error_message=str(exc)[:2000],
                stack_trace=traceback.format_exc()[:10000],
            ))
            db.commit()
    except SQLAlchemyError as e:
        log.warning("ErrorLog write failed: %s", e)
    return JSONResponse(status_code=500, content={"error": "Unexpected server error.", "success": False})


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
app.include_router(auth_router)
app.include_router(diagnosis_router)
app.include_router(documents_router)
app.include_router(directory_router)


@app.get("/health")
def health():
    return {
        "status": "ok",
        "ai_configured": is_ai_configured(),
        "database": "ok" if ping_db() else "error",
    }
