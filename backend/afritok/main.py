import asyncio
import logging
import os
import time
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from afritok.api.auth import router as auth_router
from afritok.api.users import router as users_router
from afritok.core.api_response import error_response_payload, get_request_id
from afritok.core.config import get_settings
from afritok.core.errors import AppError
from afritok.core.metrics import increment_counter, prometheus_text
from afritok.db.base import Base
from afritok.db.session import engine
from afritok.otp.dependencies import get_challenge_store
from afritok.otp.sweep import run_challenge_sweep_loop, stop_challenge_sweep

logger = logging.getLogger(__name__)
if not logging.getLogger().handlers:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


@asynccontextmanager
async def lifespan(_: FastAPI):
    # Fails startup on a missing production SECRET_KEY.
    settings = get_settings()
    if os.getenv("DB_CREATE_ALL", "false").strip().lower() in {"1", "true", "yes", "on"}:
        Base.metadata.create_all(bind=engine)

    sweep_stop_event: asyncio.Event | None = None
    sweep_task: asyncio.Task | None = None
    if settings.otp_sweep_enabled:
        sweep_stop_event = asyncio.Event()
        sweep_task = asyncio.create_task(
            run_challenge_sweep_loop(get_challenge_store(), sweep_stop_event, settings.otp_sweep_interval_seconds)
        )

    yield

    if sweep_task is not None and sweep_stop_event is not None:
        await stop_challenge_sweep(sweep_task, sweep_stop_event)


app = FastAPI(title="Afritok API", lifespan=lifespan)
app.include_router(auth_router)
app.include_router(users_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _route_label(request: Request) -> str:
    # Route template keeps the label set bounded; unknown paths share one series.
    return getattr(request.scope.get("route"), "path", "unmatched")


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or uuid4().hex
    request.state.request_id = request_id
    started_at = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - started_at) * 1000
    response.headers["X-Request-ID"] = request_id
    if request.url.path != "/metrics/prometheus":
        increment_counter(
            "http_requests_total",
            method=request.method.upper(),
            path=_route_label(request),
            status=str(response.status_code),
        )
    logger.info(
        "http_request request_id=%s method=%s path=%s status=%s duration_ms=%.2f",
        request_id,
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
    )
    return response


def _count_error(request: Request, status_code: int) -> None:
    increment_counter(
        "http_errors_total",
        code=str(status_code),
        path=_route_label(request),
        method=request.method.upper(),
    )


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    _count_error(request, exc.status_code)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response_payload(request, code=exc.code, message=exc.message, details=exc.details),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    detail = exc.detail
    message = detail if isinstance(detail, str) else "Request failed"
    _count_error(request, exc.status_code)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response_payload(
            request,
            code=f"http_{exc.status_code}",
            message=message,
            details=detail,
        ),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    _count_error(request, 422)
    return JSONResponse(
        status_code=422,
        content=error_response_payload(
            request,
            code="validation_error",
            message="Validation error",
            details=[{"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")} for err in exc.errors()],
        ),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    _count_error(request, 500)
    logger.exception("Unhandled error request_id=%s", get_request_id(request), exc_info=exc)
    return JSONResponse(
        status_code=500,
        content=error_response_payload(
            request,
            code="internal_error",
            message="Internal server error",
        ),
    )


@app.get("/health")
def health(request: Request):
    return {"ok": True, "status": "ok", "request_id": get_request_id(request)}


@app.get("/metrics/prometheus")
def metrics_prometheus():
    return PlainTextResponse(content=prometheus_text(), media_type="text/plain; version=0.0.4; charset=utf-8")
