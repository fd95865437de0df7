# app/main.py
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
import os
import time
import uuid

from app.api.routes import router
from app.config import EMBEDDING_MODEL, STORAGE_DIR
from app.errors import PipelineError
from app.observability.logger import setup_logging, get_logger
from app.observability.metrics import metrics_tracker
from app.observability.posthog_client import posthog_client

VERSION = "1.0.0"

# Logging must be configured before the first request
setup_logging()
logger = get_logger(__name__)

app = FastAPI(
    title="Document Retrieval API",
    description="Per-user document chunking, embedding and similarity search",
    version=VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


def _caller(request: Request) -> str:
    """Analytics id: the user when the proxy sent one, else the request."""
    return request.headers.get("x-user-id") or _request_id(request)


# ============================================================
# REQUEST TRACKING
# ============================================================

@app.middleware("http")
async def track_requests(request: Request, call_next):

    request.state.request_id = request_id = str(uuid.uuid4())
    start_time = time.time()

    try:
        response = await call_next(request)
    except Exception:
        metrics_tracker.record_failure()
        raise

    latency = time.time() - start_time

    # client errors are the caller's; only 5xx count against the service
    if response.status_code >= 500:
        metrics_tracker.record_failure()
    else:
        metrics_tracker.record_success(latency)

    logger.info(
        "request_completed",
        extra={
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "latency_seconds": round(latency, 3),
        },
    )

    response.headers["X-Request-ID"] = request_id

    return response


# ============================================================
# LIFECYCLE
# ============================================================

@app.on_event("startup")
async def startup_event():

    logger.info(
        "application_startup",
        extra={
            "version": VERSION,
            "storage_dir": STORAGE_DIR,
            "embedding_model": EMBEDDING_MODEL,
            "analytics": posthog_client.enabled,
        },
    )

    if not os.getenv("OPENAI_API_KEY"):
        logger.warning(
            "server_embedding_key_missing",
            extra={"impact": "uploads from users without their own key are stored unsearchable"},
        )


@app.on_event("shutdown")
async def shutdown_event():

    posthog_client.shutdown()

    logger.info("application_shutdown")


# ============================================================
# ERROR RESPONSES
# ============================================================

@app.exception_handler(PipelineError)
async def pipeline_exception_handler(request: Request, exc: PipelineError):
    """A known failure: report the stage that failed, never internals."""

    request_id = _request_id(request)

    logger.warning(
        "pipeline_failed",
        extra={
            "request_id": request_id,
            "path": request.url.path,
            "stage": exc.stage,
            "error": exc.message,
            "error_type": type(exc).__name__,
        },
    )

    metrics_tracker.record_stage_failure(exc.stage)

    posthog_client.track_error(
        distinct_id=_caller(request),
        error_type=type(exc).__name__,
        endpoint=request.url.path,
        stage=exc.stage,
        status_code=exc.status_code,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={**exc.to_dict(), "request_id": request_id},
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):

    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "request_id": _request_id(request)},
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):

    request_id = _request_id(request)

    logger.error(
        "unhandled_exception",
        extra={
            "request_id": request_id,
            "path": request.url.path,
            "error_type": type(exc).__name__,
        },
        exc_info=True,
    )

    posthog_client.track_error(
        distinct_id=_caller(request),
        error_type=type(exc).__name__,
        endpoint=request.url.path,
        status_code=500,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "An internal error occurred. Please try again.",
            "request_id": request_id,
        },
    )


@app.get("/")
async def root():

    return {
        "service": "Document Retrieval API",
        "version": VERSION,
        "endpoints": ["/upload", "/search", "/documents", "/user/api-key", "/health", "/metrics"],
        "docs": "/docs",
    }
