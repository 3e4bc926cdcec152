"""
KCO FinOps API - FastAPI application.

Billing exports (AWS CUR, Azure, GCP or FOCUS) are uploaded to
`POST /api/process-csv`, normalized and summarized; the returned dataset id
drives the dashboard views under `/api/v1`. Datasets live in memory only.
"""

from contextlib import asynccontextmanager
import logging
import time
import uuid
from typing import List, Optional

from fastapi import FastAPI, Request, status, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from kco_finops.app.config import settings
from kco_finops.core.exceptions import FinOpsException
from kco_finops.core.services.dataset_store import get_dataset_store
from kco_finops.core.utils.logging import setup_logging

setup_logging()
logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def production_config_problems() -> List[str]:
    """Settings that must not reach a production deployment."""
    problems = []
    if "*" in settings.cors_origins:
        problems.append("CORS_ORIGINS must list explicit origins")
    if settings.debug:
        problems.append("DEBUG must be false")
    if settings.enable_api_docs:
        logger.warning("API docs are enabled in production")
    if settings.expose_error_details:
        logger.warning("EXPOSE_ERROR_DETAILS is on; exception text reaches clients")
    return problems


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Refuse to start with an unsafe production config; empty the store on shutdown."""
    logger.info(
        f"Starting {settings.app_name} v{settings.app_version}",
        extra={"environment": settings.environment}
    )

    if settings.is_production:
        problems = production_config_problems()
        for problem in problems:
            logger.critical(f"Production config error: {problem}")
        if problems:
            raise RuntimeError(f"Production configuration invalid: {'; '.join(problems)}")

    yield

    store = get_dataset_store()
    logger.info("Shutting down", extra={"cached_datasets": store.stats()["size"]})
    store.clear()


app = FastAPI(
    title="KCO FinOps API",
    version=settings.app_version,
    description=(
        "Cloud billing analysis. Upload a billing export to `POST /api/process-csv`, "
        "then query `/api/v1/dashboard/{dataset_id}/...` with the returned `datasetId`."
    ),
    docs_url="/docs" if settings.enable_api_docs else None,
    redoc_url="/redoc" if settings.enable_api_docs else None,
    openapi_tags=[
        {"name": "Health", "description": "Liveness and service information"},
        {"name": "Ingest", "description": "Billing CSV upload and processing summary"},
        {"name": "Datasets", "description": "Uploaded datasets and cache statistics"},
        {"name": "Dashboard", "description": "Dashboard views, data explorer and saved views"},
    ],
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    """Tag each request with an id, then log it with its latency."""
    started = time.perf_counter()
    request.state.request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex

    response = await call_next(request)

    elapsed = time.perf_counter() - started
    logger.info(
        f"{request.method} {request.url.path} -> {response.status_code}",
        extra={
            "status_code": response.status_code,
            "duration_ms": round(elapsed * 1000, 2),
            "request_id": request.state.request_id
        }
    )
    response.headers[REQUEST_ID_HEADER] = request.state.request_id
    response.headers["X-Process-Time"] = f"{elapsed:.6f}"
    response.headers["X-API-Version"] = settings.app_version
    return response


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None) or request.headers.get(REQUEST_ID_HEADER)


@app.exception_handler(FinOpsException)
async def finops_exception_handler(request: Request, exc: FinOpsException):
    logger.warning(
        exc.message,
        extra={
            "error_code": exc.error_code.value,
            "http_status": exc.http_status,
            "path": request.url.path,
            "request_id": _request_id(request)
        }
    )
    return JSONResponse(
        status_code=exc.http_status,
        content={**exc.to_dict(), "request_id": _request_id(request)}
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Keep the route's status code; attach the request id to the body."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "request_id": _request_id(request)},
        headers=exc.headers
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Last resort: log with traceback, answer 500 without internals."""
    request_id = _request_id(request)
    logger.error(
        f"Unhandled {type(exc).__name__} on {request.method} {request.url.path}",
        exc_info=True,
        extra={"request_id": request_id}
    )

    if settings.expose_error_details or settings.debug:
        message = str(exc)[:200]
    else:
        message = "An unexpected error occurred. Please try again or contact support."

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error", "message": message, "request_id": request_id}
    )


def _service_info() -> dict:
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }


@app.get("/health", tags=["Health"])
async def health_check():
    return {"status": "healthy", **_service_info()}


@app.get("/", tags=["Health"])
async def root():
    docs_enabled = settings.enable_api_docs
    return {
        "message": "KCO FinOps API",
        **_service_info(),
        "docs": "/docs" if docs_enabled else "disabled",
        "openapi": "/openapi.json" if docs_enabled else "disabled"
    }


from kco_finops.app.routers import ingest, datasets, dashboard  # noqa: E402

app.include_router(ingest.router, prefix="/api", tags=["Ingest"])
app.include_router(datasets.router, prefix="/api/v1", tags=["Datasets"])
app.include_router(dashboard.router, prefix="/api/v1", tags=["Dashboard"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "kco_finops.app.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        log_level=settings.log_level.lower()
    )
