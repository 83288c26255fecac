"""
CreativeFuel Booking Proxy - FastAPI Application
Version: 2.0

Same-origin proxy in front of the n8n webhook and the Google Apps Scripts.
"""

import os
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

# Configure structured logging FIRST (before any other imports)
from services.logging_config import configure_logging, get_logger, set_request_id

is_production = os.getenv('APP_ENV', 'development') == 'production'
configure_logging(json_format=is_production, log_level=os.getenv('LOG_LEVEL', 'INFO'))

logger = get_logger(__name__)

from config import get_settings  # noqa: E402
from routers import attendance, auth, client_config, gateway, my_day  # noqa: E402
from services.metrics import get_metrics, record_request, set_app_info  # noqa: E402
from services.upstream import UpstreamClient  # noqa: E402

settings = get_settings()

NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan manager."""
    logger.info("Starting booking proxy", version=settings.APP_VERSION, env=settings.APP_ENV)

    # Tests install their own client before startup
    if getattr(app.state, "upstream", None) is None:
        app.state.upstream = UpstreamClient()
        logger.info("Upstream client initialized")

    missing = [name for name, configured in integration_status().items() if not configured]
    if missing:
        logger.warning("Integrations not configured", missing=missing)

    set_app_info(version=settings.APP_VERSION, environment=settings.APP_ENV)
    logger.info("Application ready!")

    yield

    logger.info("Shutting down...")
    if getattr(app.state, "upstream", None) is not None:
        await app.state.upstream.close()
        app.state.upstream = None
    logger.info("Goodbye!")


def integration_status() -> dict:
    return {
        "n8n_webhook": bool(settings.N8N_WEBHOOK_URL),
        "auth_script": bool(settings.GOOGLE_AUTH_SCRIPT_URL),
        "creators_script": bool(settings.GOOGLE_CREATORS_SCRIPT_URL),
        "myday_script": bool(settings.GOOGLE_MYDAY_SCRIPT_URL),
        "brandip_script": bool(settings.GOOGLE_BRANDIP_SCRIPT_URL),
        "attendance_script": bool(settings.GOOGLE_ATTENDANCE_SCRIPT_URL),
    }


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Slot booking proxy for n8n and Google Apps Script",
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "x-app-key", "x-request-id"],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Trace id from x-request-id (or a fresh one), no-store caching, request metrics."""
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())[:8]
    set_request_id(request_id)
    start = time.perf_counter()

    logger.info("Request started", method=request.method, path=request.url.path)

    response = await call_next(request)

    duration = time.perf_counter() - start
    route = request.scope.get("route")
    endpoint = getattr(route, "path", "unmatched")
    record_request(request.method, endpoint, response.status_code, duration)

    response.headers["X-Trace-ID"] = request_id
    for header, value in NO_STORE_HEADERS.items():
        response.headers[header] = value

    logger.info(
        "Request completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(duration * 1000, 2)
    )
    return response


app.include_router(gateway.router, prefix="/api", tags=["gateway"])
app.include_router(auth.router, prefix="/api", tags=["auth"])
app.include_router(attendance.router, prefix="/api", tags=["attendance"])
app.include_router(client_config.router, prefix="/api", tags=["config"])
app.include_router(my_day.router, prefix="/api", tags=["my-day"])


@app.get("/health/live")
async def liveness_check():
    """Liveness probe - the process is running."""
    return {"status": "alive"}


@app.get("/health/ready")
async def readiness_check():
    """
    Readiness probe.

    Reports which integrations are configured; not ready only when the
    upstream client is missing.
    """
    checks = {
        "status": "ready",
        "version": settings.APP_VERSION,
        "integrations": integration_status(),
    }
    if getattr(app.state, "upstream", None) is None:
        checks["status"] = "not_ready"
        return JSONResponse(status_code=503, content=checks)
    return checks


@app.get("/")
async def root():
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running"
    }


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return get_metrics()


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"ok": False, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None)
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"ok": False, "message": "Invalid request"})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"ok": False, "message": "Internal server error"}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=1
    )
