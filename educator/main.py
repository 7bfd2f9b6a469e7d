"""
Virtual Educator - Main Application Entry Point
"""
import logging
import shutil
import sys
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict, Any

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware

from educator.core.config import settings
from educator.core.errors import PipelineFailure, UpstreamUnconfigured, ValidationFailure
from educator.core.security_utils import sanitize_log_data

# Configure logging first
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)
logger = logging.getLogger(__name__)

# Prometheus metrics
request_count = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status']
)
request_latency = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency',
    ['method', 'endpoint']
)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to collect Prometheus metrics"""

    async def dispatch(self, request: Request, call_next):
        start_time = datetime.utcnow()

        response = await call_next(request)

        latency = (datetime.utcnow() - start_time).total_seconds()
        request_count.labels(
            method=request.method,
            endpoint=request.url.path,
            status=response.status_code
        ).inc()
        request_latency.labels(
            method=request.method,
            endpoint=request.url.path
        ).observe(latency)

        return response


def initialize_services():
    """
    Validate configuration and prepare working directories

    Production refuses to start with an invalid configuration. Development
    only logs what is missing; /chat then serves the API key reminder.
    """
    errors = settings.validate_production_settings()
    if errors:
        for error in errors:
            logger.error(f"Invalid production setting: {error}")
        sys.exit(1)

    for warning in settings.validate_development_settings():
        logger.warning(warning)

    if settings.OPENAI_CONFIGURED:
        logger.info(f"OpenAI configured (chat: {settings.OPENAI_CHAT_MODEL}, tts: {settings.TTS_MODEL}, stt: {settings.STT_MODEL})")
    else:
        logger.warning("OPENAI_API_KEY is not set - speech and generation endpoints are disabled")

    if shutil.which(settings.FFMPEG_PATH) is None:
        logger.warning(f"ffmpeg not found at '{settings.FFMPEG_PATH}' - audio conversion will fail")

    settings.ARTIFACT_DIR.mkdir(parents=True, exist_ok=True)
    settings.UPLOAD_DIR.mkdir(parents=True, exist_ok=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle - startup and shutdown events
    """
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")
    logger.info(f"Lip-sync strategy: {settings.LIPSYNC_STRATEGY}")

    initialize_services()

    yield

    # Shutdown
    logger.info("Shutting down application...")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Talking virtual educator: speech in, animated spoken replies out",
    docs_url="/docs" if settings.DEBUG else None,  # Disable docs in production
    redoc_url="/redoc" if settings.DEBUG else None,
    openapi_url="/openapi.json" if settings.DEBUG else None,
    lifespan=lifespan
)

# Add security middleware
app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=settings.TRUSTED_HOSTS
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add metrics middleware
app.add_middleware(MetricsMiddleware)


# Exception handlers
@app.exception_handler(ValidationFailure)
async def validation_failure_handler(request: Request, exc: ValidationFailure):
    logger.warning(f"Rejected {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(UpstreamUnconfigured)
async def upstream_unconfigured_handler(request: Request, exc: UpstreamUnconfigured):
    logger.warning(f"{request.url.path} called without OpenAI credentials")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(PipelineFailure)
async def pipeline_failure_handler(request: Request, exc: PipelineFailure):
    """
    Turn aborted by a failed stage; no partial results are returned
    """
    logger.error(f"Turn failed on {request.url.path}: {exc}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Global exception handler for unhandled exceptions
    """
    # Log the error with sanitized request data
    sanitized_data = sanitize_log_data({
        "method": request.method,
        "url": str(request.url),
        "headers": dict(request.headers),
        "client": request.client.host if request.client else None
    })

    logger.error(
        f"Unhandled exception: {exc}",
        extra={"request_data": sanitized_data},
        exc_info=True
    )

    # Return generic error in production
    if settings.IS_PRODUCTION:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "An internal error occurred"}
        )
    else:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": str(exc),
                "type": type(exc).__name__,
                "request_data": sanitized_data
            }
        )


# Health check endpoint
@app.get("/health", tags=["System"])
async def health_check() -> Dict[str, Any]:
    """
    Health check endpoint for monitoring

    Returns:
        Dict containing health status and metadata
    """
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "service": settings.APP_NAME
    }


# Detailed health check (only in non-production)
@app.get("/health/detailed", tags=["System"])
async def detailed_health_check() -> Dict[str, Any]:
    """
    Detailed health check with component status

    Returns:
        Dict containing detailed health information
    """
    if settings.IS_PRODUCTION:
        return {"error": "Detailed health check requires authentication"}

    components = {
        "api": "healthy",
        "openai": "configured" if settings.OPENAI_CONFIGURED else "not_configured",
        "ffmpeg": "healthy" if shutil.which(settings.FFMPEG_PATH) else "unhealthy: ffmpeg not found",
        "artifact_dir": "healthy" if settings.ARTIFACT_DIR.is_dir() else "not_configured",
        "prebaked_audio": "healthy" if settings.PREBAKED_AUDIO_DIR.is_dir() else "unhealthy: assets missing",
    }

    return {
        "status": "healthy" if all(v in ["healthy", "configured", "not_configured"] for v in components.values()) else "degraded",
        "timestamp": datetime.utcnow().isoformat(),
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "components": components,
        "config": {
            "debug": settings.DEBUG,
            "chat_model": settings.OPENAI_CHAT_MODEL,
            "tts_voice": settings.TTS_VOICE,
            "lipsync_strategy": settings.LIPSYNC_STRATEGY,
            "max_reply_messages": settings.MAX_REPLY_MESSAGES,
            "keep_turn_artifacts": settings.KEEP_TURN_ARTIFACTS
        }
    }


# Prometheus metrics endpoint
@app.get("/metrics", tags=["System"])
async def metrics():
    """
    Prometheus metrics endpoint

    Returns:
        Prometheus formatted metrics
    """
    if settings.IS_PRODUCTION:
        return {"error": "Metrics endpoint requires authentication"}

    return Response(generate_latest(), media_type="text/plain")


# Root endpoint
@app.get("/", tags=["System"])
async def root():
    """
    Root endpoint

    Returns:
        Welcome message
    """
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs" if settings.DEBUG else "Disabled in production"
    }


# Include API routers
from educator.api import routes

app.include_router(routes.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "educator.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
