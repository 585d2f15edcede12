"""FastAPI application entry point"""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from prometheus_fastapi_instrumentator import Instrumentator

from assetguard import models  # noqa: F401  (registers tables on Base.metadata)
from assetguard.api import assets, assignments, auth, health, returning_requests
from assetguard.config import settings
from assetguard.database import Base, engine
from assetguard.errors import AssetGuardError
from assetguard.middleware.rate_limit import limiter
from assetguard.utils.logger import logger, setup_logging

# Setup logging
setup_logging(settings.LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    # Startup
    Base.metadata.create_all(bind=engine)
    logger.info("AssetGuard backend starting up", extra={
        "operation": "startup",
        "reason": f"revocation={settings.REVOCATION_BACKEND} rate_limiting={settings.RATE_LIMIT_ENABLED}",
    })
    yield
    # Shutdown
    logger.info("AssetGuard backend shutting down", extra={"operation": "shutdown"})


# Create FastAPI app
app = FastAPI(
    title="AssetGuard",
    description="Asset assignment backend with session-revocable JWT authorization",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# ===== Middleware Setup =====

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Monitoring middleware
if settings.METRICS_ENABLED:
    from assetguard.middleware.monitoring import MonitoringMiddleware
    app.add_middleware(MonitoringMiddleware)

    # Prometheus metrics
    instrumentator = Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        should_respect_env_var=True,
        should_instrument_requests_inprogress=True,
        excluded_handlers=["/metrics", "/health", "/health/ready", "/health/live"],
        inprogress_name="assetguard_requests_inprogress",
        inprogress_labels=True
    )
    instrumentator.instrument(app)
    instrumentator.expose(app, endpoint=settings.METRICS_PATH, include_in_schema=False)

# Rate limiting (the limiter itself is a no-op when RATE_LIMIT_ENABLED is false)
app.state.limiter = limiter


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """Handle rate limit exceeded errors"""
    logger.warning(
        "Rate limit exceeded",
        extra={
            "operation": request.url.path,
            "reason": request.client.host if request.client else "unknown"
        }
    )
    return JSONResponse(
        status_code=429,
        content={
            "error": "rate_limit_exceeded",
            "message": "Too many requests. Please try again later.",
            "detail": str(exc.detail)
        }
    )

# ===== Route Setup =====

# Include routers
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(assignments.router)
app.include_router(returning_requests.router)
app.include_router(assets.router)


@app.get("/")
def root():
    """Root endpoint"""
    return {
        "service": "AssetGuard",
        "version": "0.1.0",
        "status": "operational",
        "docs": "/docs",
        "health": "/health",
        "metrics": settings.METRICS_PATH if settings.METRICS_ENABLED else None
    }


# ===== Error Handlers =====

@app.exception_handler(AssetGuardError)
async def assetguard_error_handler(request: Request, exc: AssetGuardError):
    """Render domain errors as {"error": kind, "message": text}"""
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.kind, "message": exc.message},
        headers=headers,
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for uncaught errors"""
    logger.error(
        f"Unhandled exception: {str(exc)}",
        extra={
            "operation": f"{request.method} {request.url.path}",
        },
        exc_info=True
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred. Please contact support."
        }
    )
