"""
DeskAuth application entry point.

Mounts the sign-in, password reset and external identity routers.
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from deskauth.config import settings
from deskauth.database import init_db, health_check as database_health_check
from deskauth.exceptions import AuthError
from deskauth.routers import auth, external_identity

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.APP_NAME} {settings.APP_VERSION} ({settings.ENVIRONMENT})")

    try:
        init_db()
    except Exception as e:
        logger.error(f"Failed to create database tables: {e}")

    if not settings.EXTERNAL_IDENTITY_ENABLED:
        logger.info("External identity sync disabled by configuration")
    elif not settings.EXTERNAL_IDENTITY_BASE_URL:
        logger.info("External identity sync disabled: EXTERNAL_IDENTITY_BASE_URL is not set")
    else:
        logger.info(f"External identity sync target: {settings.EXTERNAL_IDENTITY_BASE_URL}")

    yield

    logger.info(f"Shutting down {settings.APP_NAME}")


app = FastAPI(
    title=settings.APP_NAME,
    description="Sign-in orchestration with MFA, SSO tokens and external identity sync",
    version=settings.APP_VERSION,
    lifespan=lifespan,
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url="/api/redoc" if settings.DEBUG else None,
)


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError):
    """Authentication failures that escape a router keep their own status and code."""
    logger.warning(f"{exc.code} on {request.method} {request.url.path}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Log unhandled exceptions and return a generic 500."""
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=exc)

    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "message": str(exc) if settings.DEBUG else "An unexpected error occurred",
        }
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["*"],
)

app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(external_identity.router, prefix="/api/external-identity", tags=["External Identity"])


@app.get("/health")
async def health_check():
    """Liveness plus database reachability."""
    database_ok = database_health_check()
    return {
        "status": "healthy" if database_ok else "degraded",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "database": "connected" if database_ok else "unavailable",
        "external_identity": "configured" if settings.EXTERNAL_IDENTITY_ENABLED and settings.EXTERNAL_IDENTITY_BASE_URL else "disabled",
    }
