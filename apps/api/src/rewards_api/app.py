from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from loguru import logger

from rewards_api.core.errors import RewardsError
from rewards_api.core.settings import settings
from rewards_api.db.session import dispose_engine
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing


APP_VERSION = "0.1.0"
RETRY_AFTER_SECONDS = "5"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Rewards API starting",
        environment=settings.environment,
        daily_checkin_points=settings.daily_checkin_points,
        referral_bonus_points=settings.referral_bonus_points,
        evidence_bucket=settings.spotlight_evidence_bucket or None,
    )
    try:
        yield
    finally:
        await dispose_engine()


async def _handle_rewards_error(request: Request, exc: RewardsError) -> JSONResponse:
    logger.info(
        "Rewards request rejected",
        path=request.url.path,
        code=exc.code,
        status_code=exc.status_code,
    )
    headers = {"Retry-After": RETRY_AFTER_SECONDS} if exc.retryable else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code, "retryable": exc.retryable},
        headers=headers,
    )


async def _handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error while serving request", path=request.url.path, method=request.method)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Something went wrong, please try again", "code": "internal_error", "retryable": False},
    )


def create_app() -> FastAPI:
    """Application factory for the rewards FastAPI service."""
    configure_logging(
        service_name="rewards-api",
        environment=settings.environment,
        version=APP_VERSION,
    )

    app = FastAPI(
        title="Rewards API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        settings=settings,
        service_name="rewards-api",
        service_version=APP_VERSION,
    )

    app.add_exception_handler(RewardsError, _handle_rewards_error)
    app.add_exception_handler(Exception, _handle_unexpected_error)
    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
