import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from consent_wallet.config import settings
from consent_wallet.database import create_tables
from consent_wallet.dependencies import Services, build_services
from consent_wallet.exception_handlers import register_exception_handlers
from consent_wallet.middleware.logging import StructuredLoggingMiddleware, configure_logging
from consent_wallet.routes import consents, messages, monitoring, sse, tabs

logger = logging.getLogger(__name__)


def create_app(services: Services | None = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        services: Pre-built services. When given, the caller owns their
            start-up and shutdown and the lifespan leaves them alone.
    """
    managed = services is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if managed:
            await create_tables()
            await app.state.services.coordinator.initialize()
            app.state.services.scheduler.start()
            logger.info(f"{settings.app_name} started ({settings.environment})")
        yield
        if managed:
            app.state.services.scheduler.shutdown(wait=False)
            await app.state.services.coordinator.close()
            logger.info(f"{settings.app_name} stopped")

    app = FastAPI(
        title=settings.app_name,
        description="Detects consent prompts and drives the consent token lifecycle",
        debug=settings.debug,
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.services = services or build_services(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(StructuredLoggingMiddleware)
    register_exception_handlers(app)

    app.include_router(messages.router, prefix="/api/v1")
    app.include_router(consents.router, prefix="/api/v1")
    app.include_router(tabs.router, prefix="/api/v1")
    app.include_router(sse.router, prefix="/api/v1")
    app.include_router(monitoring.router)

    return app


if __name__ == "__main__":
    configure_logging(settings.log_level, json_format=settings.log_format == "json")
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
