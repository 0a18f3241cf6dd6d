"""
API Application Entry Point

Defines the FastAPI application for the scheduling assistant: inbound email
webhook, nudge sweep trigger, session inspection and health check.

Design Considerations:
- Application factory for test isolation
- Exception handlers registered before routes
- Scheduling components built at startup so configuration errors surface early
"""

import logging
import os
from fastapi import FastAPI

from api.config import get_settings, EnvironmentType
from api.services.scheduling_service import get_scheduling_service
from api.utils.error_handlers import add_exception_handlers
from api.routes import webhooks, cron, sessions

# Configure logging
logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("api")


def create_application() -> FastAPI:
    """
    Create and configure FastAPI application instance.

    Returns:
        Configured FastAPI application
    """
    settings = get_settings()
    logging.getLogger().setLevel(settings.LOG_LEVEL)

    app = FastAPI(
        title=settings.API_TITLE,
        description=settings.API_DESCRIPTION,
        version=settings.API_VERSION,
        docs_url="/docs" if settings.ENVIRONMENT != EnvironmentType.PRODUCTION else None,
        redoc_url="/redoc" if settings.ENVIRONMENT != EnvironmentType.PRODUCTION else None,
        debug=settings.DEBUG
    )

    add_exception_handlers(app)

    app.include_router(webhooks.router)
    app.include_router(cron.router)
    app.include_router(sessions.router)

    @app.on_event("startup")
    async def startup_event():
        """Build the scheduling components, honoring dependency overrides."""
        logger.info("Scheduling API starting up")
        provider = app.dependency_overrides.get(get_scheduling_service, get_scheduling_service)
        provider()

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Scheduling API shutting down")

    @app.get("/health", tags=["Monitoring"])
    async def health_check():
        """API health check endpoint."""
        return {"status": "healthy"}

    logger.info(f"Application initialized in {settings.ENVIRONMENT.value} environment")
    return app


# Create application instance
app = create_application()
