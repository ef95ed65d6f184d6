"""
Fleet Accounting API
FastAPI app exposing the accounting engine hooks to the Mutation Gateway.

Run with: uvicorn fleet_accounting.main:app
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from fleet_accounting import __version__
from fleet_accounting.errors import register_exception_handlers
from fleet_accounting.logger_config import configure_from_settings
from fleet_accounting.routers import router as accounting_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown tasks."""
    logger.info(f"Fleet Accounting API v{__version__} starting...")
    yield
    from fleet_accounting.database_pool import dispose_engine

    dispose_engine()
    logger.info("Shutting down Fleet Accounting API")


def create_app() -> FastAPI:
    configure_from_settings()
    app = FastAPI(
        title="Fleet Accounting API",
        description="Cost-per-mile, mileage, deadhead, fuel and profitability accounting",
        version=__version__,
        lifespan=lifespan,
    )
    app.include_router(accounting_router)
    register_exception_handlers(app)

    @app.get("/health")
    def health():
        return {"status": "healthy", "service": "fleet-accounting", "version": __version__}

    return app


app = create_app()


if __name__ == "__main__":
    import os

    import uvicorn

    # Only use reload in development (when DEV_MODE env var is set)
    is_dev = os.getenv("DEV_MODE", "false").lower() == "true"
    uvicorn.run("fleet_accounting.main:app", host="0.0.0.0", port=8000, reload=is_dev, log_level="info")
