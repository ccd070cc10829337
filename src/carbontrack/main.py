"""FastAPI application entrypoint for CarbonTrack leaderboards."""

from fastapi import FastAPI

from .api.v1.router import api_router
from .core.config import get_settings
from .core.logs import configure_logging
from .jobs import register_scheduler


def create_app() -> FastAPI:
    """Instantiate and configure the FastAPI application."""
    configure_logging(get_settings().log_level)
    app = FastAPI(title="CarbonTrack Leaderboards API", version="0.1.0")
    app.include_router(api_router, prefix="/api/v1")
    register_scheduler(app)
    return app


app = create_app()
