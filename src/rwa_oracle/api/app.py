"""FastAPI application factory for the oracle HTTP API."""

from typing import Any

from fastapi import FastAPI

from rwa_oracle.api import routes


def create_app(lifespan: Any = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        lifespan: Optional async context manager for application lifespan events.
                  Used by main.py to wire services onto app.state.

    Returns:
        Configured FastAPI application with the /api router mounted.
    """
    app = FastAPI(
        title="RWA Funding Oracle",
        lifespan=lifespan,
    )
    app.include_router(routes.router, prefix="/api")
    return app
