"""Main application entrypoint for the MSI Processor HTTP service."""

import os

from fastapi import FastAPI

from msiprocessor.api.v1 import routes_events, routes_health
from msiprocessor.core.config import settings
from msiprocessor.core.logging import setup_logging


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    setup_logging(settings.ENV, settings.LOG_LEVEL)

    app = FastAPI(
        title=settings.SERVICE_NAME,
        version=settings.SERVICE_VERSION,
    )

    app.include_router(routes_health.router, tags=["health"])
    app.include_router(routes_events.router, tags=["events"])

    return app


# Export app instance for ASGI servers
app = create_app()


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", "8080"))
    uvicorn.run(app, host="0.0.0.0", port=port)
