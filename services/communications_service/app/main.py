"""FastAPI application for the Communications Service."""

from fastapi import FastAPI
from libs.common.logging import configure_logging
from services.communications_service.routers import queue_router, webhooks_router


def create_app() -> FastAPI:
    """Create and configure the Communications Service FastAPI app."""
    configure_logging()
    app = FastAPI(
        title="Academy Communications Service",
        version="0.1.0",
        description="Rate-limited email dispatch queue and delivery webhooks.",
    )

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "communications"}

    app.include_router(queue_router)
    app.include_router(webhooks_router)

    return app


app = create_app()
