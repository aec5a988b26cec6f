"""FastAPI application for the Payments Service."""

from fastapi import FastAPI
from libs.common.logging import configure_logging
from libs.common.rate_limit import install_rate_limiting
from services.payments_service.routers import (
    admin_router,
    callbacks_router,
    enrollment_router,
    gateway_links_router,
)


def create_app() -> FastAPI:
    """Create and configure the Payments Service FastAPI app."""
    configure_logging()
    app = FastAPI(
        title="Academy Payments Service",
        version="0.1.0",
        description="Enrollment intake, gateway callbacks and payment reconciliation.",
    )
    install_rate_limiting(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "payments"}

    app.include_router(enrollment_router)
    app.include_router(gateway_links_router)
    app.include_router(callbacks_router)
    app.include_router(admin_router)

    return app


app = create_app()
