"""FastAPI application for the Marketplace Service."""

from fastapi import FastAPI
from libs.common.middleware import add_observability_middleware
from services.marketplace_service.routers import (
    deliveries_router,
    orders_router,
    payments_router,
)


def create_app() -> FastAPI:
    """Create and configure the Marketplace Service FastAPI app."""
    app = FastAPI(
        title="Marketplace Service",
        version="0.1.0",
        description="Multi-vendor checkout, payment reconciliation and fulfillment.",
    )
    add_observability_middleware(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "marketplace"}

    app.include_router(orders_router)
    app.include_router(payments_router)
    app.include_router(deliveries_router)

    return app


app = create_app()
