"""FastAPI application for the Store Service."""

from fastapi import FastAPI
from libs.common.error_handler import add_exception_handlers
from libs.common.middleware import add_observability_middleware
from services.store_service.errors import StoreError
from services.store_service.routers import (
    addresses_router,
    admin_orders_router,
    cart_router,
    orders_router,
)


def create_app() -> FastAPI:
    """Create and configure the Store Service FastAPI app."""
    app = FastAPI(
        title="Store Service",
        version="0.1.0",
        description="Cart, checkout, stock reservation and order lifecycle.",
    )

    add_observability_middleware(app)
    add_exception_handlers(app, StoreError)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "store"}

    # Customer routes
    app.include_router(addresses_router, prefix="/store")
    app.include_router(cart_router, prefix="/store")
    app.include_router(orders_router, prefix="/store")

    # Admin routes
    app.include_router(admin_orders_router, prefix="/admin/store")

    return app


app = create_app()
