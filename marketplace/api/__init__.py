# marketplace/api/__init__.py
from fastapi import FastAPI

from marketplace.api.deps import MAINTENANCE_MODES
from marketplace.api.routers import carts, checkout, checkout_sessions, health, orders, payments, shipping
from marketplace.utils.settings import MAINTENANCE_MODE


def create_app(maintenance_mode: str | None = None) -> FastAPI:
    mode = (maintenance_mode or MAINTENANCE_MODE or "off").lower()
    if mode not in MAINTENANCE_MODES:
        raise ValueError(f"Unknown maintenance mode: {mode}")

    app = FastAPI(title="Marketplace Checkout Service", version="1.0.0")
    app.state.maintenance_mode = mode

    app.include_router(health.router)
    app.include_router(carts.router)
    app.include_router(shipping.router)
    app.include_router(checkout.router)
    app.include_router(payments.router)
    app.include_router(orders.router)
    app.include_router(checkout_sessions.router)
    return app
