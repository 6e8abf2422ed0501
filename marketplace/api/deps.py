# marketplace/api/deps.py
from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from marketplace.data.database import get_db
from marketplace.data.models.customer import CustomerModel, Role
from marketplace.domain.errors import (
    CheckoutValidationError,
    GatewayError,
    InsufficientStockError,
    InvalidTransitionError,
    LockUnavailableError,
    NotFoundError,
    PaymentDeclinedError,
    SettlementInProgressError,
    StockConflictError,
    VendorsUnavailableError,
)
from marketplace.services.lock_service import LockService
from marketplace.services.notification_service import NotificationService
from marketplace.services.payment_gateway import PaymentGatewayClient
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)

#what routers catch and translate; anything else is a 500
DOMAIN_ERRORS = (ValueError, LookupError, PermissionError, RuntimeError)

MAINTENANCE_MODES = ("off", "admin_only", "full")


#collaborators, overridden in tests through app.dependency_overrides
def get_gateway() -> PaymentGatewayClient:
    return PaymentGatewayClient()


def get_lock_service() -> LockService:
    return LockService()


def get_notifier() -> NotificationService:
    return NotificationService()


def http_error(e: Exception) -> HTTPException:
    if isinstance(e, CheckoutValidationError):
        return HTTPException(status_code=400, detail={"code": "invalid_checkout", "message": str(e), "fields": e.fields})
    if isinstance(e, InsufficientStockError):
        return HTTPException(status_code=409, detail={"code": "insufficient_stock", "message": str(e), "items": e.items})
    if isinstance(e, VendorsUnavailableError):
        return HTTPException(status_code=409, detail={"code": "vendors_unavailable", "message": str(e), "vendors": e.vendors})
    if isinstance(e, StockConflictError):
        return HTTPException(
            status_code=409,
            detail={
                "code": "stock_conflict",
                "message": str(e),
                "items": e.items,
                "reconciliation_required": e.reconciliation_required,
            },
        )
    if isinstance(e, (SettlementInProgressError, InvalidTransitionError)):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, LockUnavailableError):
        return HTTPException(status_code=503, detail={"code": "lock_unavailable", "message": str(e)})
    if isinstance(e, PaymentDeclinedError):
        return HTTPException(status_code=402, detail={"code": "payment_declined", "message": str(e)})
    if isinstance(e, GatewayError):
        return HTTPException(status_code=502, detail={"code": "gateway_error", "message": str(e)})
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, PermissionError):
        return HTTPException(status_code=403, detail=str(e))
    if isinstance(e, ValueError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, RuntimeError):
        #optimistic-lock conflicts on the cart
        return HTTPException(status_code=409, detail=str(e))

    logger.exception(f"Unmapped error: {e}")
    return HTTPException(status_code=500, detail="Internal error")


def maintenance_guard(request: Request, db: Session = Depends(get_db)):
    """
    off        -> everyone
    admin_only -> only callers whose user_id is an admin
    full       -> nobody
    """
    mode = getattr(request.app.state, "maintenance_mode", "off")
    if mode == "off":
        return

    if mode == "admin_only":
        raw = request.query_params.get("user_id")
        if raw and raw.isdigit():
            user = db.get(CustomerModel, int(raw))
            if user and user.role == Role.ADMIN:
                return

    logger.info(f"Request {request.method} {request.url.path} blocked by maintenance mode ({mode})")
    raise HTTPException(status_code=503, detail={"code": "maintenance", "mode": mode})
