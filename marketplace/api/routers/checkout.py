# marketplace/api/routers/checkout.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from marketplace.api.deps import DOMAIN_ERRORS, get_gateway, http_error, maintenance_guard
from marketplace.data.database import get_db
from marketplace.domain.schemas import CheckoutIn, CheckoutOut, DirectCheckoutOut
from marketplace.services.checkout_service import CheckoutService
from marketplace.services.payment_gateway import PaymentGatewayClient

router = APIRouter(prefix="/checkout", tags=["checkout"], dependencies=[Depends(maintenance_guard)])


@router.post("/", response_model=CheckoutOut, status_code=201)
def start_checkout(
    payload: CheckoutIn,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
    gateway: PaymentGatewayClient = Depends(get_gateway),
):
    """
    Freezes the cart into a pending checkout session and returns the
    hosted payment page URL.
    """
    svc = CheckoutService(db, gateway=gateway)
    try:
        started = svc.start_checkout(
            customer_id=user_id,
            cart_id=payload.cart_id,
            shipping=payload.shipping,
            metadata=payload.metadata,
            locale=payload.locale,
        )
    except DOMAIN_ERRORS as e:
        raise http_error(e)

    return {"session_id": started.session_id, "pay_url": started.pay_url, "amount": started.amount}


@router.post("/direct", response_model=DirectCheckoutOut, status_code=201)
def start_direct_checkout(
    payload: CheckoutIn,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
    gateway: PaymentGatewayClient = Depends(get_gateway),
):
    """Same as above for an on-site card form; the card surcharge is quoted separately."""
    svc = CheckoutService(db, gateway=gateway)
    try:
        started = svc.start_direct_checkout(
            customer_id=user_id,
            cart_id=payload.cart_id,
            shipping=payload.shipping,
            metadata=payload.metadata,
            locale=payload.locale,
        )
    except DOMAIN_ERRORS as e:
        raise http_error(e)

    return {
        "session_id": started.session_id,
        "amount": started.amount,
        "card_fee": started.card_fee,
        "amount_to_charge": started.amount_to_charge,
    }
