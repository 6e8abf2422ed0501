# marketplace/api/routers/shipping.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from marketplace.api.deps import DOMAIN_ERRORS, http_error
from marketplace.data.database import get_db
from marketplace.domain.schemas import ShippingQuoteIn, ShippingQuoteOut
from marketplace.services.shipping_service import ShippingService

router = APIRouter(prefix="/shipping", tags=["shipping"])


@router.post("/quote", response_model=ShippingQuoteOut)
def quote(
    payload: ShippingQuoteIn,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
):
    """Per-vendor shipping quote for the cart, without creating anything."""
    try:
        result = ShippingService(db).quote_cart(user_id, payload.cart_id, payload.shipping)
    except DOMAIN_ERRORS as e:
        raise http_error(e)

    return {
        "country": result.country,
        "zone": result.zone,
        "shipping_total_cents": result.total_cents,
        "breakdown": result.breakdown,
    }
