# marketplace/api/routers/orders.py
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from marketplace.api.deps import DOMAIN_ERRORS, http_error
from marketplace.data.database import get_db
from marketplace.domain.schemas import OrderOut, OrderStatusIn
from marketplace.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


def get_service(db: Session):
    return OrderService(db)


@router.get("/", response_model=List[OrderOut])
def list_orders(
    user_id: int = Query(...),
    db: Session = Depends(get_db),
):
    return get_service(db).list_customer_orders(user_id)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: int,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
):
    """
    Readable by the buyer, the vendor's staff, delivery and admins.
    """
    svc = get_service(db)
    try:
        return svc.get_order(order_id, user_id)
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.patch("/{order_id}/status", response_model=OrderOut)
def update_status(
    order_id: int,
    payload: OrderStatusIn,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.update_status(order_id, user_id, payload.status, delivery=payload.delivery)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
