# marketplace/api/routers/carts.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from marketplace.api.deps import DOMAIN_ERRORS, http_error, maintenance_guard
from marketplace.data.database import get_db
from marketplace.domain.schemas import CartOut, CartValidationOut, ItemIn
from marketplace.services.cart_service import CartService

router = APIRouter(prefix="/carts", tags=["carts"], dependencies=[Depends(maintenance_guard)])


def get_service(db: Session):
    return CartService(db)


@router.get("/", response_model=CartOut)
def get_cart(
    user_id: int = Query(...),
    db: Session = Depends(get_db),
):
    return get_service(db).get_cart(user_id)


@router.post("/items", response_model=CartOut)
def add_item(
    payload: ItemIn,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
):
    """
    Adds a product to the open cart (created on first add).
    The price is computed server-side.
    """
    svc = get_service(db)
    try:
        return svc.add_product(
            customer_id=user_id,
            product_id=payload.product_id,
            quantity=payload.quantity,
            variant_id=payload.variant_id,
        )
    except DOMAIN_ERRORS as e:
        raise http_error(e)


@router.delete("/items/{item_id}", response_model=CartOut)
def remove_item(
    item_id: int,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        svc.remove_item(user_id, item_id)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
    return svc.get_cart(user_id)


@router.get("/{cart_id}/validate", response_model=CartValidationOut)
def validate_cart(
    cart_id: int,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
):
    try:
        return get_service(db).validate_stock(user_id, cart_id)
    except DOMAIN_ERRORS as e:
        raise http_error(e)
