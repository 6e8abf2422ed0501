# marketplace/domain/schemas.py
from datetime import datetime
from decimal import Decimal
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class ItemIn(BaseModel):
    """Add a product to the customer's open cart."""

    product_id: int = Field(..., gt=0)
    quantity: int = Field(..., gt=0)
    variant_id: int | None = Field(None, gt=0)


class CartItemOut(BaseModel):
    id: int
    product_id: int
    variant_id: int | None = None
    title: str | None = None
    quantity: int
    unit_price: Decimal
    tax_cents: int
    owner_id: int | None = None
    available_stock: int


class CartOut(BaseModel):
    cart_id: int | None
    customer_id: int
    completed: bool = False
    items: List[CartItemOut] = []
    subtotal: Decimal = Decimal("0.00")
    tax: Decimal = Decimal("0.00")


class StockIssueOut(BaseModel):
    product_id: int
    title: str | None = None
    owner_name: str | None = None
    requested: int
    available: int


class CartValidationOut(BaseModel):
    ok: bool
    unavailable: List[StockIssueOut] = []


class ShippingQuoteIn(BaseModel):
    cart_id: int = Field(..., gt=0)
    shipping: dict


class ShippingBreakdownOut(BaseModel):
    owner_id: int | None
    owner_name: str
    mode: str
    zone: str | None = None
    weight_lb: Decimal
    shipping_cents: int


class ShippingQuoteOut(BaseModel):
    ok: bool = True
    country: str
    zone: str | None = None
    shipping_total_cents: int
    breakdown: List[ShippingBreakdownOut]


class CheckoutIn(BaseModel):
    """Hosted payment-link checkout."""

    cart_id: int = Field(..., gt=0)
    shipping: dict
    metadata: dict = Field(default_factory=dict)
    locale: str | None = None


class CheckoutOut(BaseModel):
    session_id: int
    pay_url: str
    amount: str


class DirectCheckoutOut(BaseModel):
    session_id: int
    amount: str
    card_fee: str
    amount_to_charge: str


class CardSaleIn(BaseModel):
    """Card data is forwarded to the gateway and never stored."""

    session_id: int = Field(..., gt=0)
    card_number: str = Field(..., min_length=12, max_length=23)
    exp_month: str = Field(..., min_length=1, max_length=2)
    exp_year: str = Field(..., min_length=2, max_length=4)
    cvn: str = Field(..., min_length=3, max_length=4)
    name_on_card: str | None = None
    zip_code: str | None = None


class ConfirmationOut(BaseModel):
    ok: bool = True
    paid: bool
    session_id: int
    orders: List[int] = []
    status: str
    message: str | None = None
    auth: str | None = None
    ref: str | None = None


class SessionPaymentOut(BaseModel):
    provider: str | None = None
    reference: str | None = None
    status: str | int | None = None


class SessionStatusOut(BaseModel):
    id: int
    status: str
    payment_method: str
    amount_total: Decimal
    payment: SessionPaymentOut
    created_order_ids: List[int] = []
    processed_at: datetime | None = None


class OrderStatusIn(BaseModel):
    status: str
    delivery: dict | None = None  # e.g. {"received_by": "...", "note": "..."}


class LineItemOut(BaseModel):
    product_id: int | None
    variant_id: int | None = None
    title: str | None = None
    quantity: int
    unit_price: Decimal

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    id: int
    session_id: int | None
    customer_id: int
    owner_id: int | None
    status: str
    payment_method: str
    total: Decimal
    metadata: dict
    items: List[LineItemOut] = []
    created_at: datetime
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
