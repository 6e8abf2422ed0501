# marketplace/domain/snapshot.py
"""
Typed shapes of the JSON blobs stored on cart items, checkout sessions and
orders. Validated with pydantic on the way in and dumped with
model_dump(mode="json") on the way out.
"""
from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class CartItemPricing(BaseModel):
    """Price freeze written on a cart item at add-to-cart time."""

    base_cents: int
    duty_cents: int = 0
    margin_pct: Decimal = Decimal("0")
    price_with_margin_cents: int
    taxable: bool = True
    tax_pct: Decimal = Decimal("0")
    tax_cents: int = 0
    weight_lb: Decimal = Decimal("0")
    image_url: str | None = None
    computed_at: datetime


class SnapshotItem(BaseModel):
    product_id: int
    variant_id: int | None = None
    title: str | None = None
    image_url: str | None = None
    quantity: int = Field(..., gt=0)
    unit_price_cents: int
    tax_cents: int = 0  # per unit
    weight_lb: Decimal = Decimal("0")  # per unit


class VendorGroup(BaseModel):
    owner_id: int | None = None
    owner_name: str = "General"
    items: list[SnapshotItem] = Field(default_factory=list)
    subtotal_cents: int = 0
    tax_cents: int = 0
    weight_lb: Decimal = Decimal("0")
    shipping_cents: int = 0
    shipping_mode: str | None = None
    shipping_zone: str | None = None

    @property
    def total_cents(self) -> int:
        return self.subtotal_cents + self.tax_cents + self.shipping_cents


class PricingBreakdown(BaseModel):
    kind: Literal["link", "direct"] = "link"
    subtotal_cents: int
    tax_cents: int
    shipping_cents: int
    total_cents: int  # without card surcharge
    card_fee_pct: Decimal = Decimal("0")
    card_fee_cents: int = 0
    amount_to_charge_cents: int


class OrderPricing(BaseModel):
    subtotal_cents: int
    tax_cents: int
    shipping_cents: int
    total_cents: int
    card_fee_cents: int = 0


class CheckoutSnapshot(BaseModel):
    model_config = ConfigDict(extra="forbid")

    country: str
    locale: str
    shipping_address: dict
    groups: list[VendorGroup]
    pricing: PricingBreakdown
    order_meta: dict = Field(default_factory=dict)
