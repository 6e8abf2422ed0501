# marketplace/domain/pricing.py
"""
Two pricing steps:

- price_unit: add-to-cart pipeline (base cost + duty, margin, tax),
  the only place a sale price is ever computed
- price_cart: groups frozen cart lines per vendor and aggregates them,
  no price or tax is recomputed here
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from marketplace.domain.money import percent_of, round_half_up, to_cents
from marketplace.domain.snapshot import CartItemPricing, SnapshotItem, VendorGroup

MAX_TAX_PCT = Decimal("30")


def _dec(value) -> Decimal:
    return Decimal(str(value if value is not None else 0))


def price_unit(product, variant=None) -> CartItemPricing:
    if variant is not None and variant.price_override is not None:
        base_cents = to_cents(variant.price_override)
    else:
        base_cents = to_cents(product.base_cost)
    duty_cents = to_cents(product.duty or 0)

    margin_pct = max(Decimal("0"), _dec(product.margin_pct))
    price_with_margin_cents = round_half_up((base_cents + duty_cents) * (100 + margin_pct) / 100)

    taxable = product.taxable is not False
    tax_pct = min(MAX_TAX_PCT, max(Decimal("0"), _dec(product.tax_pct)))
    tax_cents = percent_of(price_with_margin_cents, tax_pct) if taxable else 0

    weight = variant.weight_lb if variant is not None and variant.weight_lb is not None else product.weight_lb
    image = (variant.image_url if variant is not None else None) or product.image_url

    return CartItemPricing(
        base_cents=base_cents,
        duty_cents=duty_cents,
        margin_pct=margin_pct,
        price_with_margin_cents=price_with_margin_cents,
        taxable=taxable,
        tax_pct=tax_pct,
        tax_cents=tax_cents,
        weight_lb=_dec(weight),
        image_url=image,
        computed_at=datetime.now(timezone.utc),
    )


@dataclass
class CartLine:
    product_id: int
    quantity: int
    unit_price: Decimal
    tax_cents: int
    weight_lb: Decimal
    owner_id: int | None = None
    owner_name: str | None = None
    variant_id: int | None = None
    title: str | None = None
    image_url: str | None = None

    @classmethod
    def from_cart_item(cls, item) -> "CartLine":
        meta = item.pricing or {}
        product = item.product
        weight = meta.get("weight_lb")
        if weight is None:
            weight = product.weight_lb if product is not None else 0
        return cls(
            product_id=item.product_id,
            variant_id=item.variant_id,
            quantity=int(item.quantity),
            unit_price=_dec(item.unit_price),
            tax_cents=int(meta.get("tax_cents") or 0),
            weight_lb=_dec(weight),
            owner_id=product.owner_id if product is not None else None,
            owner_name=product.owner.name if product is not None and product.owner is not None else None,
            title=product.title if product is not None else None,
            image_url=meta.get("image_url") or (product.image_url if product is not None else None),
        )


@dataclass
class CartPricing:
    groups: list[VendorGroup]
    subtotal_cents: int
    tax_cents: int
    weight_lb: Decimal


def price_cart(lines: list[CartLine]) -> CartPricing:
    groups: dict = {}

    for line in lines:
        key = line.owner_id
        if key not in groups:
            groups[key] = VendorGroup(
                owner_id=line.owner_id,
                owner_name=line.owner_name or (f"Owner #{line.owner_id}" if line.owner_id else "General"),
            )
        group = groups[key]

        unit_cents = to_cents(line.unit_price)
        group.items.append(
            SnapshotItem(
                product_id=line.product_id,
                variant_id=line.variant_id,
                title=line.title,
                image_url=line.image_url,
                quantity=line.quantity,
                unit_price_cents=unit_cents,
                tax_cents=line.tax_cents,
                weight_lb=line.weight_lb,
            )
        )
        group.subtotal_cents += unit_cents * line.quantity
        group.tax_cents += line.tax_cents * line.quantity
        group.weight_lb += line.weight_lb * line.quantity

    ordered = list(groups.values())
    return CartPricing(
        groups=ordered,
        subtotal_cents=sum(g.subtotal_cents for g in ordered),
        tax_cents=sum(g.tax_cents for g in ordered),
        weight_lb=sum((g.weight_lb for g in ordered), Decimal("0")),
    )
