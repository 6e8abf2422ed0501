# marketplace/services/shipping_service.py
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.orm import Session

from marketplace.domain.errors import NotFoundError, VendorsUnavailableError
from marketplace.domain.pricing import CartLine, price_cart
from marketplace.domain.shipping import Destination, ShippingRule, Undeliverable, quote_detail, zone_key_for_cuba
from marketplace.domain.snapshot import VendorGroup
from marketplace.repos.cart_repo import CartRepo
from marketplace.repos.shipping_repo import ShippingRepo
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ShippingQuote:
    country: str
    zone: str | None
    total_cents: int
    breakdown: list[dict]


class ShippingService:
    def __init__(self, db: Session):
        self.repo = ShippingRepo(db)
        self.cart_repo = CartRepo(db)

    def load_rules(self, owner_ids: list[int], country: str) -> dict[int, ShippingRule]:
        configs = self.repo.get_configs(owner_ids, country)
        areas = self.repo.get_areas(list(configs))
        return {
            owner_id: ShippingRule.from_model(cfg, areas.get(owner_id, []))
            for owner_id, cfg in configs.items()
        }

    def quote_groups(self, groups: list[VendorGroup], destination: Destination, transport: str | None = None) -> ShippingQuote:
        """
        Fills shipping_cents/mode/zone on every group (in place) and returns
        the breakdown. If any vendor cannot deliver, nothing is returned:
        VendorsUnavailableError lists all of them.
        """
        owner_ids = [g.owner_id for g in groups if g.owner_id is not None]
        rules = self.load_rules(owner_ids, destination.country)

        breakdown = []
        unavailable = []

        for g in groups:
            if g.owner_id is None:
                #platform-owned items ship with the platform, no vendor fee
                g.shipping_cents, g.shipping_mode = 0, "fixed"
            else:
                try:
                    fee = quote_detail(rules.get(g.owner_id), destination, g.weight_lb, transport)
                except Undeliverable as e:
                    unavailable.append({"owner_id": g.owner_id, "owner_name": g.owner_name, "reason": e.reason})
                    continue
                g.shipping_cents, g.shipping_mode, g.shipping_zone = fee.cents, fee.mode, fee.zone

            breakdown.append(
                {
                    "owner_id": g.owner_id,
                    "owner_name": g.owner_name,
                    "mode": g.shipping_mode,
                    "zone": g.shipping_zone,
                    "weight_lb": g.weight_lb.quantize(Decimal("0.01")),
                    "shipping_cents": g.shipping_cents,
                }
            )

        if unavailable:
            logger.warning(f"Vendors unable to deliver to {destination.country}/{destination.province}: {unavailable}")
            raise VendorsUnavailableError(unavailable, message=coverage_message(destination, unavailable))

        zone = zone_key_for_cuba(destination.province, destination.area_type) if destination.country == "CU" else None
        return ShippingQuote(
            country=destination.country,
            zone=zone,
            total_cents=sum(g.shipping_cents for g in groups),
            breakdown=breakdown,
        )

    def quote_cart(self, customer_id: int, cart_id: int, address: dict) -> ShippingQuote:
        cart = self.cart_repo.get_cart(cart_id)
        if not cart or cart.customer_id != customer_id:
            raise NotFoundError("Cart not found")

        items = self.cart_repo.get_cart_items(cart_id)
        pricing = price_cart([CartLine.from_cart_item(i) for i in items])
        return self.quote_groups(pricing.groups, Destination.from_address(address), address.get("transport"))


def coverage_message(destination: Destination, unavailable: list[dict]) -> str:
    place = ", ".join(p for p in (destination.municipality, destination.province) if p) or "the selected location"
    names = [u["owner_name"] for u in unavailable if u.get("owner_name")]
    if len(names) == 1:
        return f"Products from vendor {names[0]} cannot be delivered to {place}."
    if names:
        return f"Products from vendors {', '.join(names)} cannot be delivered to {place}."
    return f"Some products in the cart cannot be delivered to {place}."
