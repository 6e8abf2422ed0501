# marketplace/domain/shipping.py
"""
Shipping rate resolver.

Pure functions over a vendor's shipping rule and a destination; the
service layer loads the rules from the database and calls `quote_detail`
once per vendor group.
"""
from dataclasses import dataclass, field
from decimal import Decimal

from marketplace.domain.money import to_cents

HABANA_CITY = "habana_city"
HABANA_MUNICIPIO = "habana_municipio"
PROVINCIAS_CITY = "provincias_city"
PROVINCIAS_MUNICIPIO = "provincias_municipio"

ZONE_KEYS = (HABANA_CITY, HABANA_MUNICIPIO, PROVINCIAS_CITY, PROVINCIAS_MUNICIPIO)

SUPPORTED_COUNTRIES = ("US", "CU")


class Undeliverable(Exception):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


@dataclass(frozen=True)
class Destination:
    country: str
    province: str = ""
    municipality: str = ""
    area_type: str = "city"

    @classmethod
    def from_address(cls, address: dict) -> "Destination":
        return cls(
            country=str(address.get("country") or "").strip().upper(),
            province=str(address.get("province") or address.get("provincia") or "").strip(),
            municipality=str(address.get("municipality") or address.get("municipio") or "").strip(),
            area_type=str(address.get("area_type") or "city").strip().lower(),
        )


@dataclass(frozen=True)
class Area:
    province: str
    municipality: str | None = None

    def matches(self, destination: Destination) -> bool:
        if self.province.strip().lower() != destination.province.strip().lower():
            return False
        if not self.municipality:
            return True
        return self.municipality.strip().lower() == destination.municipality.strip().lower()


@dataclass(frozen=True)
class ShippingRule:
    owner_id: int
    country: str
    active: bool = True
    mode: str = "fixed"  # fixed | weight
    us_flat: Decimal | None = None
    zone_flat: dict = field(default_factory=dict)
    zone_base: dict = field(default_factory=dict)
    rate_per_lb: Decimal | None = None
    min_fee: Decimal | None = None
    restrict_to_list: bool = False
    areas: tuple = ()
    over_weight_threshold_lbs: Decimal | None = None
    over_weight_fee: Decimal | None = None

    @classmethod
    def from_model(cls, cfg, areas=()) -> "ShippingRule":
        return cls(
            owner_id=cfg.owner_id,
            country=str(cfg.country).upper(),
            active=bool(cfg.active),
            mode=str(cfg.mode or "fixed").lower(),
            us_flat=cfg.us_flat,
            zone_flat={
                HABANA_CITY: cfg.cu_hab_city_flat,
                HABANA_MUNICIPIO: cfg.cu_hab_rural_flat,
                PROVINCIAS_CITY: cfg.cu_other_city_flat,
                PROVINCIAS_MUNICIPIO: cfg.cu_other_rural_flat,
            },
            zone_base={
                HABANA_CITY: cfg.cu_hab_city_base,
                HABANA_MUNICIPIO: cfg.cu_hab_rural_base,
                PROVINCIAS_CITY: cfg.cu_other_city_base,
                PROVINCIAS_MUNICIPIO: cfg.cu_other_rural_base,
            },
            rate_per_lb=cfg.cu_rate_per_lb,
            min_fee=cfg.cu_min_fee,
            restrict_to_list=bool(cfg.cu_restrict_to_list),
            areas=tuple(Area(a.province, a.municipality) for a in areas),
            over_weight_threshold_lbs=cfg.cu_over_weight_threshold_lbs,
            over_weight_fee=cfg.cu_over_weight_fee,
        )


@dataclass(frozen=True)
class ShippingFee:
    cents: int
    mode: str
    zone: str | None = None
    surcharge_cents: int = 0


def zone_key_for_cuba(province: str, area_type: str) -> str:
    is_habana = str(province or "").strip().lower() == "la habana"
    is_city = str(area_type or "").strip().lower() == "city"
    if is_habana:
        return HABANA_CITY if is_city else HABANA_MUNICIPIO
    return PROVINCIAS_CITY if is_city else PROVINCIAS_MUNICIPIO


def is_area_allowed(rule: ShippingRule, destination: Destination) -> bool:
    if not rule.restrict_to_list:
        return True
    return any(area.matches(destination) for area in rule.areas)


def _over_weight_cents(rule: ShippingRule, weight_lb: Decimal) -> int:
    if rule.over_weight_threshold_lbs is None or rule.over_weight_fee is None:
        return 0
    if weight_lb > Decimal(str(rule.over_weight_threshold_lbs)):
        return to_cents(rule.over_weight_fee)
    return 0


def quote_detail(rule: ShippingRule | None, destination: Destination, weight_lb, transport: str | None = None) -> ShippingFee:
    """
    Fee for one vendor group. Raises Undeliverable instead of ever
    returning a silent zero for a vendor that cannot ship there.
    `transport` (sea/air) does not change any current rule.
    """
    country = destination.country.upper()
    if country not in SUPPORTED_COUNTRIES:
        raise Undeliverable("unsupported_country")
    if rule is None or not rule.active:
        raise Undeliverable("no_config")

    weight = Decimal(str(weight_lb or 0))

    if country == "US":
        if rule.us_flat is None:
            raise Undeliverable("no_us_flat")
        cents = to_cents(rule.us_flat)
        surcharge = _over_weight_cents(rule, weight)
        return ShippingFee(cents=cents + surcharge, mode="fixed", surcharge_cents=surcharge)

    if not is_area_allowed(rule, destination):
        raise Undeliverable("not_in_whitelist")

    zone = zone_key_for_cuba(destination.province, destination.area_type)

    if rule.mode == "weight":
        base = Decimal(str(rule.zone_base.get(zone) or 0))
        rate = Decimal(str(rule.rate_per_lb or 0))
        cents = max(to_cents(base + rate * weight), to_cents(rule.min_fee or 0))
        mode = "by_weight"
    else:
        cents = to_cents(rule.zone_flat.get(zone) or 0)
        mode = "fixed"

    surcharge = _over_weight_cents(rule, weight)
    return ShippingFee(cents=cents + surcharge, mode=mode, zone=zone, surcharge_cents=surcharge)


def quote(rule: ShippingRule | None, destination: Destination, weight_lb, transport: str | None = None) -> int:
    return quote_detail(rule, destination, weight_lb, transport).cents
