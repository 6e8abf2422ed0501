"""Shipping rate resolver: US flat rates, Cuba zones, weight tiers, allow-lists, surcharges."""
from decimal import Decimal

import pytest

from marketplace.domain.shipping import (
    HABANA_CITY,
    HABANA_MUNICIPIO,
    PROVINCIAS_CITY,
    PROVINCIAS_MUNICIPIO,
    Area,
    Destination,
    ShippingRule,
    Undeliverable,
    quote,
    quote_detail,
    zone_key_for_cuba,
)

HAVANA = Destination(country="CU", province="La Habana", municipality="Playa", area_type="city")


def weight_rule(**overrides):
    values = dict(
        owner_id=1,
        country="CU",
        mode="weight",
        zone_base={HABANA_CITY: Decimal("3.00"), HABANA_MUNICIPIO: Decimal("4.00")},
        rate_per_lb=Decimal("0.50"),
        min_fee=Decimal("4.00"),
    )
    values.update(overrides)
    return ShippingRule(**values)


class TestZoneKeys:
    def test_four_zone_keys(self):
        assert zone_key_for_cuba("La Habana", "city") == HABANA_CITY
        assert zone_key_for_cuba("la habana ", "municipio") == HABANA_MUNICIPIO
        assert zone_key_for_cuba("Matanzas", "City") == PROVINCIAS_CITY
        assert zone_key_for_cuba("Matanzas", "rural") == PROVINCIAS_MUNICIPIO


class TestCubaWeightMode:
    def test_base_plus_rate_per_lb(self):
        # max(3.00 + 0.50 * 10, 4.00) = 8.00
        assert quote(weight_rule(), HAVANA, Decimal("10")) == 800

    def test_min_fee_applies_to_light_parcels(self):
        assert quote(weight_rule(), HAVANA, Decimal("1")) == 400

    def test_over_weight_surcharge(self):
        rule = weight_rule(over_weight_threshold_lbs=Decimal("5"), over_weight_fee=Decimal("2.00"))

        fee = quote_detail(rule, HAVANA, Decimal("10"))

        assert fee.cents == 1000
        assert fee.surcharge_cents == 200
        assert fee.mode == "by_weight"
        assert fee.zone == HABANA_CITY

    def test_no_surcharge_at_threshold(self):
        rule = weight_rule(over_weight_threshold_lbs=Decimal("10"), over_weight_fee=Decimal("2.00"))
        assert quote(rule, HAVANA, Decimal("10")) == 800


class TestCubaFixedMode:
    def test_zone_flat_rate(self):
        rule = ShippingRule(owner_id=1, country="CU", mode="fixed", zone_flat={PROVINCIAS_CITY: Decimal("10.00")})
        dest = Destination(country="CU", province="Holguin", municipality="Holguin", area_type="city")
        assert quote(rule, dest, Decimal("3")) == 1000

    def test_unset_zone_is_free(self):
        rule = ShippingRule(owner_id=1, country="CU", mode="fixed", zone_flat={PROVINCIAS_CITY: Decimal("10.00")})
        assert quote(rule, HAVANA, Decimal("3")) == 0


class TestAllowList:
    def rule(self):
        return weight_rule(
            restrict_to_list=True,
            areas=(Area("La Habana"), Area("Matanzas", "Cardenas")),
        )

    def test_whole_province_entry(self):
        assert quote(self.rule(), HAVANA, Decimal("2")) == 400

    def test_municipality_entry(self):
        dest = Destination(country="CU", province="Matanzas", municipality="cardenas", area_type="city")
        # no base configured for the zone, min fee wins
        assert quote(self.rule(), dest, Decimal("2")) == 400

    def test_outside_list_is_undeliverable(self):
        dest = Destination(country="CU", province="Matanzas", municipality="Varadero", area_type="city")
        with pytest.raises(Undeliverable) as exc:
            quote(self.rule(), dest, Decimal("2"))
        assert exc.value.reason == "not_in_whitelist"


class TestUnitedStates:
    def test_flat_rate_ignores_weight(self):
        rule = ShippingRule(owner_id=1, country="US", us_flat=Decimal("7.99"))
        dest = Destination(country="us")
        assert quote(rule, dest, Decimal("0")) == 799
        assert quote(rule, dest, Decimal("40")) == 799

    def test_missing_flat_rate(self):
        rule = ShippingRule(owner_id=1, country="US")
        with pytest.raises(Undeliverable) as exc:
            quote(rule, Destination(country="US"), 1)
        assert exc.value.reason == "no_us_flat"


class TestUndeliverable:
    def test_no_config(self):
        with pytest.raises(Undeliverable) as exc:
            quote(None, HAVANA, 1)
        assert exc.value.reason == "no_config"

    def test_inactive_config(self):
        with pytest.raises(Undeliverable):
            quote(weight_rule(active=False), HAVANA, 1)

    def test_unsupported_country(self):
        with pytest.raises(Undeliverable) as exc:
            quote(weight_rule(), Destination(country="MX"), 1)
        assert exc.value.reason == "unsupported_country"


def test_destination_accepts_spanish_keys():
    dest = Destination.from_address({"country": "cu", "provincia": "La Habana", "municipio": "Playa", "area_type": "Municipio"})
    assert dest == Destination(country="CU", province="La Habana", municipality="Playa", area_type="municipio")
