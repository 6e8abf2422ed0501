from decimal import Decimal
from types import SimpleNamespace

from marketplace.domain.pricing import CartLine, price_cart, price_unit


def product(**kw):
    values = dict(
        base_cost=Decimal("10.00"), duty=Decimal("0"), margin_pct=Decimal("0"), taxable=True,
        tax_pct=Decimal("0"), weight_lb=Decimal("1"), image_url=None,
    )
    values.update(kw)
    return SimpleNamespace(**values)


class TestPriceUnit:
    def test_margin_then_tax(self):
        p = price_unit(product(base_cost=Decimal("10.00"), margin_pct=Decimal("20"), tax_pct=Decimal("7")))
        assert p.price_with_margin_cents == 1200
        assert p.tax_cents == 84

    def test_duty_is_added_before_margin(self):
        p = price_unit(product(base_cost=Decimal("6.00"), duty=Decimal("1.00"), margin_pct=Decimal("40")))
        assert p.price_with_margin_cents == 980

    def test_margin_rounds_half_up(self):
        # 3.33 * 1.15 = 3.8295 -> 3.83
        p = price_unit(product(base_cost=Decimal("3.33"), margin_pct=Decimal("15")))
        assert p.price_with_margin_cents == 383

    def test_not_taxable(self):
        p = price_unit(product(taxable=False, tax_pct=Decimal("7")))
        assert p.tax_cents == 0

    def test_tax_pct_is_clamped(self):
        p = price_unit(product(base_cost=Decimal("100.00"), tax_pct=Decimal("95")))
        assert p.tax_pct == Decimal("30")
        assert p.tax_cents == 3000

    def test_variant_overrides_price_and_weight(self):
        variant = SimpleNamespace(price_override=Decimal("8.00"), weight_lb=Decimal("1.5"), image_url="xl.png")
        p = price_unit(product(base_cost=Decimal("4.00"), margin_pct=Decimal("25"), image_url="p.png"), variant)
        assert p.price_with_margin_cents == 1000
        assert p.weight_lb == Decimal("1.5")
        assert p.image_url == "xl.png"


class TestPriceCart:
    def test_groups_by_vendor_in_cart_order(self):
        lines = [
            CartLine(product_id=1, quantity=2, unit_price=Decimal("10.00"), tax_cents=0, weight_lb=Decimal("2"), owner_id=7, owner_name="A"),
            CartLine(product_id=2, quantity=1, unit_price=Decimal("25.00"), tax_cents=0, weight_lb=Decimal("1"), owner_id=9, owner_name="B"),
            CartLine(product_id=3, quantity=1, unit_price=Decimal("12.00"), tax_cents=84, weight_lb=Decimal("1"), owner_id=7, owner_name="A"),
        ]

        result = price_cart(lines)

        assert [g.owner_id for g in result.groups] == [7, 9]
        a, b = result.groups
        assert (a.subtotal_cents, a.tax_cents, a.weight_lb) == (3200, 84, Decimal("5"))
        assert (b.subtotal_cents, b.tax_cents, b.weight_lb) == (2500, 0, Decimal("1"))
        assert result.subtotal_cents == 5700
        assert result.tax_cents == 84

    def test_platform_items_form_the_general_group(self):
        lines = [CartLine(product_id=5, quantity=3, unit_price=Decimal("20.00"), tax_cents=0, weight_lb=Decimal("0"))]

        result = price_cart(lines)

        assert len(result.groups) == 1
        assert result.groups[0].owner_id is None
        assert result.groups[0].owner_name == "General"
        assert result.subtotal_cents == 6000

    def test_empty_cart(self):
        result = price_cart([])
        assert result.groups == []
        assert result.subtotal_cents == 0
