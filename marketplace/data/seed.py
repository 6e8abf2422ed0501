# marketplace/data/seed.py
from decimal import Decimal

from marketplace.data.database import SessionLocal
from marketplace.data.models import (
    CustomerModel,
    OwnerAreaModel,
    OwnerModel,
    OwnerShippingConfigModel,
    ProductModel,
    ProductVariantModel,
    Role,
)


def seed(db=None) -> bool:
    """Demo vendors, catalog and shipping rules. Returns False if data already exists."""
    own_session = db is None
    db = db or SessionLocal()
    try:
        # not forcing: only seed if empty
        if db.query(OwnerModel).first():
            return False

        habana = OwnerModel(name="Tienda Habana", email="ventas@tiendahabana.example")
        miami = OwnerModel(name="Miami Goods", email=None)
        db.add_all([habana, miami])
        db.flush()

        db.add_all(
            [
                CustomerModel(email="admin@marketplace.example", first_name="Admin", role=Role.ADMIN),
                CustomerModel(email="staff@tiendahabana.example", first_name="Lidia", role=Role.OWNER, owner_id=habana.id),
                CustomerModel(email="reparto@marketplace.example", first_name="Yoel", role=Role.DELIVERY),
                CustomerModel(email="cliente@example.com", first_name="Ana", last_name="Perez"),
            ]
        )

        rice = ProductModel(
            owner_id=habana.id, title="Arroz 10 lb", base_cost=Decimal("8.00"), margin_pct=Decimal("25"),
            taxable=False, weight_lb=Decimal("10"), stock_qty=40,
        )
        oil = ProductModel(
            owner_id=habana.id, title="Aceite 1 L", base_cost=Decimal("3.50"), margin_pct=Decimal("20"),
            taxable=True, tax_pct=Decimal("7"), weight_lb=Decimal("2"), stock_qty=25,
        )
        shirt = ProductModel(
            owner_id=miami.id, title="T-shirt", base_cost=Decimal("6.00"), duty=Decimal("1.00"),
            margin_pct=Decimal("40"), taxable=True, tax_pct=Decimal("7"), weight_lb=Decimal("0.5"), stock_qty=0,
        )
        gift_card = ProductModel(
            owner_id=None, title="Gift card", base_cost=Decimal("25.00"), margin_pct=Decimal("0"),
            taxable=False, weight_lb=Decimal("0"), stock_qty=1000,
        )
        db.add_all([rice, oil, shirt, gift_card])
        db.flush()

        db.add_all(
            [
                ProductVariantModel(product_id=shirt.id, label="M", stock_qty=12),
                ProductVariantModel(product_id=shirt.id, label="XL", price_override=Decimal("7.00"), weight_lb=Decimal("0.7"), stock_qty=5),
            ]
        )

        db.add_all(
            [
                OwnerShippingConfigModel(
                    owner_id=habana.id, country="CU", active=True, mode="weight",
                    cu_hab_city_base=Decimal("3"), cu_hab_rural_base=Decimal("5"),
                    cu_other_city_base=Decimal("8"), cu_other_rural_base=Decimal("10"),
                    cu_rate_per_lb=Decimal("0.5"), cu_min_fee=Decimal("5"),
                    cu_restrict_to_list=True,
                    cu_over_weight_threshold_lbs=Decimal("50"), cu_over_weight_fee=Decimal("15"),
                ),
                OwnerAreaModel(owner_id=habana.id, province="La Habana", municipality=None),
                OwnerAreaModel(owner_id=habana.id, province="Matanzas", municipality="Cardenas"),
                OwnerShippingConfigModel(owner_id=miami.id, country="US", active=True, mode="fixed", us_flat=Decimal("6.99")),
                OwnerShippingConfigModel(
                    owner_id=miami.id, country="CU", active=True, mode="fixed",
                    cu_hab_city_flat=Decimal("10"), cu_hab_rural_flat=Decimal("12"),
                    cu_other_city_flat=Decimal("15"), cu_other_rural_flat=Decimal("18"),
                ),
            ]
        )
        db.commit()
        return True
    finally:
        if own_session:
            db.close()


if __name__ == "__main__":
    from marketplace.data.database import Base, engine

    Base.metadata.create_all(bind=engine)
    seed()
