import os

#must be set before marketplace.utils.settings is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ADMIN_EMAILS", "admin@marketplace.example")
os.environ.setdefault("SETTLEMENT_LOCK_WAIT_SECONDS", "0.3")
os.environ.setdefault("CLIENT_BASE_URL", "https://shop.example")
os.environ.setdefault("MAINTENANCE_MODE", "off")

from decimal import Decimal
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import marketplace.data.models  # noqa: F401
from marketplace.api import create_app
from marketplace.api.deps import get_gateway, get_lock_service, get_notifier
from marketplace.data.database import Base, get_db
from marketplace.data.models import (
    CustomerModel,
    OwnerAreaModel,
    OwnerModel,
    OwnerShippingConfigModel,
    ProductModel,
    ProductVariantModel,
    Role,
)
from marketplace.services.lock_service import LockService

from fakes import FakeGateway, FakeNotifier, FakeRedis


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def redis_client():
    return FakeRedis()


@pytest.fixture
def lock_service(redis_client):
    return LockService(client=redis_client)


@pytest.fixture
def catalog(db):
    """
    Two vendors plus platform-owned stock:
    - vendor A: US flat $5.00, Cuba fixed zone rates
    - vendor B: US flat $7.99, Cuba by weight, La Habana only
    """
    vendor_a = OwnerModel(name="Tienda Habana", email="ventas@tiendahabana.example")
    vendor_b = OwnerModel(name="Miami Goods", email=None)
    db.add_all([vendor_a, vendor_b])
    db.flush()

    customer = CustomerModel(email="ana@example.com", first_name="Ana", last_name="Perez")
    other_customer = CustomerModel(email="luis@example.com", first_name="Luis")
    admin = CustomerModel(email="admin@marketplace.example", first_name="Admin", role=Role.ADMIN)
    staff_a = CustomerModel(email="staff@tiendahabana.example", first_name="Lidia", role=Role.OWNER, owner_id=vendor_a.id)
    staff_b = CustomerModel(email="staff@miamigoods.example", first_name="Mike", role=Role.OWNER, owner_id=vendor_b.id)
    courier = CustomerModel(email="reparto@marketplace.example", first_name="Yoel", role=Role.DELIVERY)
    db.add_all([customer, other_customer, admin, staff_a, staff_b, courier])

    item_a = ProductModel(
        owner_id=vendor_a.id, title="Rice 10 lb", base_cost=Decimal("10.00"), margin_pct=0,
        taxable=False, weight_lb=Decimal("2"), stock_qty=5,
    )
    item_b = ProductModel(
        owner_id=vendor_b.id, title="Blender", base_cost=Decimal("25.00"), margin_pct=0,
        taxable=False, weight_lb=Decimal("1"), stock_qty=3,
    )
    taxed = ProductModel(
        owner_id=vendor_a.id, title="Olive oil", base_cost=Decimal("10.00"), margin_pct=Decimal("20"),
        taxable=True, tax_pct=Decimal("7"), weight_lb=Decimal("1"), stock_qty=4,
    )
    shirt = ProductModel(
        owner_id=vendor_b.id, title="T-shirt", base_cost=Decimal("4.00"), margin_pct=Decimal("25"),
        taxable=False, weight_lb=Decimal("0.5"), stock_qty=0,
    )
    gift = ProductModel(
        owner_id=None, title="Gift card", base_cost=Decimal("20.00"), margin_pct=0,
        taxable=False, weight_lb=Decimal("0"), stock_qty=100,
    )
    db.add_all([item_a, item_b, taxed, shirt, gift])
    db.flush()

    shirt_xl = ProductVariantModel(
        product_id=shirt.id, label="XL", price_override=Decimal("8.00"), weight_lb=Decimal("1.5"), stock_qty=2,
    )
    db.add(shirt_xl)

    db.add_all(
        [
            OwnerShippingConfigModel(owner_id=vendor_a.id, country="US", active=True, mode="fixed", us_flat=Decimal("5.00")),
            OwnerShippingConfigModel(
                owner_id=vendor_a.id, country="CU", active=True, mode="fixed",
                cu_hab_city_flat=Decimal("5.00"), cu_hab_rural_flat=Decimal("7.00"),
                cu_other_city_flat=Decimal("10.00"), cu_other_rural_flat=Decimal("12.00"),
            ),
            OwnerShippingConfigModel(owner_id=vendor_b.id, country="US", active=True, mode="fixed", us_flat=Decimal("7.99")),
            OwnerShippingConfigModel(
                owner_id=vendor_b.id, country="CU", active=True, mode="weight",
                cu_hab_city_base=Decimal("3.00"), cu_hab_rural_base=Decimal("4.00"),
                cu_rate_per_lb=Decimal("0.50"), cu_min_fee=Decimal("4.00"),
                cu_restrict_to_list=True,
            ),
            OwnerAreaModel(owner_id=vendor_b.id, province="La Habana", municipality=None),
        ]
    )
    db.commit()

    return SimpleNamespace(
        vendor_a=vendor_a,
        vendor_b=vendor_b,
        customer=customer,
        other_customer=other_customer,
        admin=admin,
        staff_a=staff_a,
        staff_b=staff_b,
        courier=courier,
        item_a=item_a,
        item_b=item_b,
        taxed=taxed,
        shirt=shirt,
        shirt_xl=shirt_xl,
        gift=gift,
    )


US_ADDRESS = {
    "country": "US",
    "first_name": "Ana",
    "last_name": "Perez",
    "phone": "+1 305 555 0100",
    "email": "ana@example.com",
    "address_line1": "100 Biscayne Blvd",
    "city": "Miami",
    "state": "FL",
    "zip": "33132",
}

CU_ADDRESS = {
    "country": "CU",
    "first_name": "Maria",
    "last_name": "Gomez",
    "phone": "+53 5 555 0101",
    "email": "maria@example.com",
    "province": "La Habana",
    "municipality": "Plaza de la Revolucion",
    "address": "Calle 23 #456",
    "area_type": "city",
}


@pytest.fixture
def us_address():
    return dict(US_ADDRESS)


@pytest.fixture
def cu_address():
    return dict(CU_ADDRESS)


@pytest.fixture
def maintenance_mode():
    return "off"


@pytest.fixture
def app(session_factory, gateway, lock_service, notifier, maintenance_mode):
    app = create_app(maintenance_mode=maintenance_mode)

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_lock_service] = lambda: lock_service
    app.dependency_overrides[get_notifier] = lambda: notifier
    return app


@pytest.fixture
def client(app):
    return TestClient(app)
