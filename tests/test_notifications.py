"""Order confirmation emails: recipients, admin fallback, failure isolation."""
from decimal import Decimal

import pytest

from marketplace.data.models import CustomerModel, LineItemModel, OrderModel
from marketplace.services import notification_service
from marketplace.services.notification_service import NotificationService, dispatch_order_emails, render_order_email

from fakes import FakeEmailClient

ADMIN = "admin@marketplace.example"


def make_order(db, customer, owner, title="Rice 10 lb", meta=None):
    order = OrderModel(
        customer_id=customer.id,
        owner_id=owner.id if owner else None,
        status="paid",
        payment_method="bmspay",
        total=Decimal("25.00"),
        order_meta={
            "shipping": {"address_line1": "100 Biscayne Blvd", "city": "Miami", "state": "FL", "zip": "33132"},
            "pricing": {"subtotal_cents": 2000, "tax_cents": 0, "shipping_cents": 500, "total_cents": 2500},
            **(meta or {}),
        },
    )
    db.add(order)
    db.flush()
    db.add(LineItemModel(order_id=order.id, product_id=None, quantity=2, unit_price=Decimal("10.00"), item_meta={"title": title}))
    db.commit()
    return order


@pytest.fixture
def sleeps():
    return []


def dispatch(db, order_ids, client, sleeps, delay=0):
    return dispatch_order_emails(db, order_ids, client, delay=delay, sleep=sleeps.append)


class TestRecipients:
    def test_vendor_with_email_gets_the_order_and_admins_are_copied(self, db, catalog, sleeps):
        order = make_order(db, catalog.customer, catalog.vendor_a)
        client = FakeEmailClient()

        [result] = dispatch(db, [order.id], client, sleeps)

        assert result == {"order_id": order.id, "customer": True, "owner": True}
        customer_mail, owner_mail = client.sent
        assert customer_mail["to"] == ["ana@example.com"]
        assert customer_mail["subject"] == f"Your order #{order.id} is confirmed"
        assert owner_mail["to"] == ["ventas@tiendahabana.example"]
        assert owner_mail["bcc"] == [ADMIN]

    def test_vendor_without_email_falls_back_to_admins(self, db, catalog, sleeps):
        order = make_order(db, catalog.customer, catalog.vendor_b)
        client = FakeEmailClient()

        dispatch(db, [order.id], client, sleeps)

        owner_mail = client.sent[1]
        assert owner_mail["to"] == [ADMIN]
        assert owner_mail["bcc"] is None

    def test_platform_order_goes_to_admins(self, db, catalog, sleeps):
        order = make_order(db, catalog.customer, None)
        client = FakeEmailClient()

        dispatch(db, [order.id], client, sleeps)

        assert client.sent[1]["to"] == [ADMIN]

    def test_customer_email_falls_back_to_billing(self, db, catalog, sleeps):
        guest = CustomerModel(email=None, first_name="Guest")
        db.add(guest)
        db.commit()
        order = make_order(db, guest, catalog.vendor_a, meta={"billing": {"email": "billing@example.com"}})
        client = FakeEmailClient()

        dispatch(db, [order.id], client, sleeps)

        assert client.sent[0]["to"] == ["billing@example.com"]

    def test_customer_without_any_email_is_skipped(self, db, catalog, sleeps):
        guest = CustomerModel(email=None)
        db.add(guest)
        db.commit()
        order = make_order(db, guest, catalog.vendor_a, meta={"shipping": {}})
        client = FakeEmailClient()

        [result] = dispatch(db, [order.id], client, sleeps)

        assert not result["customer"]
        assert result["owner"]


class TestFailures:
    def test_one_failed_send_does_not_stop_the_rest(self, db, catalog, sleeps):
        first = make_order(db, catalog.customer, catalog.vendor_a)
        second = make_order(db, catalog.other_customer, catalog.vendor_b)
        client = FakeEmailClient(fail_for={"ana@example.com"})

        results = dispatch(db, [first.id, second.id], client, sleeps)

        assert results[0] == {"order_id": first.id, "customer": False, "owner": True}
        assert results[1] == {"order_id": second.id, "customer": True, "owner": True}
        assert len(client.sent) == 3

    def test_unknown_order_is_skipped(self, db, catalog, sleeps):
        order = make_order(db, catalog.customer, catalog.vendor_a)

        results = dispatch(db, [9999, order.id], FakeEmailClient(), sleeps)

        assert [r["order_id"] for r in results] == [order.id]


def test_sends_are_spaced_between_orders(db, catalog, sleeps):
    ids = [make_order(db, catalog.customer, catalog.vendor_a).id for _ in range(2)]
    ids.append(make_order(db, catalog.customer, catalog.vendor_b).id)

    dispatch(db, ids, FakeEmailClient(), sleeps, delay=1.8)

    assert sleeps == [1.8, 1.8]


def test_email_body_escapes_titles(db, catalog):
    order = make_order(db, catalog.customer, catalog.vendor_a, title="<script>x</script>")

    subject, html = render_order_email(order, order.items, "owner")

    assert subject == f"New order #{order.id} to fulfil"
    assert "&lt;script&gt;" in html
    assert "<script>" not in html
    assert "Total $25.00" in html
    assert "100 Biscayne Blvd, Miami, FL, 33132" in html


def test_notifications_are_queued_on_celery(monkeypatch):
    queued = []
    monkeypatch.setattr(notification_service.send_order_notifications_task, "delay", lambda ids: queued.append(ids))

    NotificationService().send_order_notifications((3, 4))

    assert queued == [[3, 4]]
