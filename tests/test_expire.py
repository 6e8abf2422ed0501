from datetime import datetime, timedelta, timezone
from decimal import Decimal

from marketplace.data.models import CheckoutSessionModel
from marketplace.tasks.expire import expire_sessions

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_session(db, customer, age, status="pending"):
    session = CheckoutSessionModel(
        customer_id=customer.id,
        status=status,
        payment_method="bmspay",
        amount_total=Decimal("15.00"),
        snapshot={},
        created_at=NOW - age,
    )
    db.add(session)
    db.commit()
    return session.id


def test_only_stale_pending_sessions_expire(db, catalog):
    stale = make_session(db, catalog.customer, timedelta(hours=2))
    fresh = make_session(db, catalog.customer, timedelta(minutes=10))
    paid = make_session(db, catalog.customer, timedelta(days=3), status="paid")
    failed = make_session(db, catalog.customer, timedelta(days=3), status="failed")

    assert expire_sessions(db, now=NOW, ttl_seconds=3600) == 1

    db.expire_all()
    statuses = {sid: db.get(CheckoutSessionModel, sid).status for sid in (stale, fresh, paid, failed)}
    assert statuses == {stale: "expired", fresh: "pending", paid: "paid", failed: "failed"}


def test_running_twice_expires_nothing_new(db, catalog):
    make_session(db, catalog.customer, timedelta(hours=2))

    assert expire_sessions(db, now=NOW, ttl_seconds=3600) == 1
    assert expire_sessions(db, now=NOW, ttl_seconds=3600) == 0
