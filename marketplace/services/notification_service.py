# marketplace/services/notification_service.py
import time
from html import escape

import requests

from marketplace.celery_worker import celery_app
from marketplace.data.database import SessionLocal
from marketplace.domain.money import format_cents, to_cents
from marketplace.repos.order_repo import OrderRepo
from marketplace.utils import settings
from marketplace.utils.logging import get_logger
from marketplace.utils.retry import http_retry

logger = get_logger(__name__)


class EmailClient:
    """Thin client for the Resend HTTP API."""

    def __init__(self, api_key: str | None = None, url: str | None = None, timeout: int = 10):
        self.api_key = api_key or settings.RESEND_API_KEY
        self.url = url or settings.RESEND_API_URL
        self.timeout = timeout

    @http_retry()
    def send(self, to: list[str], subject: str, html: str, sender: str, bcc: list[str] | None = None) -> dict:
        payload = {"from": sender, "to": to, "subject": subject, "html": html}
        if bcc:
            payload["bcc"] = bcc
        resp = requests.post(
            self.url,
            json=payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json()


def _first_email(*candidates) -> str | None:
    for c in candidates:
        if c and str(c).strip():
            return str(c).strip()
    return None


def render_order_email(order, items, role: str) -> tuple[str, str]:
    meta = order.order_meta or {}
    shipping = meta.get("shipping") or {}
    pricing = meta.get("pricing") or {}

    if role == "customer":
        subject = f"Your order #{order.id} is confirmed"
    else:
        subject = f"New order #{order.id} to fulfil"

    rows = "".join(
        f"<tr><td>{escape(str((i.item_meta or {}).get('title') or i.product_id))}</td>"
        f"<td>{i.quantity}</td><td>${format_cents(to_cents(i.unit_price))}</td></tr>"
        for i in items
    )
    address = ", ".join(
        escape(str(shipping[k]))
        for k in ("address", "address_line1", "municipality", "city", "province", "state", "zip")
        if shipping.get(k)
    )
    html = (
        f"<h2>Order #{order.id}</h2>"
        f"<p>Status: {escape(order.status)}</p>"
        f"<table>{rows}</table>"
        f"<p>Subtotal ${format_cents(pricing.get('subtotal_cents', 0))} · "
        f"Tax ${format_cents(pricing.get('tax_cents', 0))} · "
        f"Shipping ${format_cents(pricing.get('shipping_cents', 0))}</p>"
        f"<p><strong>Total ${format_cents(to_cents(order.total))}</strong></p>"
        f"<p>Ship to: {address}</p>"
    )
    return subject, html


def dispatch_order_emails(db, order_ids, email_client, delay: float | None = None, sleep=time.sleep) -> list[dict]:
    """
    Customer + vendor email per order. Every failure is logged and skipped,
    the orders are already paid by the time this runs.
    """
    delay = settings.EMAIL_SEND_DELAY_SECONDS if delay is None else delay
    repo = OrderRepo(db)
    results = []

    for idx, order_id in enumerate(order_ids):
        order = repo.get_order(order_id)
        if not order:
            logger.warning(f"[emails] No order #{order_id}")
            continue

        meta = order.order_meta or {}
        customer = order.customer
        customer_email = _first_email(
            customer.email if customer else None,
            (meta.get("billing") or {}).get("email"),
            (meta.get("shipping") or {}).get("email"),
        )
        owner_email = _first_email(order.owner.email if order.owner else None)

        sent = {"order_id": order_id, "customer": False, "owner": False}

        if customer_email:
            try:
                subject, html = render_order_email(order, order.items, "customer")
                email_client.send([customer_email], subject, html, settings.FROM_EMAIL_CUSTOMER)
                sent["customer"] = True
                logger.info(f"[emails] OK customer {customer_email} -> order #{order_id}")
            except Exception as e:
                logger.error(f"[emails] FAIL customer {customer_email} -> order #{order_id}: {e}")
        else:
            logger.warning(f"[emails] Customer without email for order #{order_id}")

        #vendor copy always goes out; admins receive it when the vendor has no email
        to = [owner_email] if owner_email else list(settings.ADMIN_EMAILS)
        bcc = [a for a in settings.ADMIN_EMAILS if a != (owner_email or "").lower()] if owner_email else None
        if to:
            try:
                subject, html = render_order_email(order, order.items, "owner")
                email_client.send(to, subject, html, settings.FROM_EMAIL_OWNER, bcc=bcc or None)
                sent["owner"] = True
                logger.info(f"[emails] OK owner {to} -> order #{order_id}")
            except Exception as e:
                logger.error(f"[emails] FAIL owner {to} -> order #{order_id}: {e}")
        else:
            logger.warning(f"[emails] No vendor or admin recipient for order #{order_id}")

        results.append(sent)
        if delay and idx < len(order_ids) - 1:
            sleep(delay)

    return results


class NotificationService:
    """
    Post-settlement notifications, processed asynchronously by Celery.
    """

    @staticmethod
    def send_order_notifications(order_ids: list[int]):
        send_order_notifications_task.delay(list(order_ids))


@celery_app.task(name="marketplace.services.notification_service.send_order_notifications_task")
def send_order_notifications_task(order_ids: list[int]):
    logger.info(f"[NOTIFICATION] Dispatching emails for orders {order_ids}")

    db = SessionLocal()
    try:
        return dispatch_order_emails(db, order_ids, EmailClient())
    finally:
        db.close()
