# marketplace/services/checkout_service.py
from dataclasses import dataclass

from sqlalchemy.orm import Session

from marketplace.data.models.checkout_session import CheckoutSessionModel, SessionStatus
from marketplace.domain.errors import CheckoutValidationError, EmptyCartError, GatewayError, InsufficientStockError, NotFoundError
from marketplace.domain.money import cents_to_decimal, format_cents, percent_of
from marketplace.domain.pricing import CartLine, price_cart
from marketplace.domain.shipping import Destination
from marketplace.domain.snapshot import CheckoutSnapshot, PricingBreakdown
from marketplace.repos.cart_repo import CartRepo
from marketplace.repos.session_repo import SessionRepo
from marketplace.services.cart_service import find_stock_issues
from marketplace.services.payment_gateway import PaymentGatewayClient, with_return_url
from marketplace.services.shipping_service import ShippingService
from marketplace.utils import settings
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)

LINK_METHOD = "bmspay"
DIRECT_METHOD = "bmspay_direct"

SUPPORTED_LOCALES = ("en", "es")

REQUIRED_ADDRESS_FIELDS = {
    "CU": ("first_name", "last_name", "phone", "email", "province", "municipality", "address", "area_type"),
    "US": ("first_name", "last_name", "phone", "email", "address_line1", "city", "state", "zip"),
}

#client metadata keys copied onto every order
PASSTHROUGH_META = ("billing", "payer", "terms")


@dataclass
class CheckoutStarted:
    session_id: int
    pay_url: str
    amount: str


@dataclass
class DirectCheckoutStarted:
    session_id: int
    amount: str
    card_fee: str
    amount_to_charge: str


def normalize_shipping(shipping: dict) -> dict:
    """Canonical address: upper-case country, provincia/municipio folded into province/municipality."""
    address = {k: (v.strip() if isinstance(v, str) else v) for k, v in (shipping or {}).items()}
    address["country"] = str(address.get("country") or "").strip().upper()
    if not address.get("province") and address.get("provincia"):
        address["province"] = address.pop("provincia")
    if not address.get("municipality") and address.get("municipio"):
        address["municipality"] = address.pop("municipio")
    if address["country"] == "CU":
        address["area_type"] = str(address.get("area_type") or "").lower()
    return address


def validate_shipping(address: dict) -> None:
    country = address.get("country")
    required = REQUIRED_ADDRESS_FIELDS.get(country)
    if required is None:
        raise CheckoutValidationError(f"Unsupported shipping country: {country or '(none)'}", fields=["country"])

    missing = [f for f in required if not str(address.get(f) or "").strip()]
    if missing:
        raise CheckoutValidationError(f"Missing shipping fields: {', '.join(missing)}", fields=missing)

    if country == "CU" and address["area_type"] not in ("city", "municipio", "rural"):
        raise CheckoutValidationError("area_type must be one of city, municipio, rural", fields=["area_type"])


def resolve_locale(locale: str | None, metadata: dict | None = None) -> str:
    value = str(locale or (metadata or {}).get("locale") or "").strip().lower()
    return value if value in SUPPORTED_LOCALES else settings.DEFAULT_LOCALE


class CheckoutService:
    """
    Turns an open cart into a pending checkout session:
    validate -> price -> quote shipping -> freeze snapshot -> (link) payment intent.

    The snapshot is committed before the gateway is called and never
    rewritten; settlement builds orders from it alone.
    """

    def __init__(self, db: Session, gateway: PaymentGatewayClient | None = None):
        self.db = db
        self.carts = CartRepo(db)
        self.sessions = SessionRepo(db)
        self.shipping = ShippingService(db)
        self.gateway = gateway or PaymentGatewayClient()

    def _prepare(self, customer_id: int, cart_id: int, shipping: dict, metadata: dict, locale: str | None, kind: str) -> CheckoutSnapshot:
        cart = self.carts.get_cart(cart_id)
        if not cart or cart.customer_id != customer_id or cart.completed:
            raise NotFoundError("Cart not found")

        items = self.carts.get_cart_items(cart_id)
        if not items:
            raise EmptyCartError()

        address = normalize_shipping(shipping)
        validate_shipping(address)

        issues = find_stock_issues(items)
        if issues:
            logger.warning(f"Checkout of cart {cart_id} rejected, stock issues: {issues}")
            raise InsufficientStockError(issues)

        pricing = price_cart([CartLine.from_cart_item(i) for i in items])
        quote = self.shipping.quote_groups(pricing.groups, Destination.from_address(address), address.get("transport"))

        total = pricing.subtotal_cents + pricing.tax_cents + quote.total_cents
        card_fee_pct = settings.CARD_FEE_PCT if kind == "direct" else 0
        card_fee = percent_of(total, card_fee_pct) if kind == "direct" else 0

        metadata = metadata or {}
        order_meta = {k: metadata[k] for k in PASSTHROUGH_META if metadata.get(k) is not None}
        order_meta["locale"] = resolve_locale(locale, metadata)

        return CheckoutSnapshot(
            country=address["country"],
            locale=order_meta["locale"],
            shipping_address=address,
            groups=pricing.groups,
            pricing=PricingBreakdown(
                kind=kind,
                subtotal_cents=pricing.subtotal_cents,
                tax_cents=pricing.tax_cents,
                shipping_cents=quote.total_cents,
                total_cents=total,
                card_fee_pct=card_fee_pct,
                card_fee_cents=card_fee,
                amount_to_charge_cents=total + card_fee,
            ),
            order_meta=order_meta,
        )

    def _persist(self, customer_id: int, cart_id: int, snapshot: CheckoutSnapshot, payment_method: str) -> CheckoutSessionModel:
        session = self.sessions.create_session(
            CheckoutSessionModel(
                customer_id=customer_id,
                cart_id=cart_id,
                status=SessionStatus.PENDING.value,
                payment_method=payment_method,
                amount_total=cents_to_decimal(snapshot.pricing.total_cents),
                snapshot=snapshot.model_dump(mode="json"),
                session_meta={"payment_method": payment_method, "order_meta": snapshot.order_meta},
                payment={},
                created_order_ids=[],
            )
        )
        logger.info(
            f"Checkout session {session.id} created for cart {cart_id}: "
            f"{len(snapshot.groups)} vendor group(s), total {format_cents(snapshot.pricing.total_cents)}"
        )
        return session

    def start_checkout(
        self,
        customer_id: int,
        cart_id: int,
        shipping: dict,
        metadata: dict | None = None,
        locale: str | None = None,
    ) -> CheckoutStarted:
        snapshot = self._prepare(customer_id, cart_id, shipping, metadata, locale, "link")
        session = self._persist(customer_id, cart_id, snapshot, LINK_METHOD)

        p = snapshot.pricing
        description = (
            f"Order #{session.id} - Sub ${format_cents(p.subtotal_cents)} "
            f"Tax ${format_cents(p.tax_cents)} Ship ${format_cents(p.shipping_cents)}"
        )
        try:
            link = self.gateway.create_payment_link(p.total_cents, description, str(session.id))
        except GatewayError as e:
            #the pending session stays behind and is swept by the expiry task
            logger.error(f"Payment link for session {session.id} failed: {e}")
            raise

        if link.invoice_number is not None and str(link.invoice_number) != str(session.id):
            logger.error(f"Payment link {link.id} came back with invoice {link.invoice_number}, expected {session.id}")
            raise GatewayError("Gateway returned a payment link for another invoice")

        return_url = f"{settings.CLIENT_BASE_URL.rstrip('/')}/{snapshot.locale}/checkout/success?sessionId={session.id}"
        pay_url = with_return_url(link.link, return_url)

        self.sessions.merge_payment(
            session.id,
            {
                "provider": self.gateway.provider,
                "link_id": link.id,
                "link": pay_url,
                "link_original": link.link,
                "invoice": str(session.id),
                "status": link.status,
            },
        )
        self.sessions.commit()
        logger.info(f"Payment link {link.id} attached to session {session.id}")

        return CheckoutStarted(session_id=session.id, pay_url=pay_url, amount=format_cents(p.total_cents))

    def start_direct_checkout(
        self,
        customer_id: int,
        cart_id: int,
        shipping: dict,
        metadata: dict | None = None,
        locale: str | None = None,
    ) -> DirectCheckoutStarted:
        snapshot = self._prepare(customer_id, cart_id, shipping, metadata, locale, "direct")
        session = self._persist(customer_id, cart_id, snapshot, DIRECT_METHOD)

        p = snapshot.pricing
        return DirectCheckoutStarted(
            session_id=session.id,
            amount=format_cents(p.total_cents),
            card_fee=format_cents(p.card_fee_cents),
            amount_to_charge=format_cents(p.amount_to_charge_cents),
        )
