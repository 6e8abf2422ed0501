# marketplace/services/settlement_service.py
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from marketplace.data.models.checkout_session import SessionStatus
from marketplace.data.models.line_item import LineItemModel
from marketplace.data.models.order import OrderModel, OrderStatus
from marketplace.domain.errors import (
    CheckoutValidationError,
    GatewayError,
    InsufficientStockError,
    InvalidTransitionError,
    NotFoundError,
    PaymentDeclinedError,
    StockConflictError,
)
from marketplace.domain.money import cents_to_decimal
from marketplace.domain.snapshot import CheckoutSnapshot, OrderPricing
from marketplace.repos.cart_repo import CartRepo
from marketplace.repos.order_repo import OrderRepo
from marketplace.repos.product_repo import ProductRepo
from marketplace.repos.session_repo import SessionRepo
from marketplace.services.checkout_service import DIRECT_METHOD
from marketplace.services.lock_service import LockService
from marketplace.services.notification_service import NotificationService
from marketplace.services.payment_gateway import CardData, PaymentGatewayClient
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)

_B36 = "0123456789abcdefghijklmnopqrstuvwxyz"


@dataclass
class ConfirmationResult:
    paid: bool
    session_id: int
    status: str
    order_ids: list[int] = field(default_factory=list)
    message: str | None = None
    auth: str | None = None
    ref: str | None = None


def to_base36(n: int) -> str:
    out = ""
    while True:
        n, r = divmod(n, 36)
        out = _B36[r] + out
        if n == 0:
            return out


def user_transaction_number(session_id: int, now_ms: int | None = None) -> str:
    ms = int(time.time() * 1000) if now_ms is None else now_ms
    return f"{session_id}-{to_base36(ms)}"


def split_card_fee(fee_cents: int, totals: list[int]) -> list[int]:
    """Proportional share per group; the last group absorbs the rounding remainder."""
    if not totals:
        return []
    grand = sum(totals)
    if not fee_cents or grand <= 0:
        return [0] * len(totals)
    shares = [fee_cents * t // grand for t in totals[:-1]]
    shares.append(fee_cents - sum(shares))
    return shares


def _stock_key(item) -> tuple:
    return ("variant", item.variant_id) if item.variant_id is not None else ("product", item.product_id)


class SettlementService:
    """
    Payment confirmation and settlement.

    A confirmed payment becomes one paid order per vendor group of the
    session snapshot, in a single transaction, under a per-session lock.
    Replays return the orders created the first time.
    """

    def __init__(
        self,
        db: Session,
        gateway: PaymentGatewayClient | None = None,
        lock_service: LockService | None = None,
        notifier: NotificationService | None = None,
    ):
        self.db = db
        self.sessions = SessionRepo(db)
        self.orders = OrderRepo(db)
        self.products = ProductRepo(db)
        self.carts = CartRepo(db)
        self.gateway = gateway or PaymentGatewayClient()
        self.lock_service = lock_service or LockService()
        self.notifier = notifier or NotificationService()

    #link flow
    def confirm_link_payment(self, session_id: int) -> ConfirmationResult:
        session = self.sessions.get_session(session_id)
        if not session:
            raise NotFoundError("Checkout session not found")

        if session.status == SessionStatus.PAID.value and session.created_order_ids:
            return self._already_processed(session)

        if session.status in (SessionStatus.FAILED.value, SessionStatus.EXPIRED.value):
            return ConfirmationResult(paid=False, session_id=session.id, status=session.status, message=f"Session is {session.status}")

        payment = session.payment or {}
        link_id = payment.get("link_id")
        if not link_id:
            logger.warning(f"Session {session_id} has no payment link reference")
            return ConfirmationResult(paid=False, session_id=session.id, status=session.status, message="No payment link for this session")

        #links are always created with the session id as invoice number
        link_status = self.gateway.get_link_status(str(session.id), link_id)
        if not link_status.paid:
            logger.info(f"Session {session_id}: link {link_id} not paid yet")
            return ConfirmationResult(paid=False, session_id=session.id, status=session.status, message="Payment not confirmed yet")

        record = link_status.record or {}
        order_ids = self.settle(
            session_id,
            {
                "provider": payment.get("provider") or self.gateway.provider,
                "status": "paid",
                "reference": link_id,
                "gateway_status": record.get("Status"),
                "confirmed_at": datetime.now(timezone.utc).isoformat(),
            },
        )
        return ConfirmationResult(paid=True, session_id=session_id, status=SessionStatus.PAID.value, order_ids=order_ids, ref=link_id)

    #direct card flow
    def charge_direct(self, customer_id: int, session_id: int, card: CardData) -> ConfirmationResult:
        session = self.sessions.get_session_for_customer(session_id, customer_id)
        if not session:
            raise NotFoundError("Checkout session not found")
        if session.payment_method != DIRECT_METHOD:
            raise CheckoutValidationError("Session is not a direct card session", fields=["session_id"])

        if session.status == SessionStatus.PAID.value:
            return self._already_processed(session)
        if session.status != SessionStatus.PENDING.value:
            raise InvalidTransitionError(f"Session {session.id} is {session.status}")

        #one sale per session: the lock spans the gateway call and the settlement
        with self.lock_service.session_lock(session_id):
            current = self.sessions.lock_session(session_id)
            if current.status == SessionStatus.PAID.value:
                replay = self._already_processed(current)
                self.sessions.rollback()
                return replay
            status = current.status
            previous = dict(current.payment or {})
            snapshot = CheckoutSnapshot.model_validate(current.snapshot)
            #the row lock is not held across the gateway call
            self.sessions.rollback()

            if status != SessionStatus.PENDING.value:
                raise InvalidTransitionError(f"Session {session_id} is {status}")
            if previous.get("auth") or previous.get("status") == "approved" or previous.get("reconciliation"):
                logger.error(f"Session {session_id} already has an approved charge (auth={previous.get('auth')}), not charging again")
                raise InvalidTransitionError(f"Session {session_id} was already charged and is awaiting reconciliation")

            #advisory only, the binding check runs under row locks in _settle()
            issues = self._stock_issues(snapshot, lock=False)
            if issues:
                logger.warning(f"Direct charge for session {session_id} refused, stock issues: {issues}")
                raise InsufficientStockError(issues)

            utn = user_transaction_number(session_id)
            amount = snapshot.pricing.amount_to_charge_cents
            try:
                result = self.gateway.sale(amount, card, utn)
            except GatewayError as e:
                logger.error(f"Direct charge for session {session_id} failed at the gateway: {e}")
                raise

            payment = {
                "provider": self.gateway.provider,
                "user_transaction_number": utn,
                "amount_cents": amount,
                "card_type": result.card_type,
                "last_four": result.last_four,
                "message": result.message,
            }

            if not result.approved:
                rows = self.sessions.transition(
                    session_id,
                    SessionStatus.PENDING,
                    {
                        "status": SessionStatus.FAILED.value,
                        "payment": {**previous, **payment, "status": "declined"},
                    },
                )
                self.sessions.commit()
                logger.warning(f"Direct charge for session {session_id} declined ({rows} row(s) updated): {result.message}")
                raise PaymentDeclinedError(result.message or "Payment declined")

            charge = {
                **payment,
                "status": "approved",
                "auth": result.auth_number,
                "reference": result.reference,
                "confirmed_at": datetime.now(timezone.utc).isoformat(),
            }
            logger.info(f"Direct charge for session {session_id} approved, auth={result.auth_number}")

            #on record before settling, a failed settlement must not lose the charge
            try:
                self.sessions.merge_payment(session_id, charge)
                self.sessions.commit()
            except SQLAlchemyError as e:
                self.sessions.rollback()
                logger.exception(f"Session {session_id} charged (utn={utn}, auth={result.auth_number}) but the charge was not recorded: {e}")
                raise

            order_ids, created = self._settle(session_id, charge)

        if created:
            self._notify(session_id, order_ids)

        return ConfirmationResult(
            paid=True,
            session_id=session_id,
            status=SessionStatus.PAID.value,
            order_ids=order_ids,
            message=result.message,
            auth=result.auth_number,
            ref=result.reference,
        )

    #settlement
    def settle(self, session_id: int, payment: dict) -> list[int]:
        with self.lock_service.session_lock(session_id):
            order_ids, created = self._settle(session_id, payment)

        if created:
            self._notify(session_id, order_ids)

        return order_ids

    def _settle(self, session_id: int, payment: dict) -> tuple[list[int], bool]:
        """Callers hold the session lock."""
        try:
            return self._settle_locked(session_id, payment)
        except StockConflictError as e:
            self.sessions.rollback()
            self._flag_reconciliation(session_id, e, payment)
            e.reconciliation_required = True
            raise
        except IntegrityError:
            #unique (session, owner): another settlement already wrote these orders
            self.sessions.rollback()
            existing = self.sessions.get_session(session_id)
            if existing and existing.status == SessionStatus.PAID.value:
                return list(existing.created_order_ids or []), False
            raise
        except Exception:
            self.sessions.rollback()
            raise

    def _notify(self, session_id: int, order_ids: list[int]) -> None:
        try:
            self.notifier.send_order_notifications(order_ids)
        except Exception as e:
            logger.exception(f"Order notifications for session {session_id} not queued: {e}")

    @staticmethod
    def _already_processed(session) -> ConfirmationResult:
        return ConfirmationResult(
            paid=True,
            session_id=session.id,
            status=session.status,
            order_ids=list(session.created_order_ids or []),
            message="Already processed",
        )

    def _settle_locked(self, session_id: int, payment: dict) -> tuple[list[int], bool]:
        session = self.sessions.lock_session(session_id)
        if not session:
            raise NotFoundError("Checkout session not found")

        if session.status == SessionStatus.PAID.value:
            logger.info(f"Session {session_id} already settled, returning existing orders")
            return list(session.created_order_ids or []), False
        if session.status != SessionStatus.PENDING.value:
            raise InvalidTransitionError(f"Session {session_id} is {session.status}")

        snapshot = CheckoutSnapshot.model_validate(session.snapshot)

        rows = {}
        issues = self._stock_issues(snapshot, lock=True, rows=rows)
        if issues:
            raise StockConflictError(issues)

        customer = self.orders.get_customer(session.customer_id)
        address = snapshot.shipping_address
        customer_name = (customer.full_name if customer else None) or " ".join(
            p for p in (address.get("first_name"), address.get("last_name")) if p
        )

        now = datetime.now(timezone.utc)
        fee_shares = split_card_fee(snapshot.pricing.card_fee_cents, [g.total_cents for g in snapshot.groups])
        order_ids = []

        for group, fee_share in zip(snapshot.groups, fee_shares):
            order_pricing = OrderPricing(
                subtotal_cents=group.subtotal_cents,
                tax_cents=group.tax_cents,
                shipping_cents=group.shipping_cents,
                total_cents=group.total_cents,
                card_fee_cents=fee_share,
            )
            order = self.orders.add_order(
                OrderModel(
                    session_id=session.id,
                    customer_id=session.customer_id,
                    owner_id=group.owner_id,
                    customer_name=customer_name or None,
                    status=OrderStatus.PAID.value,
                    payment_method=session.payment_method,
                    total=cents_to_decimal(group.total_cents),
                    order_meta={
                        **snapshot.order_meta,
                        "shipping": address,
                        "owner_name": group.owner_name,
                        "shipping_mode": group.shipping_mode,
                        "shipping_zone": group.shipping_zone,
                        "pricing": order_pricing.model_dump(mode="json"),
                        "payment": {k: v for k, v in payment.items() if k != "message"},
                        "status_times": {OrderStatus.PAID.value: now.isoformat()},
                    },
                    paid_at=now,
                )
            )

            for item in group.items:
                self.orders.add_line_item(
                    LineItemModel(
                        order_id=order.id,
                        product_id=item.product_id,
                        variant_id=item.variant_id,
                        quantity=item.quantity,
                        unit_price=cents_to_decimal(item.unit_price_cents),
                        item_meta={"title": item.title, "tax_cents": item.tax_cents, "image_url": item.image_url},
                    )
                )
                self.products.decrement_stock(rows[_stock_key(item)], item.quantity)

            order_ids.append(order.id)

        updated = self.sessions.transition(
            session.id,
            SessionStatus.PENDING,
            {
                "status": SessionStatus.PAID.value,
                "created_order_ids": order_ids,
                "processed_at": now,
                "payment": {**(session.payment or {}), **payment},
            },
        )
        if updated == 0:
            self.sessions.rollback()
            existing = self.sessions.get_session(session_id)
            logger.warning(f"Session {session_id} changed state during settlement, now {existing.status}")
            if existing.status == SessionStatus.PAID.value:
                return list(existing.created_order_ids or []), False
            raise InvalidTransitionError(f"Session {session_id} is {existing.status}")

        if session.cart_id:
            self.carts.mark_completed(session.cart_id)
            self.carts.delete_cart_items(session.cart_id)

        self.sessions.commit()
        logger.info(f"Session {session_id} settled: orders {order_ids}")
        return order_ids, True

    def _stock_issues(self, snapshot: CheckoutSnapshot, lock: bool, rows: dict | None = None) -> list[dict]:
        """
        Compares snapshot quantities to current stock. With lock=True the
        product/variant rows are locked (in a stable order) and kept in `rows`.
        """
        rows = {} if rows is None else rows
        wanted = {}
        titles = {}
        for group in snapshot.groups:
            for item in group.items:
                key = _stock_key(item)
                wanted[key] = wanted.get(key, 0) + item.quantity
                titles[key] = (item.product_id, item.variant_id, item.title, group.owner_name)

        issues = []
        for key in sorted(wanted):
            kind, row_id = key
            if lock:
                row = self.products.lock_variant(row_id) if kind == "variant" else self.products.lock_product(row_id)
            else:
                row = self.products.get_variant(row_id) if kind == "variant" else self.products.get_product(row_id)
            rows[key] = row

            available = int(row.stock_qty or 0) if row is not None else 0
            if row is None or available < wanted[key]:
                product_id, variant_id, title, owner_name = titles[key]
                issues.append(
                    {
                        "product_id": product_id,
                        "variant_id": variant_id,
                        "title": title,
                        "owner_name": owner_name,
                        "requested": wanted[key],
                        "available": available,
                    }
                )
        return issues

    def _flag_reconciliation(self, session_id: int, error: StockConflictError, payment: dict) -> None:
        try:
            self.sessions.merge_payment(
                session_id,
                {
                    **payment,
                    "reconciliation": {
                        "required": True,
                        "reason": "stock_conflict",
                        "items": error.items,
                        "flagged_at": datetime.now(timezone.utc).isoformat(),
                    }
                },
            )
            self.sessions.commit()
        except SQLAlchemyError as e:
            self.sessions.rollback()
            logger.exception(f"Could not flag session {session_id} for reconciliation: {e}")
        logger.error(f"Session {session_id} was charged but cannot be settled, stock conflict: {error.items}")
