# marketplace/services/order_service.py
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from marketplace.data.models.customer import Role
from marketplace.data.models.order import OrderStatus
from marketplace.domain.errors import InvalidTransitionError, NotFoundError
from marketplace.repos.order_repo import OrderRepo
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)

#role -> {target status: statuses it may be reached from}; admin is unrestricted
_TRANSITIONS = {
    Role.OWNER: {
        OrderStatus.SHIPPED: {OrderStatus.PAID},
        OrderStatus.DELIVERED: {OrderStatus.PAID, OrderStatus.SHIPPED},
    },
    Role.DELIVERY: {
        OrderStatus.SHIPPED: {OrderStatus.PAID},
        OrderStatus.DELIVERED: {OrderStatus.SHIPPED},
    },
}

ADMIN_TARGETS = {OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED}


def serialize_order(order) -> dict:
    return {
        "id": order.id,
        "session_id": order.session_id,
        "customer_id": order.customer_id,
        "owner_id": order.owner_id,
        "status": order.status,
        "payment_method": order.payment_method,
        "total": order.total,
        "metadata": order.order_meta or {},
        "items": [
            {
                "product_id": i.product_id,
                "variant_id": i.variant_id,
                "quantity": i.quantity,
                "unit_price": i.unit_price,
                "title": (i.item_meta or {}).get("title"),
            }
            for i in order.items
        ],
        "created_at": order.created_at,
        "shipped_at": order.shipped_at,
        "delivered_at": order.delivered_at,
    }


class OrderService:
    """
    Orders are only ever created by settlement; this service reads them
    and moves them through fulfilment.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = OrderRepo(db)

    def _user(self, user_id: int):
        user = self.repo.get_customer(user_id)
        if not user:
            raise PermissionError("Unknown user")
        return user

    @staticmethod
    def can_read(user, order) -> bool:
        if user.role in (Role.ADMIN, Role.DELIVERY):
            return True
        if user.role == Role.OWNER:
            return user.owner_id is not None and user.owner_id == order.owner_id
        return order.customer_id == user.id

    def get_order(self, order_id: int, user_id: int) -> dict:
        """
        Use Case: read a single order (Query).
        """
        order = self.repo.get_order(order_id)
        if not order:
            raise NotFoundError("Order not found")

        if not self.can_read(self._user(user_id), order):
            raise PermissionError("No access to this order")

        return serialize_order(order)

    def list_customer_orders(self, customer_id: int) -> list[dict]:
        return [serialize_order(o) for o in self.repo.list_by_customer(customer_id)]

    def update_status(self, order_id: int, user_id: int, next_status: str, delivery: dict | None = None) -> dict:
        try:
            target = OrderStatus(str(next_status).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown order status: {next_status}")

        order = self.repo.get_order(order_id)
        if not order:
            raise NotFoundError("Order not found")

        user = self._user(user_id)
        current = OrderStatus(order.status)

        if user.role == Role.ADMIN:
            if target not in ADMIN_TARGETS:
                raise InvalidTransitionError(f"Cannot set status {target.value}")
        elif user.role in _TRANSITIONS:
            if user.role == Role.OWNER and (user.owner_id is None or user.owner_id != order.owner_id):
                raise PermissionError("Order belongs to another vendor")
            allowed_from = _TRANSITIONS[user.role].get(target)
            if allowed_from is None:
                raise PermissionError(f"Role {user.role.value} cannot set status {target.value}")
            if current not in allowed_from:
                raise InvalidTransitionError(f"Cannot move order from {current.value} to {target.value}")
        else:
            raise PermissionError("Customers cannot change order status")

        now = datetime.now(timezone.utc)
        meta = dict(order.order_meta or {})
        meta["status_times"] = {**(meta.get("status_times") or {}), target.value: now.isoformat()}

        if target == OrderStatus.SHIPPED:
            order.shipped_at = now
        elif target == OrderStatus.DELIVERED:
            order.delivered_at = now
            meta["delivery"] = {**(delivery or {}), "delivered_by": user.id, "delivered_at": now.isoformat()}

        #JSON column: assign a new dict so the change is tracked
        order.order_meta = meta
        order.status = target.value
        self.repo.commit()

        logger.info(f"Order {order_id}: {current.value} -> {target.value} by user {user_id} ({user.role.value})")
        return serialize_order(order)
