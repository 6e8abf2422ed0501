from typing import Any, Dict

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketplace.data.models.cart import CartModel
from marketplace.data.models.cart_item import CartItemModel
from marketplace.domain.errors import InsufficientStockError, NotFoundError
from marketplace.domain.money import cents_to_decimal
from marketplace.domain.pricing import CartLine, price_cart, price_unit
from marketplace.repos.cart_repo import CartRepo
from marketplace.repos.product_repo import ProductRepo
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)


def available_stock(item) -> int:
    """Variant stock when the line has a variant, product stock otherwise."""
    if item.variant is not None:
        return int(item.variant.stock_qty or 0)
    return int(item.product.stock_qty or 0) if item.product is not None else 0


def find_stock_issues(items) -> list[dict]:
    issues = []
    for it in items:
        available = available_stock(it)
        if available < int(it.quantity):
            product = it.product
            issues.append(
                {
                    "product_id": it.product_id,
                    "variant_id": it.variant_id,
                    "title": product.title if product else None,
                    "owner_name": product.owner.name if product and product.owner else None,
                    "requested": int(it.quantity),
                    "available": available,
                }
            )
    return issues


class CartService:
    """
    Cart use cases:
    commands (add, remove) modify state, server-side pricing only
    queries (get, validate) read only
    """

    def __init__(self, db: Session):
        self.repo = CartRepo(db)
        self.products = ProductRepo(db)

    #query
    def get_cart(self, customer_id: int) -> Dict[str, Any]:
        cart = self.repo.get_open_cart_by_customer(customer_id)
        if not cart:
            return {"cart_id": None, "customer_id": customer_id, "items": []}

        items = self.repo.get_cart_items(cart.id)
        pricing = price_cart([CartLine.from_cart_item(i) for i in items])

        return {
            "cart_id": cart.id,
            "customer_id": cart.customer_id,
            "completed": cart.completed,
            "items": [
                {
                    "id": i.id,
                    "product_id": i.product_id,
                    "variant_id": i.variant_id,
                    "title": i.product.title if i.product else None,
                    "quantity": i.quantity,
                    "unit_price": i.unit_price,
                    "tax_cents": int((i.pricing or {}).get("tax_cents") or 0),
                    "owner_id": i.product.owner_id if i.product else None,
                    "available_stock": available_stock(i),
                }
                for i in items
            ],
            "subtotal": cents_to_decimal(pricing.subtotal_cents),
            "tax": cents_to_decimal(pricing.tax_cents),
        }

    def validate_stock(self, customer_id: int, cart_id: int) -> Dict[str, Any]:
        cart = self.repo.get_cart(cart_id)
        if not cart or cart.customer_id != customer_id or cart.completed:
            raise NotFoundError("Cart not found")

        issues = find_stock_issues(self.repo.get_cart_items(cart_id))
        return {"ok": not issues, "unavailable": issues}

    #commands
    def get_or_create_open_cart(self, customer_id: int) -> CartModel:
        existing = self.repo.get_open_cart_by_customer(customer_id)
        if existing:
            return existing

        try:
            created = self.repo.create_cart(CartModel(customer_id=customer_id, completed=False, version=1))
        except IntegrityError:
            #another request created it first (partial unique index)
            self.repo.rollback()
            return self.repo.get_open_cart_by_customer(customer_id)

        logger.info(f"Created cart {created.id} for customer {customer_id}")
        return created

    def add_product(
        self,
        customer_id: int,
        product_id: int,
        quantity: int,
        variant_id: int | None = None,
    ) -> Dict[str, Any]:

        if quantity <= 0:
            raise ValueError("Quantity must be greater than 0")

        product = self.products.get_product(product_id)
        if not product:
            raise NotFoundError("Product not found")

        variant = None
        if variant_id is not None:
            variant = self.products.get_variant(variant_id)
            if not variant or variant.product_id != product.id:
                raise NotFoundError("Variant not found")

        if product.archived or (variant is not None and variant.archived):
            raise InsufficientStockError(
                [{"product_id": product.id, "title": product.title, "requested": quantity, "available": 0}],
                message="Product is archived and no longer available",
            )

        cart = self.get_or_create_open_cart(customer_id)
        existing_item = self.repo.get_cart_item(cart.id, product_id, variant_id)

        current_qty = existing_item.quantity if existing_item else 0
        requested_total = current_qty + quantity
        stock = int((variant.stock_qty if variant is not None else product.stock_qty) or 0)
        if requested_total > stock:
            self.repo.rollback()
            raise InsufficientStockError(
                [
                    {
                        "product_id": product.id,
                        "title": product.title,
                        "requested": requested_total,
                        "available": max(stock - current_qty, 0),
                    }
                ],
                message="Requested quantity exceeds available stock",
            )

        #price is always recomputed here, never taken from the client
        unit = price_unit(product, variant)
        unit_price = cents_to_decimal(unit.price_with_margin_cents)
        meta = unit.model_dump(mode="json")

        if existing_item:
            logger.info(
                f"Product {product_id} already in cart {cart.id}, quantity "
                f"{existing_item.quantity} -> {requested_total}"
            )
            existing_item.quantity = requested_total
            existing_item.unit_price = unit_price
            existing_item.pricing = meta
            self.repo.add_cart_item(existing_item)
        else:
            logger.info(f"Adding product {product_id} to cart {cart.id}")
            self.repo.add_cart_item(
                CartItemModel(
                    cart_id=cart.id,
                    product_id=product_id,
                    variant_id=variant_id,
                    quantity=quantity,
                    unit_price=unit_price,
                    pricing=meta,
                )
            )

        # Optimistic locking on the cart version
        rowcount = self.repo.update_cart_version(
            cart_id=cart.id,
            old_version=cart.version,
            new_data={"version": cart.version + 1},
        )
        if rowcount == 0:
            self.repo.rollback()
            raise RuntimeError("Concurrent modification - the cart was changed by another request")

        self.repo.commit()
        logger.info(f"Product {product_id} added to cart {cart.id}, unit price {unit_price}")

        return self.get_cart(customer_id)

    def remove_item(self, customer_id: int, item_id: int) -> None:
        """Decrements by one, deletes the line at quantity 1. Missing cart/item is a no-op."""
        cart = self.repo.get_open_cart_by_customer(customer_id)
        if not cart:
            return

        item = self.repo.get_item_by_id(cart.id, item_id)
        if not item:
            return

        if item.quantity > 1:
            item.quantity -= 1
        else:
            self.repo.delete_cart_item(item)

        rowcount = self.repo.update_cart_version(
            cart_id=cart.id,
            old_version=cart.version,
            new_data={"version": cart.version + 1},
        )
        if rowcount == 0:
            self.repo.rollback()
            raise RuntimeError("Concurrent modification - the cart was changed by another request")

        self.repo.commit()
        logger.info(f"Item {item_id} removed from cart {cart.id}")
