# marketplace/repos/cart_repo.py
from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session, selectinload

from marketplace.data.models.cart import CartModel
from marketplace.data.models.cart_item import CartItemModel
from marketplace.data.models.product import ProductModel


class CartRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_cart(self, cart_id: int) -> CartModel | None:
        return self.db.get(CartModel, cart_id)

    def get_open_cart_by_customer(self, customer_id: int) -> CartModel | None:
        return self.db.execute(
            select(CartModel)
            .where(CartModel.customer_id == customer_id, CartModel.completed.is_(False))
            .limit(1)
        ).scalar_one_or_none()

    def create_cart(self, cart: CartModel) -> CartModel:
        self.db.add(cart)
        self.db.flush()
        return cart

    def get_cart_items(self, cart_id: int) -> list[CartItemModel]:
        return list(
            self.db.execute(
                select(CartItemModel)
                .where(CartItemModel.cart_id == cart_id)
                .options(
                    selectinload(CartItemModel.product).selectinload(ProductModel.owner),
                    selectinload(CartItemModel.variant),
                )
                .order_by(CartItemModel.id.asc())
            ).scalars().all()
        )

    def get_cart_item(self, cart_id: int, product_id: int, variant_id: int | None = None) -> CartItemModel | None:
        stmt = select(CartItemModel).where(
            CartItemModel.cart_id == cart_id,
            CartItemModel.product_id == product_id,
        )
        if variant_id is None:
            stmt = stmt.where(CartItemModel.variant_id.is_(None))
        else:
            stmt = stmt.where(CartItemModel.variant_id == variant_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_item_by_id(self, cart_id: int, item_id: int) -> CartItemModel | None:
        return self.db.execute(
            select(CartItemModel).where(CartItemModel.id == item_id, CartItemModel.cart_id == cart_id)
        ).scalar_one_or_none()

    def add_cart_item(self, item: CartItemModel) -> CartItemModel:
        self.db.add(item)
        self.db.flush()
        return item

    def delete_cart_item(self, item: CartItemModel) -> None:
        self.db.delete(item)
        self.db.flush()

    def delete_cart_items(self, cart_id: int) -> int:
        result = self.db.execute(delete(CartItemModel).where(CartItemModel.cart_id == cart_id))
        return result.rowcount

    def update_cart_version(self, cart_id: int, old_version: int, new_data: dict) -> int:
        #UPDATE carts SET version = :new WHERE id = :id AND version = :old
        result = self.db.execute(
            update(CartModel)
            .where(CartModel.id == cart_id, CartModel.version == old_version)
            .values(**new_data)
        )
        return result.rowcount

    def mark_completed(self, cart_id: int) -> int:
        result = self.db.execute(
            update(CartModel)
            .where(CartModel.id == cart_id, CartModel.completed.is_(False))
            .values(completed=True, version=CartModel.version + 1)
        )
        return result.rowcount

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
