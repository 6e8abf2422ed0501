# marketplace/repos/order_repo.py
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from marketplace.data.models.customer import CustomerModel
from marketplace.data.models.line_item import LineItemModel
from marketplace.data.models.order import OrderModel


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def add_order(self, order: OrderModel) -> OrderModel:
        #flush only, the caller owns the transaction
        self.db.add(order)
        self.db.flush()
        return order

    def add_line_item(self, item: LineItemModel) -> LineItemModel:
        self.db.add(item)
        self.db.flush()
        return item

    def get_order(self, order_id: int) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel)
            .where(OrderModel.id == order_id)
            .options(selectinload(OrderModel.items))
        ).scalar_one_or_none()

    def list_by_customer(self, customer_id: int) -> list[OrderModel]:
        return list(
            self.db.execute(
                select(OrderModel)
                .where(OrderModel.customer_id == customer_id)
                .options(selectinload(OrderModel.items))
                .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
            ).scalars().all()
        )

    def get_customer(self, customer_id: int) -> CustomerModel | None:
        return self.db.get(CustomerModel, customer_id)

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
