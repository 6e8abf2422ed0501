import enum
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship

from marketplace.data.database import Base


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    SHIPPED = "shipped"
    DELIVERED = "delivered"


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    session_id = Column(Integer, ForeignKey("checkout_sessions.id"), nullable=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)
    owner_id = Column(Integer, ForeignKey("owners.id"), nullable=True)
    customer_name = Column(String, nullable=True)

    status = Column(String, nullable=False, default=OrderStatus.PENDING.value)
    payment_method = Column(String, nullable=False)
    total = Column(Numeric(10, 2), nullable=False)
    order_meta = Column("metadata", JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    paid_at = Column(DateTime(timezone=True), nullable=True)
    shipped_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)

    items = relationship(
        "LineItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="LineItemModel.id",
    )
    owner = relationship("OwnerModel")
    customer = relationship("CustomerModel")

    #one order per vendor per checkout session
    __table_args__ = (UniqueConstraint("session_id", "owner_id", name="u_order_session_owner"),)
