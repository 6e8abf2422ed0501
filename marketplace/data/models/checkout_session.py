import enum
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, Numeric, String

from marketplace.data.database import Base


class SessionStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    EXPIRED = "expired"


class CheckoutSessionModel(Base):
    __tablename__ = "checkout_sessions"

    id = Column(Integer, primary_key=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)
    cart_id = Column(Integer, ForeignKey("carts.id"), nullable=True)

    # pending -> paid | failed | expired, all three terminal
    status = Column(String, nullable=False, default=SessionStatus.PENDING.value)
    payment_method = Column(String, nullable=False)
    amount_total = Column(Numeric(10, 2), nullable=False)

    #written once before the payment intent exists, never updated
    snapshot = Column(JSON, nullable=False)
    session_meta = Column("metadata", JSON, nullable=False, default=dict)
    payment = Column(JSON, nullable=False, default=dict)
    created_order_ids = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    processed_at = Column(DateTime(timezone=True), nullable=True)
