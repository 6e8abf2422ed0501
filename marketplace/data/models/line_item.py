from sqlalchemy import JSON, Column, ForeignKey, Integer, Numeric
from sqlalchemy.orm import relationship

from marketplace.data.database import Base


class LineItemModel(Base):
    __tablename__ = "line_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=True)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True)

    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    item_meta = Column("metadata", JSON, nullable=False, default=dict)

    order = relationship("OrderModel", back_populates="items")
