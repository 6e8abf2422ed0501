from sqlalchemy import Boolean, Column, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from marketplace.data.database import Base


class ProductModel(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    owner_id = Column(Integer, ForeignKey("owners.id"), nullable=True)  # null = platform
    title = Column(String, nullable=False)
    image_url = Column(String, nullable=True)

    #pricing inputs (USD), the sale price is derived at add-to-cart time
    base_cost = Column(Numeric(10, 2), nullable=False, default=0)
    duty = Column(Numeric(10, 2), nullable=False, default=0)
    margin_pct = Column(Numeric(6, 2), nullable=False, default=0)
    taxable = Column(Boolean, nullable=False, default=True)
    tax_pct = Column(Numeric(5, 2), nullable=False, default=0)

    weight_lb = Column(Numeric(10, 2), nullable=False, default=0)
    stock_qty = Column(Integer, nullable=False, default=0)
    archived = Column(Boolean, nullable=False, default=False)

    owner = relationship("OwnerModel")
    variants = relationship("ProductVariantModel", back_populates="product")


class ProductVariantModel(Base):
    __tablename__ = "product_variants"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    label = Column(String, nullable=False)

    price_override = Column(Numeric(10, 2), nullable=True)
    weight_lb = Column(Numeric(10, 2), nullable=True)
    image_url = Column(String, nullable=True)
    stock_qty = Column(Integer, nullable=False, default=0)
    archived = Column(Boolean, nullable=False, default=False)

    product = relationship("ProductModel", back_populates="variants")
