# marketplace/repos/product_repo.py
from sqlalchemy import select
from sqlalchemy.orm import Session

from marketplace.data.models.product import ProductModel, ProductVariantModel


class ProductRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_product(self, product_id: int) -> ProductModel | None:
        return self.db.get(ProductModel, product_id)

    def get_variant(self, variant_id: int) -> ProductVariantModel | None:
        return self.db.get(ProductVariantModel, variant_id)

    #SELECT ... FOR UPDATE, only meaningful inside an open transaction
    def lock_product(self, product_id: int) -> ProductModel | None:
        return self.db.execute(
            select(ProductModel)
            .where(ProductModel.id == product_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def lock_variant(self, variant_id: int) -> ProductVariantModel | None:
        return self.db.execute(
            select(ProductVariantModel)
            .where(ProductVariantModel.id == variant_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def decrement_stock(self, row, quantity: int) -> int:
        """Works for products and variants; archives the row when it runs out."""
        row.stock_qty = int(row.stock_qty or 0) - int(quantity)
        if row.stock_qty <= 0:
            row.archived = True
        self.db.flush()
        return row.stock_qty
