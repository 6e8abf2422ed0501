# marketplace/repos/shipping_repo.py
from collections import defaultdict

from sqlalchemy import select
from sqlalchemy.orm import Session

from marketplace.data.models.shipping_config import OwnerAreaModel, OwnerShippingConfigModel


class ShippingRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_configs(self, owner_ids: list[int], country: str) -> dict[int, OwnerShippingConfigModel]:
        if not owner_ids:
            return {}
        rows = self.db.execute(
            select(OwnerShippingConfigModel).where(
                OwnerShippingConfigModel.owner_id.in_(owner_ids),
                OwnerShippingConfigModel.country == country,
                OwnerShippingConfigModel.active.is_(True),
            )
        ).scalars().all()
        return {r.owner_id: r for r in rows}

    def get_areas(self, owner_ids: list[int]) -> dict[int, list[OwnerAreaModel]]:
        areas = defaultdict(list)
        if not owner_ids:
            return areas
        rows = self.db.execute(
            select(OwnerAreaModel).where(OwnerAreaModel.owner_id.in_(owner_ids))
        ).scalars().all()
        for r in rows:
            areas[r.owner_id].append(r)
        return areas
