from sqlalchemy import Boolean, Column, ForeignKey, Integer, Numeric, String, UniqueConstraint

from marketplace.data.database import Base


class OwnerShippingConfigModel(Base):
    __tablename__ = "owner_shipping_config"

    id = Column(Integer, primary_key=True)
    owner_id = Column(Integer, ForeignKey("owners.id"), nullable=False)
    country = Column(String(2), nullable=False)  # US | CU
    active = Column(Boolean, nullable=False, default=True)
    mode = Column(String, nullable=False, default="fixed")  # fixed | weight

    us_flat = Column(Numeric(10, 2), nullable=True)

    cu_hab_city_flat = Column(Numeric(10, 2), nullable=True)
    cu_hab_rural_flat = Column(Numeric(10, 2), nullable=True)
    cu_other_city_flat = Column(Numeric(10, 2), nullable=True)
    cu_other_rural_flat = Column(Numeric(10, 2), nullable=True)

    cu_hab_city_base = Column(Numeric(10, 2), nullable=True)
    cu_hab_rural_base = Column(Numeric(10, 2), nullable=True)
    cu_other_city_base = Column(Numeric(10, 2), nullable=True)
    cu_other_rural_base = Column(Numeric(10, 2), nullable=True)
    cu_rate_per_lb = Column(Numeric(10, 2), nullable=True)
    cu_min_fee = Column(Numeric(10, 2), nullable=True)

    cu_restrict_to_list = Column(Boolean, nullable=False, default=False)
    cu_over_weight_threshold_lbs = Column(Numeric(10, 2), nullable=True)
    cu_over_weight_fee = Column(Numeric(10, 2), nullable=True)

    __table_args__ = (UniqueConstraint("owner_id", "country", name="u_shipping_owner_country"),)


class OwnerAreaModel(Base):
    __tablename__ = "owner_cu_areas"

    id = Column(Integer, primary_key=True)
    owner_id = Column(Integer, ForeignKey("owners.id", ondelete="CASCADE"), nullable=False)
    province = Column(String, nullable=False)
    municipality = Column(String, nullable=True)  # null = whole province
