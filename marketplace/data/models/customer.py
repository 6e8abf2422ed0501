import enum

from sqlalchemy import Column, Enum, ForeignKey, Integer, String

from marketplace.data.database import Base


class Role(str, enum.Enum):
    CUSTOMER = "customer"
    OWNER = "owner"
    DELIVERY = "delivery"
    ADMIN = "admin"


class CustomerModel(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True)
    email = Column(String, nullable=True, unique=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)

    role = Column(
        Enum(Role, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=Role.CUSTOMER,
    )
    #vendor staff assignment, only meaningful for role=owner
    owner_id = Column(Integer, ForeignKey("owners.id"), nullable=True)

    @property
    def full_name(self) -> str | None:
        name = " ".join(p for p in (self.first_name, self.last_name) if p).strip()
        return name or None
