from sqlalchemy import Column, Integer, String

from marketplace.data.database import Base


class OwnerModel(Base):
    __tablename__ = "owners"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
