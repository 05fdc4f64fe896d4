import uuid

from sqlalchemy import Column, Integer, String, Text, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from app.core.timezone_utils import utcnow
from app.db.session import Base


class InventoryCategory(Base):
    __tablename__ = "inventory_categories"

    # slug such as 'cervejas' or 'almoco'; order items reference it as category
    id = Column(String(64), primary_key=True)
    name = Column(String(150), nullable=False)
    created_at = Column(DateTime, default=utcnow)

    items = relationship("InventoryItem", back_populates="category_ref", cascade="all, delete-orphan")


class InventoryItem(Base):
    __tablename__ = "inventory_items"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    category = Column(String(64), ForeignKey("inventory_categories.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    # null for categories that do not track stock
    quantity = Column(Integer, nullable=True)
    min_quantity = Column(Integer, nullable=True)
    unit = Column(String(20), nullable=False, default="Un")
    price = Column(Numeric(12, 2), nullable=False, default=0)
    supplier = Column(String(150), nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    version = Column(Integer, nullable=False, default=1)

    category_ref = relationship("InventoryCategory", back_populates="items")

    __mapper_args__ = {"version_id_col": version}
