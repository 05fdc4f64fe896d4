import uuid

from sqlalchemy import Column, Integer, String, Text, Numeric, DateTime, JSON, Index
from app.core.timezone_utils import utcnow
from app.db.session import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=_uuid)
    # sequence restarted every local day, shown to the kitchen
    order_number = Column(Integer, nullable=False, default=1)
    user_id = Column(Integer, nullable=True, index=True)
    # canonical list of order items; always reassigned, never mutated in place
    items = Column(JSON, nullable=False, default=list)
    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    discount = Column(Numeric(12, 2), nullable=False, default=0)
    total = Column(Numeric(12, 2), nullable=False, default=0)
    status = Column(String(30), nullable=False, default="Pendente", index=True)
    order_type = Column(String(20), nullable=False, default="table")

    table_id = Column(String(64), nullable=True, index=True)
    map_id = Column(String(36), nullable=True)
    table_number = Column(Integer, nullable=True)
    waiter = Column(String(150), nullable=True)

    payment_method = Column(String(20), nullable=True)
    payment_amount = Column(Numeric(12, 2), nullable=True)
    paid_at = Column(DateTime, nullable=True)

    special_requests = Column(Text, nullable=True)
    dietary_restrictions = Column(JSON, nullable=False, default=list)
    customer_name = Column(String(150), nullable=True)
    customer_phone = Column(String(40), nullable=True)

    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    closed_at = Column(DateTime, nullable=True)

    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (Index("ix_orders_table_status", "table_id", "status"),)
