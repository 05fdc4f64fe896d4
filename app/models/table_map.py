import uuid

from sqlalchemy import Column, Integer, String, Text, DateTime, JSON
from app.core.timezone_utils import utcnow
from app.db.session import Base


class TableMap(Base):
    """A floor plan; its tables live in one embedded JSON array.

    Every table change rewrites the whole ``tables`` array and bumps
    ``version`` so that two writers cannot silently overwrite each other.
    """

    __tablename__ = "table_maps"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(150), nullable=False)
    description = Column(Text, nullable=True)
    user_id = Column(Integer, nullable=True)
    tables = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}
