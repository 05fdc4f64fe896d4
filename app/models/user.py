from sqlalchemy import Column, Integer, String, DateTime, Enum, JSON
from app.core.timezone_utils import utcnow
from app.db.session import Base
import enum


class RoleEnum(str, enum.Enum):
    owner = "owner"
    admin = "admin"
    manager = "manager"
    waiter = "waiter"
    chef = "chef"
    barman = "barman"


class UserStatus(str, enum.Enum):
    active = "active"
    deleted = "deleted"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    # optional username to identify users more easily in the UI
    username = Column(String(150), unique=True, index=True, nullable=True)
    display_name = Column(String(150), nullable=True)
    senha_hash = Column(String(255), nullable=False)
    papel = Column(Enum(RoleEnum), nullable=False, default=RoleEnum.waiter)
    # deleted accounts are kept for history but cannot log in
    status = Column(Enum(UserStatus), nullable=False, default=UserStatus.active)
    criado_em = Column(DateTime, default=utcnow)
    # per-user push opt-ins; null means the defaults
    notification_preferences = Column(JSON, nullable=True)

    @property
    def role(self) -> str:
        return self.papel.value if hasattr(self.papel, "value") else str(self.papel)

    @property
    def is_active(self) -> bool:
        status = self.status.value if hasattr(self.status, "value") else self.status
        return status != UserStatus.deleted.value
