from sqlalchemy import Column, Integer, String, DateTime, Boolean
from app.core.timezone_utils import utcnow
from app.db.session import Base


class Session(Base):
    """Refresh-token session; rotating a refresh token revokes the old row."""

    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True, index=True)
    jti = Column(String(64), unique=True, index=True, nullable=False)
    user_email = Column(String(255), index=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    expires_at = Column(DateTime, nullable=False)
    revoked = Column(Boolean, default=False, nullable=False)

    def is_usable(self, now=None) -> bool:
        now = now or utcnow()
        return not self.revoked and (self.expires_at is None or self.expires_at >= now)
