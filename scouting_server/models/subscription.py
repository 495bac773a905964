import enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String

from scouting_server.clock import utcnow
from scouting_server.db.base_class import Base


class SubscriptionStatus(str, enum.Enum):
    NONE = "none"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(16), nullable=False, default=SubscriptionStatus.NONE.value)
    starts_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    auto_renew = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    # webhook / <provider> / admin / user / system
    updated_by = Column(String(32), nullable=True)

    __table_args__ = (Index("ix_subscriptions_status_expires", "status", "expires_at"),)
