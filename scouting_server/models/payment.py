# scouting_server/models/payment.py
import enum

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, Numeric, String

from scouting_server.clock import utcnow
from scouting_server.db.base_class import Base


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


# Статусы, после которых вебхук ничего не меняет
WEBHOOK_TERMINAL_STATUSES = (
    PaymentStatus.COMPLETED,
    PaymentStatus.FAILED,
    PaymentStatus.CANCELLED,
    PaymentStatus.REFUNDED,
)


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    # Генерируется нами до редиректа на шлюз; ключ идемпотентности вебхуков
    transaction_id = Column(String(64), nullable=False, unique=True, index=True)

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    # Заполняется только вместе с переходом в completed
    subscription_id = Column(Integer, ForeignKey("subscriptions.id"), nullable=True)

    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="XOF")
    status = Column(String(16), nullable=False, default=PaymentStatus.PENDING.value, index=True)
    payment_method = Column(String(32), nullable=True)

    # Последний сырой payload шлюза, как пришёл
    gateway_response = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    __table_args__ = (Index("ix_payments_user_status", "user_id", "status"),)
