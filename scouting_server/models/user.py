import enum

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from scouting_server.clock import utcnow
from scouting_server.db.base_class import Base


class UserRole(str, enum.Enum):
    SUBSCRIBER = "subscriber"
    LIMITED_USER = "limited_user"
    SUPER_ADMIN = "super_admin"
    SUPPORT_ADMIN = "support_admin"
    READ_ONLY_ADMIN = "read_only_admin"


ADMIN_ROLES = (UserRole.SUPER_ADMIN, UserRole.SUPPORT_ADMIN, UserRole.READ_ONLY_ADMIN)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    # Куда слать уведомления об активации подписки; может отсутствовать
    telegram_id = Column(BigInteger, unique=True, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    roles = relationship(
        "UserRoleAssignment",
        back_populates="user",
        cascade="all, delete-orphan",
        foreign_keys="UserRoleAssignment.user_id",
    )


class UserRoleAssignment(Base):
    __tablename__ = "user_roles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(32), nullable=False)
    assigned_at = Column(DateTime, default=utcnow, nullable=False)
    assigned_by = Column(String(32), nullable=True)

    user = relationship("User", back_populates="roles", foreign_keys=[user_id])

    __table_args__ = (UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),)
