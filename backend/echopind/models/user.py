import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Date, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from echopind.core.database import Base


class UserRole(str, enum.Enum):
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"


def _new_user_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """
    User model for students, teachers and admins.

    Passwords are stored as bcrypt hashes (never plaintext). Refresh tokens
    live in their own table so the per-user list can be locked and mutated
    in a single transaction.
    """
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=_new_user_id)
    full_name = Column(String(50), nullable=False)
    # Always stored lowercased, so the unique index is case-insensitive in practice
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    # Fixed at registration, there is no role-change operation
    role = Column(
        Enum(UserRole, values_callable=lambda roles: [r.value for r in roles]),
        nullable=False, default=UserRole.STUDENT, index=True)

    phone = Column(String, nullable=True)
    address = Column(String, nullable=True)
    date_of_birth = Column(Date, nullable=True)
    student_id = Column(String, nullable=True)
    school = Column(String, nullable=True)
    grade = Column(String, nullable=True)
    profile_photo = Column(Text, nullable=True)  # URL or base64 data

    is_active = Column(Boolean, nullable=False, default=True)
    last_login = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    refresh_tokens = relationship(
        "RefreshToken",
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="RefreshToken.id",
    )


class RefreshToken(Base):
    """A refresh token issued to one device. Rows past expires_at count as absent."""
    __tablename__ = "refresh_tokens"

    # Autoincrement id doubles as issue order for oldest-first eviction
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String(512), unique=True, index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)

    user = relationship("User", back_populates="refresh_tokens")
