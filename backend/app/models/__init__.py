"""
School Portal Database Models

SQLAlchemy models for users, roles and text entries.
Only the columns the text entry service reads are mapped here.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func

ADMIN_ROLE = "ADMIN"

# SQLite only autoincrements INTEGER PRIMARY KEY columns
BigIntId = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    """Canonical Base class for all database models."""

    pass


class TimestampMixin:
    """Mixin for timestamp fields."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class Role(Base):
    """Authorization role (ADMIN, TUTOR, USER)."""

    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Role(id={self.id}, name={self.name})>"


class User(Base, TimestampMixin):
    """User account model."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False, index=True
    )
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("roles.id"), nullable=True
    )

    role: Mapped[Optional["Role"]] = relationship("Role", lazy="joined")
    text_entries: Mapped[list["TextEntry"]] = relationship(
        "TextEntry", back_populates="user", cascade="all, delete-orphan"
    )

    @property
    def is_admin(self) -> bool:
        return self.role is not None and self.role.name == ADMIN_ROLE

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"


class TextEntry(Base, TimestampMixin):
    """Free-text entry owned by a user."""

    __tablename__ = "text_entry"
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    message: Mapped[str] = mapped_column(String(2048), nullable=False)
    owner: Mapped[str] = mapped_column(String(256), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("users.id"), nullable=False, index=True
    )

    user: Mapped["User"] = relationship("User", back_populates="text_entries")

    def __repr__(self) -> str:
        return f"<TextEntry(id={self.id}, owner={self.owner})>"
