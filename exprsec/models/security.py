from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, String, Table, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from exprsec.db.base import Base

user_authorities = Table(
    "user_authorities",
    Base.metadata,
    Column("user_id", ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("authority_id", ForeignKey("authorities.id", ondelete="CASCADE"), primary_key=True),
)


class Authority(Base):
    """A granted authority: a role (ROLE_*) or any other opaque permission string."""

    __tablename__ = "authorities"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True)
    description: Mapped[str | None] = mapped_column(Text)

    holders: Mapped[list[User]] = relationship(secondary=user_authorities, back_populates="authorities")


class User(Base):
    """An account in the identity store. Inactive accounts cannot authenticate."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(String(50), unique=True)
    email: Mapped[str] = mapped_column(String(100), unique=True)
    is_active: Mapped[bool] = mapped_column(default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    authorities: Mapped[list[Authority]] = relationship(
        secondary=user_authorities,
        back_populates="holders",
        order_by="Authority.name",
    )

    @property
    def authority_names(self) -> frozenset[str]:
        return frozenset(a.name for a in self.authorities)
