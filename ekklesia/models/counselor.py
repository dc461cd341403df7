"""Counselor model — church staff who take counseling appointments."""

from __future__ import annotations

from typing import Any

from sqlalchemy import String
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import Mapped, mapped_column

from ekklesia.models.base import Base, ChurchScopedMixin, TimestampMixin


class Counselor(TimestampMixin, ChurchScopedMixin, Base):
    """A counselor profile. The id is the counselor's auth user id."""

    __tablename__ = "counselors"

    # Profile
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(30))
    gender: Mapped[str | None] = mapped_column(String(20))

    # Skills
    topics: Mapped[list[str] | None] = mapped_column(ARRAY(String(50)), comment="Counseling specialties")

    # Weekly open slots. Older rows hold a JSON-encoded string instead of an object.
    availability: Mapped[Any] = mapped_column(JSONB, comment="{weekday: ['HH:MM', ...]}")

    # Logical deletion; historical appointments keep pointing here
    is_active: Mapped[bool] = mapped_column(default=True)

    def __repr__(self) -> str:
        return f"<Counselor name={self.name} active={self.is_active}>"
