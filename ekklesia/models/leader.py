"""Leadership profile model — pastors, coordinators, and administrators."""

from __future__ import annotations

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from ekklesia.models.base import Base, ChurchScopedMixin, TimestampMixin


class Leader(TimestampMixin, ChurchScopedMixin, Base):
    """A leadership profile. The id is the leader's auth user id."""

    __tablename__ = "pastors_and_leaders"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(String(30), nullable=False, comment="Administrador, Pastor, Coordenador")

    def __repr__(self) -> str:
        return f"<Leader name={self.name} role={self.role}>"
