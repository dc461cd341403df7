"""Message log model — local copy of every outbound chat message."""

from __future__ import annotations

from sqlalchemy import String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from ekklesia.models.base import Base, TimestampMixin
from ekklesia.models.enums import MessageStatus


class MessageLog(TimestampMixin, Base):
    """One outbound WhatsApp message, logged before delivery is attempted."""

    __tablename__ = "message_history"

    church_id: Mapped[str | None] = mapped_column(UUID(as_uuid=False), index=True)
    campaign_id: Mapped[str] = mapped_column(String(100), nullable=False)

    # Recipient
    member_name: Mapped[str | None] = mapped_column(String(200))
    member_phone: Mapped[str] = mapped_column(String(30), nullable=False)

    # Content
    message_body: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=MessageStatus.PENDING.value, nullable=False)
    sent_by: Mapped[str] = mapped_column(String(100), default="System", nullable=False)

    def __repr__(self) -> str:
        return f"<MessageLog id={self.id} status={self.status}>"
