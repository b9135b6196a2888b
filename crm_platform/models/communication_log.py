"""
Communication log model - one row per (campaign, customer) delivery attempt.
"""
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import String, Text, Integer, DateTime, ForeignKey, Uuid, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from crm_platform.lib.db import Base
from crm_platform.models.campaigns import CampaignChannel


class DeliveryStatus(str, enum.Enum):
    """
    Message delivery status.
    SENT → DELIVERED or SENT → FAILED, exactly once.
    """
    SENT = "SENT"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self is not DeliveryStatus.SENT


class CommunicationLog(Base):
    """
    Communication log entity.

    message_id is the correlation key carried by the delivery vendor's
    receipt callback.
    """
    __tablename__ = "communication_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    message_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        unique=True,
        index=True,
        default=uuid4,
    )

    campaign_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("campaigns.id"),
        nullable=False,
        index=True,
    )
    customer_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("customers.id"),
        nullable=False,
        index=True,
    )

    status: Mapped[DeliveryStatus] = mapped_column(
        SQLEnum(DeliveryStatus, name="delivery_status"),
        nullable=False,
        default=DeliveryStatus.SENT,
        index=True,
    )
    channel: Mapped[CampaignChannel] = mapped_column(
        SQLEnum(CampaignChannel, name="log_channel"),
        nullable=False,
    )
    message: Mapped[str] = mapped_column(Text, nullable=False, comment="Rendered message text")
    error_reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<CommunicationLog(message_id={self.message_id}, status={self.status})>"
