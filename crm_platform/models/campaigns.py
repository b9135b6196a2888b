"""
Campaign model - one templated message sent to one segment over one channel.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
import enum

from sqlalchemy import String, Text, Integer, Numeric, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from crm_platform.lib.db import Base


class CampaignChannel(str, enum.Enum):
    """Delivery channel enumeration."""
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"


class CampaignStatus(str, enum.Enum):
    """
    Campaign status state machine.
    draft → active → completed | failed
    """
    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (CampaignStatus.COMPLETED, CampaignStatus.FAILED)


class Campaign(Base):
    """
    Campaign entity.

    sent_count, delivered_count, failed_count and delivery_rate are derived
    from communication_log rows by the receipt reconciler; nothing else
    writes them.
    """
    __tablename__ = "campaigns"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    segment_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("segments.id"),
        nullable=False,
        index=True,
    )

    message: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Template with {{firstName}} placeholders",
    )
    channel: Mapped[CampaignChannel] = mapped_column(
        SQLEnum(CampaignChannel, name="campaign_channel"),
        nullable=False,
    )
    status: Mapped[CampaignStatus] = mapped_column(
        SQLEnum(CampaignStatus, name="campaign_status"),
        nullable=False,
        default=CampaignStatus.DRAFT,
        index=True,
    )

    # Audience resolved at launch time
    audience_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Delivery aggregates
    sent_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    delivered_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    delivery_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        default=Decimal("0"),
    )

    user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)

    launched_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<Campaign(id={self.id}, status={self.status}, channel={self.channel})>"
