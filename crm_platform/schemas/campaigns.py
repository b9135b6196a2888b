"""
Campaign, communication log and delivery receipt payload schemas.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import Field, field_validator

from crm_platform.models.campaigns import CampaignChannel, CampaignStatus
from crm_platform.models.communication_log import DeliveryStatus
from crm_platform.schemas.base import CamelModel


class CampaignCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    segment_id: int
    message: str = Field(..., min_length=1, description="Template; {{firstName}} is substituted per customer")
    channel: CampaignChannel
    user_id: Optional[int] = None
    launch: bool = Field(default=True, description="Launch right after creation")


class CampaignRead(CamelModel):
    id: int
    name: str
    segment_id: int
    message: str
    channel: CampaignChannel
    status: CampaignStatus
    audience_size: int
    sent_count: int
    delivered_count: int
    failed_count: int
    delivery_rate: Decimal
    user_id: Optional[int] = None
    launched_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class LaunchResponse(CamelModel):
    campaign: CampaignRead
    audience_size: int
    message_ids: List[UUID]


class CommunicationLogRead(CamelModel):
    id: int
    message_id: UUID
    campaign_id: int
    customer_id: int
    status: DeliveryStatus
    channel: CampaignChannel
    message: str
    error_reason: Optional[str] = None
    sent_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    created_at: datetime


class CampaignStats(CamelModel):
    campaign_id: int
    sent_count: int
    delivered_count: int
    failed_count: int
    delivery_rate: Decimal


class DeliveryReceipt(CamelModel):
    """Receipt posted by the delivery vendor."""
    message_id: str = Field(..., min_length=1)
    status: DeliveryStatus
    error_reason: Optional[str] = Field(default=None, max_length=255)

    @field_validator("status", mode="before")
    @classmethod
    def _upper_status(cls, value):
        return value.strip().upper() if isinstance(value, str) else value


class DeliveryReceiptAck(CamelModel):
    message_id: str
    applied: bool = Field(..., description="False when the receipt referred to no pending message")
