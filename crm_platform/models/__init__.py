"""
SQLAlchemy models package.
Import all models here to ensure they're registered with Base.metadata.
"""
from crm_platform.models.customers import Customer, Order
from crm_platform.models.segments import Segment
from crm_platform.models.campaigns import Campaign, CampaignChannel, CampaignStatus
from crm_platform.models.communication_log import CommunicationLog, DeliveryStatus

__all__ = [
    "Customer",
    "Order",
    "Segment",
    "Campaign",
    "CampaignChannel",
    "CampaignStatus",
    "CommunicationLog",
    "DeliveryStatus",
]
