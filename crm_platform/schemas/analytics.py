"""
Dashboard analytics payload schemas.
"""
from decimal import Decimal

from crm_platform.schemas.base import CamelModel


class AnalyticsOverview(CamelModel):
    total_customers: int
    total_segments: int
    total_campaigns: int
    active_campaigns: int
    messages_sent: int
    messages_delivered: int
    messages_failed: int
    delivery_rate: Decimal
    total_revenue: Decimal
