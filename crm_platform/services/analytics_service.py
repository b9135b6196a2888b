"""
Analytics service - dashboard totals and per-campaign delivery stats.
"""
from decimal import Decimal

from crm_platform.api.middleware.error_handler import NotFoundException
from crm_platform.lib.logging import get_logger
from crm_platform.models.campaigns import CampaignStatus
from crm_platform.schemas.analytics import AnalyticsOverview
from crm_platform.schemas.campaigns import CampaignStats
from crm_platform.services.receipt_reconciler import ReceiptReconciler, compute_delivery_rate
from crm_platform.services.rule_compiler import MATCH_ALL
from crm_platform.stores.base import CrmStore

logger = get_logger(__name__)


class AnalyticsService:
    """Read-side aggregates for the dashboard."""

    def __init__(self, store: CrmStore, reconciler: ReceiptReconciler):
        self.store = store
        self.reconciler = reconciler

    def overview(self) -> AnalyticsOverview:
        """
        Platform-wide totals.

        Message counts are summed from the campaign aggregates, so they are
        as fresh as the last receipt or finalizer sweep.
        """
        customers = self.store.query_customers(MATCH_ALL)
        campaigns = self.store.list_campaigns()

        sent = sum(c.sent_count for c in campaigns)
        delivered = sum(c.delivered_count for c in campaigns)
        failed = sum(c.failed_count for c in campaigns)
        revenue = sum((Decimal(str(c.total_spend)) for c in customers), Decimal("0"))

        return AnalyticsOverview(
            total_customers=len(customers),
            total_segments=len(self.store.list_segments()),
            total_campaigns=len(campaigns),
            active_campaigns=sum(1 for c in campaigns if c.status == CampaignStatus.ACTIVE),
            messages_sent=sent,
            messages_delivered=delivered,
            messages_failed=failed,
            delivery_rate=compute_delivery_rate(delivered, sent),
            total_revenue=revenue,
        )

    async def campaign_stats(self, campaign_id: int) -> CampaignStats:
        """Recompute one campaign's aggregates from its log rows and return them."""
        campaign = await self.reconciler.recompute_campaign_aggregates(campaign_id)
        if campaign is None:
            raise NotFoundException("Campaign", campaign_id)

        return CampaignStats(
            campaign_id=campaign.id,
            sent_count=campaign.sent_count,
            delivered_count=campaign.delivered_count,
            failed_count=campaign.failed_count,
            delivery_rate=campaign.delivery_rate,
        )
