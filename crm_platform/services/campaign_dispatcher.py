"""
Campaign dispatcher - creates campaigns and runs the launch protocol.

Launch:
1. Campaign must exist and still be a draft.
2. The segment's audience is resolved live; store errors abort here,
   before anything is written.
3. Campaign becomes active with its audience size and launch time.
4. One SENT communication log row per customer is written, with the
   message rendered for that customer.
5. One delivery job per row is queued; launch returns without waiting
   for any delivery.

If step 4 or 5 fails the campaign is marked failed and the error is
re-raised. The campaign leaves `active` once every log row is closed (see
ReceiptReconciler.recompute_campaign_aggregates).
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID, uuid4

from crm_platform.api.middleware.error_handler import (
    ConflictException,
    NotFoundException,
    ValidationException,
)
from crm_platform.lib.logging import get_logger
from crm_platform.lib.metrics import MetricsCollector, get_metrics_collector
from crm_platform.models.campaigns import Campaign, CampaignChannel, CampaignStatus
from crm_platform.models.communication_log import CommunicationLog, DeliveryStatus
from crm_platform.models.customers import Customer
from crm_platform.schemas.campaigns import CampaignCreate
from crm_platform.schemas.segments import rules_from_json
from crm_platform.services.audience_service import AudienceSelector
from crm_platform.services.delivery_queue import DeliveryQueue
from crm_platform.services.delivery_simulator import DeliveryJob, DeliveryResult
from crm_platform.services.message_renderer import render_message
from crm_platform.services.receipt_reconciler import ReceiptReconciler
from crm_platform.stores.base import CrmStore

logger = get_logger(__name__)


@dataclass
class LaunchResult:
    campaign: Campaign
    audience_size: int
    message_ids: List[UUID]
    deliveries: List["asyncio.Future[DeliveryResult]"] = field(default_factory=list, repr=False)


def recipient_for(customer: Customer, channel: CampaignChannel) -> str:
    if channel == CampaignChannel.EMAIL:
        return customer.email
    if channel == CampaignChannel.SMS:
        return customer.phone or ""
    return str(customer.id)


class CampaignDispatcher:
    """Service for creating and launching campaigns."""

    def __init__(
        self,
        store: CrmStore,
        queue: DeliveryQueue,
        reconciler: ReceiptReconciler,
        selector: Optional[AudienceSelector] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.store = store
        self.queue = queue
        self.reconciler = reconciler
        self.selector = selector or AudienceSelector(store)
        self.metrics = metrics or get_metrics_collector()

    async def create_campaign(self, payload: CampaignCreate) -> Campaign:
        """
        Create a draft campaign and, unless payload.launch is False, launch it.

        Raises:
            ValidationException: blank name or message
            NotFoundException: segment does not exist
        """
        errors = {}
        if not payload.name.strip():
            errors["name"] = "must not be blank"
        if not payload.message.strip():
            errors["message"] = "must not be blank"
        if errors:
            raise ValidationException("Invalid campaign", errors=errors)

        if self.store.get_segment(payload.segment_id) is None:
            raise NotFoundException("Segment", payload.segment_id)

        campaign = self.store.create_campaign(
            Campaign(
                name=payload.name.strip(),
                segment_id=payload.segment_id,
                message=payload.message,
                channel=payload.channel,
                status=CampaignStatus.DRAFT,
                user_id=payload.user_id,
            )
        )
        logger.info(f"Campaign {campaign.id} created on segment {payload.segment_id}")

        if not payload.launch:
            return campaign

        result = await self.launch(campaign.id)
        return result.campaign

    async def launch(self, campaign_id: int) -> LaunchResult:
        """
        Launch a draft campaign.

        Args:
            campaign_id: Campaign to launch

        Returns:
            LaunchResult with the audience size and one message id per recipient

        Raises:
            NotFoundException: campaign or its segment does not exist
            ConflictException: campaign is not a draft
        """
        try:
            return await self._launch(campaign_id)
        except Exception:
            self.reconciler.release_campaign_lock(campaign_id)
            raise

    async def _launch(self, campaign_id: int) -> LaunchResult:
        async with self.reconciler.campaign_lock(campaign_id):
            campaign = self.store.get_campaign(campaign_id)
            if campaign is None:
                raise NotFoundException("Campaign", campaign_id)
            if campaign.status != CampaignStatus.DRAFT:
                raise ConflictException(
                    f"Campaign {campaign_id} is {campaign.status.value}, only drafts can be launched",
                    details={"status": campaign.status.value},
                )

            segment = self.store.get_segment(campaign.segment_id)
            if segment is None:
                raise NotFoundException("Segment", campaign.segment_id)

            audience = self.selector.select(rules_from_json(segment.rules))

            now = datetime.now(timezone.utc)
            campaign = self.store.update_campaign(
                campaign_id,
                status=CampaignStatus.ACTIVE,
                audience_size=len(audience),
                launched_at=now,
            )
            channel = CampaignChannel(campaign.channel)
            self.metrics.increment_launches(channel.value)

            try:
                logs = [
                    CommunicationLog(
                        message_id=uuid4(),
                        campaign_id=campaign_id,
                        customer_id=customer.id,
                        status=DeliveryStatus.SENT,
                        channel=channel,
                        message=render_message(campaign.message, customer),
                        sent_at=now,
                    )
                    for customer in audience
                ]
                if logs:
                    logs = self.store.create_communication_logs(logs)

                recipients = {customer.id: recipient_for(customer, channel) for customer in audience}
                jobs = [
                    DeliveryJob(
                        message_id=log.message_id,
                        campaign_id=campaign_id,
                        customer_id=log.customer_id,
                        channel=channel,
                        message=log.message,
                        recipient=recipients[log.customer_id],
                    )
                    for log in logs
                ]
                deliveries = self.queue.submit_many(jobs)
            except Exception as e:
                logger.error(
                    f"Dispatch of campaign {campaign_id} aborted: {e}",
                    extra={"campaign_id": campaign_id},
                    exc_info=True,
                )
                self.store.update_campaign(
                    campaign_id,
                    status=CampaignStatus.FAILED,
                    completed_at=datetime.now(timezone.utc),
                )
                raise

        self.metrics.increment_dispatched(channel.value, len(jobs))
        logger.info(
            f"Campaign {campaign_id} launched to {len(audience)} customers via {channel.value}",
            extra={"campaign_id": campaign_id},
        )

        # Records sent_count now, and closes the campaign straight away when the audience is empty
        campaign = await self.reconciler.recompute_campaign_aggregates(campaign_id) or campaign

        return LaunchResult(
            campaign=campaign,
            audience_size=len(audience),
            message_ids=[job.message_id for job in jobs],
            deliveries=deliveries,
        )
