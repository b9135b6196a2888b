"""
Delivery receipt reconciler.

Closes communication log rows from vendor receipts and keeps campaign
aggregates in step with them. Aggregates are always recomputed from the
current set of log rows, never incremented, so recomputing is idempotent
and a late or repeated receipt cannot skew the counts.
"""
import asyncio
import enum
from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional, Union
from uuid import UUID

from crm_platform.lib.logging import get_logger
from crm_platform.lib.metrics import MetricsCollector, get_metrics_collector
from crm_platform.models.campaigns import Campaign, CampaignStatus
from crm_platform.models.communication_log import DeliveryStatus
from crm_platform.stores.base import CrmStore

logger = get_logger(__name__)


class ReconcileOutcome(str, enum.Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    UNKNOWN = "unknown"


def compute_delivery_rate(delivered: int, sent: int) -> Decimal:
    """Delivered share of sent messages as a percentage, two decimals; 0 when nothing was sent."""
    if sent == 0:
        return Decimal("0.00")
    rate = Decimal(delivered) * 100 / Decimal(sent)
    return rate.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


class ReceiptReconciler:
    """Applies delivery receipts and recomputes campaign aggregates."""

    def __init__(self, store: CrmStore, metrics: Optional[MetricsCollector] = None):
        self.store = store
        self.metrics = metrics or get_metrics_collector()
        self._locks: Dict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    def campaign_lock(self, campaign_id: int) -> asyncio.Lock:
        """Lock serializing writes to one campaign's status and aggregates."""
        return self._locks[campaign_id]

    def release_campaign_lock(self, campaign_id: int) -> None:
        """Forget an idle campaign lock; the next caller gets a fresh one."""
        lock = self._locks.get(campaign_id)
        if lock is not None and not lock.locked():
            del self._locks[campaign_id]

    async def reconcile(
        self,
        message_id: Union[str, UUID],
        status: Union[str, DeliveryStatus],
        error_reason: Optional[str] = None,
    ) -> ReconcileOutcome:
        """
        Apply one delivery receipt.

        Unknown or malformed message ids are logged and ignored. A receipt
        for a row that is already DELIVERED or FAILED does not change the
        row, but the campaign aggregates are still recomputed.

        Args:
            message_id: Message id carried by the receipt
            status: DELIVERED or FAILED
            error_reason: Vendor error text for FAILED receipts

        Returns:
            What happened to the receipt
        """
        try:
            message_uuid = message_id if isinstance(message_id, UUID) else UUID(str(message_id))
        except ValueError:
            logger.warning(f"Ignoring receipt with malformed message id {message_id!r}")
            self.metrics.increment_receipts_ignored("malformed")
            return ReconcileOutcome.UNKNOWN

        try:
            new_status = DeliveryStatus(str(getattr(status, "value", status)).upper())
        except ValueError:
            new_status = None
        if new_status is None or not new_status.is_terminal:
            logger.warning(f"Ignoring receipt for {message_uuid} with status {status!r}")
            self.metrics.increment_receipts_ignored("invalid_status")
            return ReconcileOutcome.UNKNOWN

        log = self.store.get_log_by_message_id(message_uuid)
        if log is None:
            logger.warning(f"Ignoring receipt for unknown message {message_uuid}")
            self.metrics.increment_receipts_ignored("unknown")
            return ReconcileOutcome.UNKNOWN

        reason = error_reason if new_status == DeliveryStatus.FAILED else None
        updated = self.store.update_log_status(message_uuid, new_status, reason)

        if updated is None:
            logger.info(
                f"Duplicate receipt for {message_uuid} ({new_status.value}), row already {log.status.value}",
                extra={"campaign_id": log.campaign_id},
            )
            self.metrics.increment_receipts_ignored("duplicate")
            outcome = ReconcileOutcome.DUPLICATE
        else:
            channel = getattr(updated.channel, "value", updated.channel)
            if new_status == DeliveryStatus.DELIVERED:
                self.metrics.increment_delivered(channel)
            else:
                self.metrics.increment_failed(channel, reason or "unknown")
            outcome = ReconcileOutcome.APPLIED

        await self.recompute_campaign_aggregates(log.campaign_id)
        return outcome

    async def recompute_campaign_aggregates(self, campaign_id: int) -> Optional[Campaign]:
        """
        Rebuild a campaign's counters from its log rows.

        An active campaign with no SENT rows left is finalized: completed when
        something was delivered or there was nobody to send to, failed when
        every message failed.

        `sent_count` counts every log row, whatever its status, so it stays
        equal to the number of messages dispatched as receipts arrive.
        Once the campaign is completed or failed its lock is dropped.

        Returns:
            The updated campaign, or None when it does not exist
        """
        async with self.campaign_lock(campaign_id):
            campaign = self.store.get_campaign(campaign_id)
            if campaign is None:
                logger.warning(f"Cannot recompute aggregates, campaign {campaign_id} not found")
                updated = None
            else:
                updated = self._recompute(campaign)

        if updated is None or updated.status in (CampaignStatus.COMPLETED, CampaignStatus.FAILED):
            self.release_campaign_lock(campaign_id)
        return updated

    def _recompute(self, campaign: Campaign) -> Optional[Campaign]:
        campaign_id = campaign.id

        counts = self.store.count_logs_by_status(campaign_id)
        sent = sum(counts.values())
        delivered = counts[DeliveryStatus.DELIVERED]
        failed = counts[DeliveryStatus.FAILED]

        changes = {
            "sent_count": sent,
            "delivered_count": delivered,
            "failed_count": failed,
            "delivery_rate": compute_delivery_rate(delivered, sent),
        }

        if campaign.status == CampaignStatus.ACTIVE and counts[DeliveryStatus.SENT] == 0:
            final_status = CampaignStatus.COMPLETED if delivered > 0 or sent == 0 else CampaignStatus.FAILED
            changes["status"] = final_status
            changes["completed_at"] = datetime.now(timezone.utc)
            logger.info(
                f"Campaign {campaign_id} {final_status.value}: {delivered}/{sent} delivered",
                extra={"campaign_id": campaign_id},
            )

        return self.store.update_campaign(campaign_id, **changes)
