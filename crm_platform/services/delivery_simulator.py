"""
Delivery vendor simulator.

Stands in for an email/SMS/push vendor: each message is "delivered" after a
random latency with a configurable success probability, and the outcome is
reported back as a delivery receipt, either in-process to the reconciler or
over HTTP to the receipt endpoint.
"""
import asyncio
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, TYPE_CHECKING
from uuid import UUID

import httpx

from crm_platform.lib.logging import get_logger
from crm_platform.lib.settings import settings
from crm_platform.models.campaigns import CampaignChannel
from crm_platform.models.communication_log import DeliveryStatus
from crm_platform.schemas.campaigns import DeliveryReceipt
from crm_platform.stores.base import CrmStore

if TYPE_CHECKING:
    from crm_platform.services.receipt_reconciler import ReceiptReconciler

logger = get_logger(__name__)


DELIVERY_ERRORS: Dict[CampaignChannel, List[str]] = {
    CampaignChannel.EMAIL: [
        "Invalid email address",
        "Mailbox full",
        "Email bounced",
        "Spam filter blocked",
        "Domain not found",
    ],
    CampaignChannel.SMS: [
        "Invalid phone number",
        "Network error",
        "Number unreachable",
        "SMS limit exceeded",
        "Carrier blocked",
    ],
    CampaignChannel.PUSH: [
        "Device not registered",
        "App not installed",
        "Notification disabled",
        "Device offline",
        "Token expired",
    ],
}

INTERNAL_ERROR_REASON = "Internal error updating status"


def error_reasons_for(channel) -> List[str]:
    """Failure reasons for a channel; unknown channels use the email list."""
    try:
        return DELIVERY_ERRORS[CampaignChannel(channel)]
    except ValueError:
        return DELIVERY_ERRORS[CampaignChannel.EMAIL]


@dataclass(frozen=True)
class DeliveryJob:
    """One rendered message bound for one customer."""
    message_id: UUID
    campaign_id: int
    customer_id: int
    channel: CampaignChannel
    message: str
    recipient: str = ""


@dataclass(frozen=True)
class DeliveryResult:
    message_id: UUID
    status: DeliveryStatus
    error_reason: Optional[str] = None

    @property
    def delivered(self) -> bool:
        return self.status == DeliveryStatus.DELIVERED


# ============================================================================
# Receipt sinks
# ============================================================================


class ReceiptSink(ABC):
    """Where the simulated vendor reports delivery outcomes."""

    @abstractmethod
    async def report(self, receipt: DeliveryReceipt) -> None:
        """Deliver one receipt; raise if it could not be reported."""
        pass


class ReconcilerReceiptSink(ReceiptSink):
    """Hands receipts straight to the in-process reconciler."""

    def __init__(self, reconciler: "ReceiptReconciler"):
        self.reconciler = reconciler

    async def report(self, receipt: DeliveryReceipt) -> None:
        await self.reconciler.reconcile(receipt.message_id, receipt.status, receipt.error_reason)


class HttpReceiptSink(ReceiptSink):
    """POSTs receipts to a delivery-receipt endpoint, as a real vendor would."""

    def __init__(self, url: str, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        self.url = url
        self.timeout = timeout
        self._client = client

    async def report(self, receipt: DeliveryReceipt) -> None:
        payload = receipt.model_dump(mode="json", by_alias=True, exclude_none=True)
        if self._client is not None:
            response = await self._client.post(self.url, json=payload)
            response.raise_for_status()
            return

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(self.url, json=payload)
            response.raise_for_status()


# ============================================================================
# Simulator
# ============================================================================


class DeliverySimulator:
    """
    Simulated delivery vendor.

    Randomness and sleeping are injectable so tests can make outcomes and
    timing deterministic. `refresh_campaign` is awaited with the campaign id
    after a receipt had to be written straight to the store.
    """

    def __init__(
        self,
        store: CrmStore,
        sink: ReceiptSink,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        success_rate: Optional[float] = None,
        min_latency_ms: Optional[int] = None,
        max_latency_ms: Optional[int] = None,
        batch_size: Optional[int] = None,
        batch_pause_seconds: Optional[float] = None,
        refresh_campaign: Optional[Callable[[int], Awaitable[object]]] = None,
    ):
        self.store = store
        self.refresh_campaign = refresh_campaign
        self.sink = sink
        self.rng = rng or random.Random()
        self.sleep = sleep
        self.success_rate = settings.delivery_success_rate if success_rate is None else success_rate
        self.min_latency_ms = settings.delivery_min_latency_ms if min_latency_ms is None else min_latency_ms
        self.max_latency_ms = settings.delivery_max_latency_ms if max_latency_ms is None else max_latency_ms
        self.batch_size = batch_size or settings.delivery_batch_size
        self.batch_pause_seconds = (
            settings.delivery_batch_pause_seconds if batch_pause_seconds is None else batch_pause_seconds
        )

    def decide_outcome(self, job: DeliveryJob) -> DeliveryResult:
        """Roll the dice for one job."""
        if self.rng.random() < self.success_rate:
            return DeliveryResult(job.message_id, DeliveryStatus.DELIVERED)
        reason = self.rng.choice(error_reasons_for(job.channel))
        return DeliveryResult(job.message_id, DeliveryStatus.FAILED, reason)

    async def deliver(self, job: DeliveryJob) -> DeliveryResult:
        """
        Simulate delivering one message and report the receipt.

        If the receipt cannot be reported, the log row is updated directly and
        the campaign is refreshed. If the direct update fails too, the error is logged and the job resolves as FAILED.

        Args:
            job: Delivery job

        Returns:
            The delivery outcome
        """
        latency_ms = self.rng.uniform(self.min_latency_ms, self.max_latency_ms)
        await self.sleep(latency_ms / 1000)

        result = self.decide_outcome(job)
        receipt = DeliveryReceipt(
            message_id=str(job.message_id),
            status=result.status,
            error_reason=result.error_reason,
        )

        try:
            await self.sink.report(receipt)
        except Exception as e:
            logger.warning(
                f"Receipt callback failed for {job.message_id}, updating log directly: {e}",
                extra={"campaign_id": job.campaign_id},
            )
            try:
                self.store.update_log_status(job.message_id, result.status, result.error_reason)
            except Exception:
                logger.error(
                    f"Could not record delivery outcome for {job.message_id}",
                    extra={"campaign_id": job.campaign_id},
                    exc_info=True,
                )
                return DeliveryResult(job.message_id, DeliveryStatus.FAILED, INTERNAL_ERROR_REASON)

            if self.refresh_campaign is not None:
                try:
                    await self.refresh_campaign(job.campaign_id)
                except Exception:
                    logger.error(
                        f"Could not refresh campaign {job.campaign_id} after direct update",
                        extra={"campaign_id": job.campaign_id},
                        exc_info=True,
                    )

        logger.debug(f"Message {job.message_id} {result.status.value} via {job.channel}")
        return result

    async def deliver_batch(
        self,
        jobs: Sequence[DeliveryJob],
        deliver: Optional[Callable[[DeliveryJob], Awaitable[Optional[DeliveryResult]]]] = None,
    ) -> List[Optional[DeliveryResult]]:
        """
        Deliver jobs in fixed-size batches.

        Jobs within a batch run concurrently. The next batch starts only after
        every job of the current one has finished and the batch pause elapsed,
        so at most `batch_size` jobs are in flight.

        Args:
            jobs: Delivery jobs
            deliver: Per-job coroutine used instead of `deliver`
        """
        deliver = deliver or self.deliver
        results: List[Optional[DeliveryResult]] = []
        for start in range(0, len(jobs), self.batch_size):
            if start:
                await self.sleep(self.batch_pause_seconds)
            batch = jobs[start:start + self.batch_size]
            results.extend(await asyncio.gather(*(deliver(job) for job in batch)))
            logger.debug(f"Delivered batch {start // self.batch_size + 1} ({len(batch)} messages)")
        return results
