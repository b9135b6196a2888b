"""
Unit tests for delivery receipt reconciliation and campaign aggregates.
"""
from decimal import Decimal
from uuid import uuid4

import pytest

from crm_platform.models import CampaignStatus, DeliveryStatus
from crm_platform.services.receipt_reconciler import (
    ReceiptReconciler,
    ReconcileOutcome,
    compute_delivery_rate,
)


@pytest.fixture
def reconciler(store, metrics):
    return ReceiptReconciler(store, metrics=metrics)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_two_delivered_one_failed(reconciler, store, active_campaign):
    campaign, logs = active_campaign

    await reconciler.reconcile(str(logs[0].message_id), "DELIVERED")
    await reconciler.reconcile(str(logs[1].message_id), DeliveryStatus.DELIVERED)
    await reconciler.reconcile(str(logs[2].message_id), "FAILED", "Mailbox full")

    updated = store.get_campaign(campaign.id)
    assert updated.sent_count == 3
    assert updated.delivered_count == 2
    assert updated.failed_count == 1
    assert updated.delivery_rate == Decimal("66.67")
    assert updated.status == CampaignStatus.COMPLETED
    assert updated.completed_at is not None

    failed_log = store.get_log_by_message_id(logs[2].message_id)
    assert failed_log.status == DeliveryStatus.FAILED
    assert failed_log.error_reason == "Mailbox full"
    assert store.get_log_by_message_id(logs[0].message_id).delivered_at is not None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_campaign_stays_active_while_messages_pending(reconciler, store, active_campaign):
    campaign, logs = active_campaign

    await reconciler.reconcile(logs[0].message_id, "DELIVERED")

    updated = store.get_campaign(campaign.id)
    assert updated.status == CampaignStatus.ACTIVE
    assert updated.sent_count == 3
    assert updated.delivered_count == 1
    assert updated.delivery_rate == Decimal("33.33")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_all_failed_marks_campaign_failed(reconciler, store, active_campaign):
    campaign, logs = active_campaign

    for log in logs:
        await reconciler.reconcile(log.message_id, "FAILED", "Domain not found")

    assert store.get_campaign(campaign.id).status == CampaignStatus.FAILED


@pytest.mark.unit
@pytest.mark.asyncio
async def test_campaign_lock_dropped_once_campaign_finishes(reconciler, active_campaign):
    campaign, logs = active_campaign
    lock = reconciler.campaign_lock(campaign.id)

    await reconciler.reconcile(logs[0].message_id, "DELIVERED")
    assert reconciler.campaign_lock(campaign.id) is lock

    await reconciler.reconcile(logs[1].message_id, "DELIVERED")
    await reconciler.reconcile(logs[2].message_id, "FAILED", "Mailbox full")
    assert reconciler.campaign_lock(campaign.id) is not lock


@pytest.mark.unit
@pytest.mark.asyncio
async def test_held_campaign_lock_is_not_released(reconciler):
    lock = reconciler.campaign_lock(7)

    async with lock:
        reconciler.release_campaign_lock(7)
        assert reconciler.campaign_lock(7) is lock


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unknown_message_id_changes_nothing(reconciler, store, active_campaign, metrics):
    campaign, _ = active_campaign

    outcome = await reconciler.reconcile(str(uuid4()), "DELIVERED")

    assert outcome == ReconcileOutcome.UNKNOWN
    unchanged = store.get_campaign(campaign.id)
    assert unchanged.sent_count == 0
    assert unchanged.delivered_count == 0
    assert metrics.get_counter_value("delivery_receipts_ignored_total", {"reason": "unknown"}) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_malformed_message_id_is_ignored(reconciler, metrics):
    outcome = await reconciler.reconcile("not-a-uuid", "DELIVERED")

    assert outcome == ReconcileOutcome.UNKNOWN
    assert metrics.get_counter_value("delivery_receipts_ignored_total", {"reason": "malformed"}) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_non_terminal_status_is_ignored(reconciler, store, active_campaign):
    _, logs = active_campaign

    outcome = await reconciler.reconcile(logs[0].message_id, "SENT")

    assert outcome == ReconcileOutcome.UNKNOWN
    assert store.get_log_by_message_id(logs[0].message_id).status == DeliveryStatus.SENT


@pytest.mark.unit
@pytest.mark.asyncio
async def test_duplicate_receipt_does_not_flip_terminal_status(reconciler, store, active_campaign):
    campaign, logs = active_campaign

    first = await reconciler.reconcile(logs[0].message_id, "DELIVERED")
    second = await reconciler.reconcile(logs[0].message_id, "FAILED", "Mailbox full")

    assert first == ReconcileOutcome.APPLIED
    assert second == ReconcileOutcome.DUPLICATE
    log = store.get_log_by_message_id(logs[0].message_id)
    assert log.status == DeliveryStatus.DELIVERED
    assert log.error_reason is None
    assert store.get_campaign(campaign.id).delivered_count == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_recompute_is_idempotent(reconciler, store, active_campaign):
    campaign, logs = active_campaign
    await reconciler.reconcile(logs[0].message_id, "DELIVERED")

    first = await reconciler.recompute_campaign_aggregates(campaign.id)
    snapshot = (first.sent_count, first.delivered_count, first.failed_count, first.delivery_rate, first.status)
    second = await reconciler.recompute_campaign_aggregates(campaign.id)

    assert (second.sent_count, second.delivered_count, second.failed_count,
            second.delivery_rate, second.status) == snapshot


@pytest.mark.unit
@pytest.mark.asyncio
async def test_recompute_unknown_campaign_returns_none(reconciler):
    assert await reconciler.recompute_campaign_aggregates(404) is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_delivery_metrics_recorded(reconciler, active_campaign, metrics):
    _, logs = active_campaign

    await reconciler.reconcile(logs[0].message_id, "DELIVERED")
    await reconciler.reconcile(logs[1].message_id, "FAILED", "Mailbox full")

    assert metrics.get_counter_value("messages_delivered_total", {"channel": "email"}) == 1
    assert metrics.get_counter_value(
        "messages_failed_total", {"channel": "email", "reason": "mailbox full"}
    ) == 1


@pytest.mark.unit
def test_compute_delivery_rate():
    assert compute_delivery_rate(0, 0) == Decimal("0.00")
    assert compute_delivery_rate(2, 3) == Decimal("66.67")
    assert compute_delivery_rate(1, 3) == Decimal("33.33")
    assert compute_delivery_rate(5, 5) == Decimal("100.00")
