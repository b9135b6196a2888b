"""
Campaign Finalizer Job.

Periodic sweep over active campaigns. Receipts normally keep campaign
aggregates current, but a receipt that could only be written straight to
the log (callback failure) never triggers a recompute. The sweep recomputes
every active campaign's aggregates, which also closes campaigns whose log
rows are all DELIVERED or FAILED.

Default schedule: every 30 seconds (settings.finalizer_interval_seconds)
"""
from datetime import datetime, timezone
from typing import Any, Dict
from uuid import uuid4

from crm_platform.lib.logging import get_logger, log_with_context, set_correlation_id
from crm_platform.models.campaigns import CampaignStatus
from crm_platform.services.receipt_reconciler import ReceiptReconciler
from crm_platform.stores.base import CrmStore

logger = get_logger(__name__)

FINALIZER_JOB_ID = "campaign_finalizer"


async def finalize_campaigns(store: CrmStore, reconciler: ReceiptReconciler) -> Dict[str, Any]:
    """
    Recompute aggregates for every active campaign.

    Returns:
        Dictionary with sweep results:
        {
            "correlation_id": str,
            "checked": int,
            "completed": int,
            "failed": int,
            "errors": int,
            "duration_seconds": float,
        }
    """
    correlation_id = str(uuid4())
    set_correlation_id(correlation_id)
    started_at = datetime.now(timezone.utc)

    summary = {"correlation_id": correlation_id, "checked": 0, "completed": 0, "failed": 0, "errors": 0}

    for campaign in store.list_campaigns(status=CampaignStatus.ACTIVE):
        summary["checked"] += 1
        try:
            updated = await reconciler.recompute_campaign_aggregates(campaign.id)
        except Exception as e:
            summary["errors"] += 1
            logger.error(f"Finalizer could not recompute campaign {campaign.id}: {e}", exc_info=True)
            continue

        if updated is not None and updated.status == CampaignStatus.COMPLETED:
            summary["completed"] += 1
        elif updated is not None and updated.status == CampaignStatus.FAILED:
            summary["failed"] += 1

    summary["duration_seconds"] = (datetime.now(timezone.utc) - started_at).total_seconds()
    if summary["checked"]:
        log_with_context(
            logger,
            "info",
            f"Finalizer checked {summary['checked']} active campaigns",
            completed=summary["completed"],
            failed=summary["failed"],
            errors=summary["errors"],
        )
    set_correlation_id(None)
    return summary
