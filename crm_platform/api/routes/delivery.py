"""
Delivery receipt callback route.

The delivery vendor posts one receipt per message. Receipts for unknown
message ids are acknowledged with applied=false rather than rejected, so the
vendor does not retry them.
"""
from fastapi import APIRouter, Depends

from crm_platform.api.dependencies import get_reconciler
from crm_platform.schemas.campaigns import DeliveryReceipt, DeliveryReceiptAck
from crm_platform.services.receipt_reconciler import ReceiptReconciler, ReconcileOutcome


router = APIRouter(prefix="/api", tags=["delivery"])


@router.post("/delivery-receipt", response_model=DeliveryReceiptAck)
async def delivery_receipt(
    receipt: DeliveryReceipt,
    reconciler: ReceiptReconciler = Depends(get_reconciler),
):
    outcome = await reconciler.reconcile(receipt.message_id, receipt.status, receipt.error_reason)
    return DeliveryReceiptAck(
        message_id=receipt.message_id,
        applied=outcome == ReconcileOutcome.APPLIED,
    )
