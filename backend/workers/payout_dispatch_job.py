import asyncio
import logging
from datetime import datetime

from fastapi import HTTPException
from pymongo import ASCENDING, ReturnDocument

from models.billing import PayoutBatchStatus
from models.ledger import LedgerEntryType, LedgerStatus
from utils.ledger import record_ledger_entry
from utils.payouts import execute_batch_payout

logger = logging.getLogger(__name__)


async def _dispatch_batch(db, batch: dict) -> str:
    # Claim first so two dispatch runs never pay the same batch
    claimed = await db.payout_batches.find_one_and_update(
        {"_id": batch["_id"], "status": PayoutBatchStatus.PENDING.value},
        {"$set": {
            "status": PayoutBatchStatus.PROCESSING.value,
            "dispatched_at": datetime.utcnow(),
        }},
        return_document=ReturnDocument.AFTER,
    )
    if not claimed:
        return "skipped"

    merchant = await db.merchants.find_one({"_id": claimed["merchant_id"]})
    if not merchant:
        await fail_payout_batch(db, claimed, "Merchant not found")
        return "failed"

    try:
        result = await asyncio.to_thread(execute_batch_payout, batch=claimed, merchant=merchant)
    except HTTPException as e:
        logger.warning("PAYOUT_DISPATCH_REJECTED batch=%s detail=%s", claimed["_id"], e.detail)
        await fail_payout_batch(db, claimed, str(e.detail))
        return "failed"

    await db.payout_batches.update_one(
        {"_id": claimed["_id"]},
        {"$set": {
            "razorpay_payout_id": result["razorpay_payout_id"],
            "provider_status": result["provider_status"],
        }},
    )
    return "succeeded"


async def complete_payout_batch(db, batch: dict, razorpay_payout_id: str | None = None) -> bool:
    """
    Provider confirmed the transfer: batch COMPLETED and the money leaves the
    merchant balance through a PAYOUT_PROCESSED entry. Re-delivery is a no-op.
    """
    now = datetime.utcnow()
    res = await db.payout_batches.update_one(
        {
            "_id": batch["_id"],
            "status": {"$in": [PayoutBatchStatus.PENDING.value, PayoutBatchStatus.PROCESSING.value]},
        },
        {"$set": {
            "status": PayoutBatchStatus.COMPLETED.value,
            "razorpay_payout_id": razorpay_payout_id or batch.get("razorpay_payout_id"),
            "processed_at": now,
        }},
    )
    if res.modified_count == 0:
        return False

    await record_ledger_entry(
        db,
        merchant_id=batch["merchant_id"],
        payout_batch_id=batch["_id"],
        entry_type=LedgerEntryType.PAYOUT_PROCESSED,
        amount_paise=-batch["total_amount"],
        description=f"Payout {batch['_id']} processed",
        status=LedgerStatus.COMPLETED,
    )
    return True


async def fail_payout_batch(db, batch: dict, reason: str) -> bool:
    res = await db.payout_batches.update_one(
        {
            "_id": batch["_id"],
            "status": {"$in": [PayoutBatchStatus.PENDING.value, PayoutBatchStatus.PROCESSING.value]},
        },
        {"$set": {
            "status": PayoutBatchStatus.FAILED.value,
            "failure_reason": reason,
            "failed_at": datetime.utcnow(),
        }},
    )
    return res.modified_count == 1


async def dispatch_pending_payouts(db) -> dict:
    """
    Send every PENDING payout batch to RazorpayX. Completion arrives later
    through the payout webhook.
    """
    summary = {"succeeded": 0, "skipped": 0, "failed": 0}

    batches = await db.payout_batches.find(
        {"status": PayoutBatchStatus.PENDING.value},
        sort=[("created_at", ASCENDING)],
    ).to_list(None)

    for batch in batches:
        try:
            outcome = await _dispatch_batch(db, batch)
            summary[outcome] += 1
        except Exception:
            logger.exception("PAYOUT_DISPATCH_ERROR batch=%s", batch.get("_id"))
            summary["failed"] += 1

    logger.info(
        "PAYOUT_DISPATCH_RUN succeeded=%s skipped=%s failed=%s",
        summary["succeeded"], summary["skipped"], summary["failed"],
    )
    return summary
