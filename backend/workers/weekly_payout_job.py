import logging
from datetime import datetime

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from models.billing import CycleStatus, InvoiceStatus, PayoutBatchStatus
from utils.crypto import bank_last4
from utils.notifications import PAYOUT_PROCESSED_EVENT, enqueue_notification
from utils.settlement import advance_cycle_status, get_latest_invoiced_cycle

logger = logging.getLogger(__name__)


async def sum_paid_net_payable(db, merchant_id: ObjectId, period_start: datetime, period_end: datetime) -> int:
    pipeline = [
        {"$match": {
            "merchant_id": merchant_id,
            "payment.status": "PAID",
            "stage": {"$ne": "CANCELLED"},
            "created_at": {"$gte": period_start, "$lte": period_end},
        }},
        {"$group": {
            "_id": None,
            "amount": {"$sum": "$net_payable_paise"},
        }},
    ]

    result = await db.orders.aggregate(pipeline).to_list(1)
    if not result:
        return 0
    return int(result[0]["amount"])


async def _notify_payout(db, merchant: dict, batch: dict, invoice: dict) -> None:
    await enqueue_notification(
        db,
        event=PAYOUT_PROCESSED_EVENT,
        target=merchant.get("email") or str(merchant["_id"]),
        payload={
            "merchant_name": merchant.get("display_name"),
            "payout_id": str(batch["_id"]),
            "amount_paise": batch["total_amount"],
            "payout_date": batch["created_at"].isoformat(),
            "bank_last4": bank_last4(merchant.get("bank_account")),
            "settlement_ref": invoice["invoice_number"],
        },
    )


async def _pay_invoice(db, invoice: dict, cycle: dict) -> str:
    """
    Returns "succeeded" or "skipped". Raises on anything unexpected.
    """
    if invoice["status"] == InvoiceStatus.CANCELLED.value:
        return "skipped"

    existing = await db.payout_batches.find_one({
        "merchant_id": invoice["merchant_id"],
        "platform_invoice_id": invoice["_id"],
    })
    if existing:
        return "skipped"

    total_net = await sum_paid_net_payable(db, invoice["merchant_id"], cycle["period_start"], cycle["period_end"])
    payout_amount = total_net - invoice["total"]
    if payout_amount <= 0:
        logger.info(
            "PAYOUT_SKIPPED_NON_POSITIVE merchant=%s invoice=%s net=%s invoice_total=%s",
            invoice["merchant_id"], invoice["_id"], total_net, invoice["total"],
        )
        return "skipped"

    batch = {
        "_id": ObjectId(),
        "merchant_id": invoice["merchant_id"],
        "cycle_id": cycle["_id"],
        "platform_invoice_id": invoice["_id"],
        "total_amount": payout_amount,
        "status": PayoutBatchStatus.PENDING.value,
        "razorpay_payout_id": None,
        "processed_at": None,
        "created_at": datetime.utcnow(),
    }
    try:
        await db.payout_batches.insert_one(batch)
    except DuplicateKeyError:
        return "skipped"

    await db.platform_invoices.update_one(
        {"_id": invoice["_id"], "status": InvoiceStatus.ISSUED.value},
        {"$set": {"status": InvoiceStatus.PAID.value, "paid_at": datetime.utcnow()}},
    )

    try:
        merchant = await db.merchants.find_one({"_id": invoice["merchant_id"]})
        if merchant:
            await _notify_payout(db, merchant, batch, invoice)
    except Exception:
        # Notification must NEVER break the payout run
        logger.exception("PAYOUT_NOTIFICATION_ERROR merchant=%s batch=%s", invoice["merchant_id"], batch["_id"])

    logger.info(
        "PAYOUT_BATCH_CREATED merchant=%s batch=%s amount=%s",
        invoice["merchant_id"], batch["_id"], payout_amount,
    )
    return "succeeded"


async def execute_weekly_payouts(db) -> dict:
    """
    Net each invoice of the latest INVOICED cycle against the merchant's paid
    orders and create the payout batches. Then the cycle is PAID, so a
    re-run finds nothing to do.
    """
    cycle = await get_latest_invoiced_cycle(db)
    if not cycle:
        return {"cycle_id": None, "succeeded": 0, "skipped": 0, "failed": 0}

    summary = {
        "cycle_id": str(cycle["_id"]),
        "succeeded": 0,
        "skipped": 0,
        "failed": 0,
    }

    invoices = await db.platform_invoices.find({"cycle_id": cycle["_id"]}).to_list(None)

    for invoice in invoices:
        try:
            outcome = await _pay_invoice(db, invoice, cycle)
            summary[outcome] += 1
        except Exception:
            logger.exception("PAYOUT_BATCH_ERROR merchant=%s invoice=%s", invoice.get("merchant_id"), invoice.get("_id"))
            summary["failed"] += 1

    await advance_cycle_status(db, cycle["_id"], CycleStatus.PAID)

    logger.info(
        "PAYOUT_RUN cycle=%s succeeded=%s skipped=%s failed=%s",
        cycle["_id"], summary["succeeded"], summary["skipped"], summary["failed"],
    )
    return summary
