import json
import logging

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException, Request

from database import get_db
from utils.orders import confirm_order_payment, fail_order_payment
from utils.payouts import FAILED_STATUSES, PROCESSED_STATUSES
from utils.razorpay import verify_payment_webhook_signature, verify_payout_webhook_signature
from workers.payout_dispatch_job import complete_payout_batch, fail_payout_batch

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


def _parse_json(raw_body: bytes) -> dict:
    try:
        return json.loads(raw_body.decode("utf-8"))
    except Exception:
        raise HTTPException(400, "Invalid JSON payload")


# =========================================================
# RAZORPAY PAYMENT WEBHOOK (trusted payment outcome)
# =========================================================

@router.post("/razorpay")
async def razorpay_webhook(request: Request, db=Depends(get_db)):
    """
    payment.captured -> order PAID, ledger entries COMPLETED
    payment.failed   -> order payment FAILED, ledger entries left PENDING
                        (the customer may still pay on the same gateway order)

    Re-deliveries are no-ops: both updates are conditional on the current state.
    """
    signature = request.headers.get("X-Razorpay-Signature")
    if not signature:
        raise HTTPException(401, "Missing Razorpay signature")

    raw_body = await request.body()
    if not verify_payment_webhook_signature(raw_body=raw_body, received_signature=signature):
        raise HTTPException(401, "Invalid Razorpay signature")

    payload = _parse_json(raw_body)

    event = payload.get("event")
    payment_entity = (
        payload.get("payload", {})
        .get("payment", {})
        .get("entity", {})
    )

    razorpay_payment_id = payment_entity.get("id")
    razorpay_order_id = payment_entity.get("order_id")

    if not razorpay_order_id or event not in {"payment.captured", "payment.failed"}:
        return {"ok": True, "ignored": True, "event": event}

    order = await db.orders.find_one({
        "payment.method": "RAZORPAY",
        "payment.gateway_order_id": razorpay_order_id,
    })
    if not order:
        return {"ok": True, "order": "not_found"}

    if event == "payment.captured":
        updated = await confirm_order_payment(db, order, gateway_payment_id=razorpay_payment_id)
    else:
        updated = await fail_order_payment(db, order)

    logger.info(
        "RAZORPAY_WEBHOOK event=%s order=%s updated=%s",
        event, order["_id"], updated,
    )
    return {"ok": True, "updated": updated}


# =========================================================
# RAZORPAYX PAYOUT WEBHOOK
# =========================================================

@router.post("/razorpayx/payouts")
async def razorpayx_payout_webhook(request: Request, db=Depends(get_db)):
    signature = request.headers.get("X-Razorpay-Signature")
    if not signature:
        raise HTTPException(401, "Missing RazorpayX signature")

    raw_body = await request.body()
    if not verify_payout_webhook_signature(raw_body=raw_body, received_signature=signature):
        raise HTTPException(401, "Invalid RazorpayX signature")

    payload = _parse_json(raw_body)

    event = payload.get("event")
    payout_entity = (
        payload.get("payload", {})
        .get("payout", {})
        .get("entity", {})
    )

    razorpay_payout_id = payout_entity.get("id")
    provider_status = (payout_entity.get("status") or "").lower()
    reference_id = payout_entity.get("reference_id") or ""
    failure_reason = (payout_entity.get("status_details") or {}).get("description") or payout_entity.get("narration")

    if not razorpay_payout_id:
        return {"ok": True, "ignored": True}

    query = [{"razorpay_payout_id": razorpay_payout_id}]
    if ObjectId.is_valid(reference_id):
        query.append({"_id": ObjectId(reference_id)})

    batch = await db.payout_batches.find_one({"$or": query})
    if not batch:
        return {"ok": True, "batch": "not_found"}

    updated = False
    if provider_status in PROCESSED_STATUSES:
        updated = await complete_payout_batch(db, batch, razorpay_payout_id)
    elif provider_status in FAILED_STATUSES:
        updated = await fail_payout_batch(db, batch, failure_reason or "Provider marked payout failed")

    logger.info(
        "RAZORPAYX_WEBHOOK event=%s batch=%s status=%s updated=%s",
        event, batch["_id"], provider_status, updated,
    )
    return {
        "ok": True,
        "batch_id": str(batch["_id"]),
        "provider_status": provider_status,
        "updated": updated,
    }
