import logging
from datetime import datetime

from bson import ObjectId
from fastapi import HTTPException
from pymongo.errors import DuplicateKeyError

from models.ledger import LedgerEntryType, LedgerStatus
from utils.fees import calculate_net_payable, calculate_platform_fee
from utils.guards import assert_integer_paise, parse_object_id
from utils.ledger import (
    fail_order_ledger_entries,
    promote_order_ledger_entries,
    record_order_ledger_entry,
)
from utils.pricing import get_effective_fee_config

logger = logging.getLogger(__name__)


async def price_order(db, merchant_id, gross_amount_paise: int) -> dict:
    """
    Fee and net for one order under the merchant's effective configuration.
    """
    effective = await get_effective_fee_config(db, merchant_id)
    config = effective.as_fee_config()
    return {
        "gross_amount_paise": gross_amount_paise,
        "platform_fee_paise": calculate_platform_fee(gross_amount_paise, config),
        "net_payable_paise": calculate_net_payable(gross_amount_paise, config),
        "fee_config": effective,
    }


async def record_order_ledger_entries(db, order: dict, *, confirmed: bool) -> int:
    """
    Gross, fee and payout entries for an order.
    Confirmed orders (COD) are written COMPLETED; prepaid orders wait PENDING
    for the payment webhook. Entries already present are kept, so calling this
    again only fills in what an interrupted write left out.
    """
    status = LedgerStatus.COMPLETED if confirmed else LedgerStatus.PENDING
    number = order["order_number"]

    entries = [
        (LedgerEntryType.GROSS_ORDER_VALUE, order["gross_amount_paise"], f"Gross value of order {number}"),
        (LedgerEntryType.PLATFORM_FEE, -order["platform_fee_paise"], f"Platform fee for order {number}"),
        (LedgerEntryType.ORDER_PAYOUT, order["net_payable_paise"], f"Merchant payout for order {number}"),
    ]
    written = 0
    for entry_type, amount, description in entries:
        if await record_order_ledger_entry(
            db,
            merchant_id=order["merchant_id"],
            order_id=order["_id"],
            entry_type=entry_type,
            amount_paise=amount,
            description=description,
            status=status,
        ):
            written += 1
    return written


def _ledger_confirmed(order: dict) -> bool:
    payment = order.get("payment") or {}
    return payment.get("method") == "COD" or payment.get("status") == "PAID"


async def _repair_order_ledger(db, order: dict) -> None:
    if order.get("stage") == "CANCELLED":
        return
    written = await record_order_ledger_entries(db, order, confirmed=_ledger_confirmed(order))
    if written:
        logger.warning("ORDER_LEDGER_REPAIRED order=%s entries=%s", order["_id"], written)


async def create_order(
    db,
    *,
    merchant_id,
    order_number: str,
    gross_amount_paise: int,
    payment_method: str,
    idempotency_key: str,
    gateway_order_id: str | None = None,
) -> tuple[dict, bool]:
    """
    Stamp gross / fee / net on a new order and record its ledger entries.
    Returns (order, created); a repeated idempotency key returns the first order
    and completes any ledger entries its first attempt did not get to write.
    """
    assert_integer_paise(gross_amount_paise, "gross_amount_paise")
    merchant_oid = parse_object_id(merchant_id, "merchant_id")

    existing = await db.orders.find_one({"idempotency_key": idempotency_key})
    if existing:
        await _repair_order_ledger(db, existing)
        return existing, False

    priced = await price_order(db, merchant_oid, gross_amount_paise)

    is_cod = payment_method == "COD"
    now = datetime.utcnow()
    order = {
        "_id": ObjectId(),
        "merchant_id": merchant_oid,
        "order_number": order_number,
        "gross_amount_paise": gross_amount_paise,
        "platform_fee_paise": priced["platform_fee_paise"],
        "net_payable_paise": priced["net_payable_paise"],
        "payment": {
            "method": payment_method,
            "status": "PENDING",
            "gateway_order_id": gateway_order_id,
        },
        "stage": "CONFIRMED" if is_cod else "PLACED",
        "idempotency_key": idempotency_key,
        "invoice_number": None,
        "created_at": now,
        "updated_at": now,
    }

    try:
        await db.orders.insert_one(order)
    except DuplicateKeyError:
        existing = await db.orders.find_one({"idempotency_key": idempotency_key})
        if existing:
            await _repair_order_ledger(db, existing)
            return existing, False
        raise

    await record_order_ledger_entries(db, order, confirmed=is_cod)
    logger.info(
        "ORDER_FEE_STAMPED order=%s merchant=%s gross=%s fee=%s",
        order["_id"], merchant_oid, gross_amount_paise, order["platform_fee_paise"],
    )
    return order, True


# ==============================
# Payment outcomes
# ==============================

async def confirm_order_payment(db, order: dict, gateway_payment_id: str | None = None) -> bool:
    """
    Payment captured: order PAID + CONFIRMED and its ledger entries COMPLETED.
    Returns False when the order was already paid (or cancelled); promotion
    still runs so a delivery that stopped half way is finished by the next one.
    """
    now = datetime.utcnow()
    res = await db.orders.update_one(
        {
            "_id": order["_id"],
            "payment.status": {"$ne": "PAID"},
            "stage": {"$ne": "CANCELLED"},
        },
        {"$set": {
            "payment.status": "PAID",
            "payment.gateway_payment_id": gateway_payment_id,
            "payment.paid_at": now,
            "stage": "CONFIRMED",
            "updated_at": now,
        }},
    )
    if res.modified_count == 0:
        current = await db.orders.find_one({"_id": order["_id"]}, {"stage": 1})
        if current and current.get("stage") == "CANCELLED":
            # money arrived for an order nobody will ship; refund is handled outside
            logger.warning("PAYMENT_CAPTURED_ON_CANCELLED_ORDER order=%s payment=%s", order["_id"], gateway_payment_id)
            return False

    await promote_order_ledger_entries(db, order["_id"])
    return res.modified_count == 1


async def fail_order_payment(db, order: dict) -> bool:
    """
    A payment attempt failed. The customer can retry against the same gateway
    order, so only the payment status moves; ledger entries stay PENDING until
    a capture promotes them or the order is cancelled.
    """
    res = await db.orders.update_one(
        {"_id": order["_id"], "payment.status": "PENDING"},
        {"$set": {"payment.status": "FAILED", "updated_at": datetime.utcnow()}},
    )
    return res.modified_count == 1


async def cancel_order(db, order_id) -> dict:
    """
    Cancel an order that was never paid. Its ledger entries become FAILED, so
    nothing from it is invoiced or paid out.
    """
    order_oid = parse_object_id(order_id, "order_id")
    order = await db.orders.find_one({"_id": order_oid})
    if not order:
        raise HTTPException(404, "Order not found")
    if _ledger_confirmed(order):
        raise HTTPException(400, "Paid or COD orders cannot be cancelled")

    now = datetime.utcnow()
    res = await db.orders.update_one(
        {"_id": order_oid, "payment.status": {"$ne": "PAID"}, "stage": {"$ne": "CANCELLED"}},
        {"$set": {"stage": "CANCELLED", "cancelled_at": now, "updated_at": now}},
    )
    if res.modified_count == 0:
        order = await db.orders.find_one({"_id": order_oid})
        if order["stage"] != "CANCELLED":
            raise HTTPException(400, "Paid or COD orders cannot be cancelled")

    failed = await fail_order_ledger_entries(db, order_oid)
    logger.info("ORDER_CANCELLED order=%s ledger_failed=%s", order_oid, failed)
    return await db.orders.find_one({"_id": order_oid})


async def mark_cod_collected(db, order_id) -> dict:
    order = await db.orders.find_one({"_id": parse_object_id(order_id, "order_id")})
    if not order:
        raise HTTPException(404, "Order not found")
    if order["payment"]["method"] != "COD":
        raise HTTPException(400, "Only COD orders can be marked collected")
    if order.get("stage") == "CANCELLED":
        raise HTTPException(400, "Order is cancelled")

    await confirm_order_payment(db, order)
    return await db.orders.find_one({"_id": order["_id"]})
