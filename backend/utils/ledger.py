from datetime import datetime

from bson import ObjectId
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from models.ledger import (
    LEDGER_SIGNS,
    LEDGER_TRANSITIONS,
    LedgerEntryType,
    LedgerStatus,
)
from utils.guards import assert_integer_paise


# ==============================
# Core: Append-only ledger write
# ==============================

def _build_entry(
    *,
    merchant_id: ObjectId,
    entry_type: LedgerEntryType,
    amount_paise: int,
    description: str,
    order_id: ObjectId | None,
    payout_batch_id: ObjectId | None,
    status: LedgerStatus,
) -> dict:
    entry_type = LedgerEntryType(entry_type)
    status = LedgerStatus(status)
    assert_integer_paise(amount_paise, "amount_paise")

    if amount_paise * LEDGER_SIGNS[entry_type] < 0:
        raise ValueError(f"{entry_type.value} amount has the wrong sign: {amount_paise}")

    now = datetime.utcnow()
    return {
        "_id": ObjectId(),
        "merchant_id": merchant_id,
        "order_id": order_id,
        "payout_batch_id": payout_batch_id,
        "type": entry_type.value,
        "amount_paise": amount_paise,
        "status": status.value,
        "description": description,
        "created_at": now,
        "updated_at": now,
    }


async def record_ledger_entry(
    db,
    *,
    merchant_id: ObjectId,
    entry_type: LedgerEntryType,
    amount_paise: int,
    description: str,
    order_id: ObjectId | None = None,
    payout_batch_id: ObjectId | None = None,
    status: LedgerStatus = LedgerStatus.PENDING,
) -> dict:
    entry = _build_entry(
        merchant_id=merchant_id,
        entry_type=entry_type,
        amount_paise=amount_paise,
        description=description,
        order_id=order_id,
        payout_batch_id=payout_batch_id,
        status=status,
    )
    await db.ledger_entries.insert_one(entry)
    return entry


async def record_order_ledger_entry(
    db,
    *,
    merchant_id: ObjectId,
    order_id: ObjectId,
    entry_type: LedgerEntryType,
    amount_paise: int,
    description: str,
    status: LedgerStatus = LedgerStatus.PENDING,
) -> bool:
    """
    At most one entry per (order, type). Returns True when this call wrote it;
    an entry that already exists is left exactly as it is.
    """
    entry = _build_entry(
        merchant_id=merchant_id,
        entry_type=entry_type,
        amount_paise=amount_paise,
        description=description,
        order_id=order_id,
        payout_batch_id=None,
        status=status,
    )
    entry.pop("_id")
    try:
        res = await db.ledger_entries.update_one(
            {"order_id": order_id, "type": entry["type"]},
            {"$setOnInsert": entry},
            upsert=True,
        )
    except DuplicateKeyError:
        # concurrent writer inserted it between our match and insert
        return False
    return res.upserted_id is not None


# ==============================
# Status lifecycle (forward only)
# ==============================

async def transition_ledger_entry(db, entry_id: ObjectId, new_status: LedgerStatus) -> dict:
    new_status = LedgerStatus(new_status)
    allowed_from = [
        current.value
        for current, targets in LEDGER_TRANSITIONS.items()
        if new_status in targets
    ]

    updated = await db.ledger_entries.find_one_and_update(
        {"_id": entry_id, "status": {"$in": allowed_from}},
        {"$set": {"status": new_status.value, "updated_at": datetime.utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated:
        return updated

    existing = await db.ledger_entries.find_one({"_id": entry_id})
    if not existing:
        raise ValueError(f"Ledger entry {entry_id} not found")
    raise ValueError(
        f"Illegal ledger transition {existing['status']} -> {new_status.value} for entry {entry_id}"
    )


async def _bulk_transition(db, order_id, from_status: LedgerStatus, to_status: LedgerStatus) -> int:
    res = await db.ledger_entries.update_many(
        {"order_id": order_id, "status": from_status.value},
        {"$set": {"status": to_status.value, "updated_at": datetime.utcnow()}},
    )
    return res.modified_count


async def promote_order_ledger_entries(db, order_id: ObjectId) -> int:
    """
    Payment confirmed: PENDING -> PROCESSING -> COMPLETED for the order's entries.
    Safe to repeat; completed entries are never touched.
    """
    await _bulk_transition(db, order_id, LedgerStatus.PENDING, LedgerStatus.PROCESSING)
    return await _bulk_transition(db, order_id, LedgerStatus.PROCESSING, LedgerStatus.COMPLETED)


async def fail_order_ledger_entries(db, order_id: ObjectId) -> int:
    res = await db.ledger_entries.update_many(
        {
            "order_id": order_id,
            "status": {"$in": [LedgerStatus.PENDING.value, LedgerStatus.PROCESSING.value]},
        },
        {"$set": {"status": LedgerStatus.FAILED.value, "updated_at": datetime.utcnow()}},
    )
    return res.modified_count


# ==============================
# Reads
# ==============================

async def sum_completed_platform_fees(db, merchant_id: ObjectId, start: datetime, end: datetime) -> int:
    """
    Total platform fee charged to a merchant in [start, end], as a positive amount.
    One aggregation, so entries landing mid-run are either fully in or out.
    """
    pipeline = [
        {"$match": {
            "merchant_id": merchant_id,
            "type": LedgerEntryType.PLATFORM_FEE.value,
            "status": LedgerStatus.COMPLETED.value,
            "created_at": {"$gte": start, "$lte": end},
        }},
        {"$group": {
            "_id": None,
            "amount": {"$sum": "$amount_paise"},
        }},
    ]

    result = await db.ledger_entries.aggregate(pipeline).to_list(1)
    if not result:
        return 0

    return abs(int(result[0]["amount"]))


async def get_ledger_summary(db, merchant_id: ObjectId) -> dict:
    pipeline = [
        {"$match": {"merchant_id": merchant_id, "status": LedgerStatus.COMPLETED.value}},
        {"$group": {
            "_id": "$type",
            "amount": {"$sum": "$amount_paise"},
        }},
    ]

    rows = await db.ledger_entries.aggregate(pipeline).to_list(None)
    summary = {t.value: 0 for t in LedgerEntryType}
    summary.update({r["_id"]: int(r["amount"]) for r in rows})

    # net still owed to the merchant
    summary["balance"] = summary[LedgerEntryType.ORDER_PAYOUT.value] + summary[LedgerEntryType.PAYOUT_PROCESSED.value]
    return summary


async def list_ledger_entries(db, merchant_id: ObjectId, limit: int = 100) -> list[dict]:
    return await db.ledger_entries.find(
        {"merchant_id": merchant_id},
        sort=[("created_at", DESCENDING)],
        limit=limit,
    ).to_list(limit)
