from datetime import datetime, time, timedelta

from bson import ObjectId
from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError

from config.constants import CYCLE_END_WEEKDAY, CYCLE_LENGTH_DAYS
from models.billing import CYCLE_STATUS_ORDER, CycleStatus
from utils.dates import local_today, platform_tz, to_naive_utc

CYCLE_END_TIME = time(23, 59, 59, 999000)


def current_cycle_bounds(now: datetime | None = None) -> tuple[datetime, datetime]:
    """
    Friday 00:00 -> Thursday 23:59:59.999 (platform timezone) week containing `now`.
    Returned as naive UTC, the way timestamps are stored.
    """
    tz = platform_tz()
    today = local_today(now)

    end_day = today + timedelta(days=(CYCLE_END_WEEKDAY - today.weekday()) % 7)
    start_day = end_day - timedelta(days=CYCLE_LENGTH_DAYS - 1)

    period_start = datetime.combine(start_day, time.min, tzinfo=tz)
    period_end = datetime.combine(end_day, CYCLE_END_TIME, tzinfo=tz)
    return to_naive_utc(period_start), to_naive_utc(period_end)


async def get_or_create_cycle(db, period_start: datetime, period_end: datetime) -> dict:
    cycle = await db.settlement_cycles.find_one({
        "period_start": period_start,
        "period_end": period_end,
    })
    if cycle:
        return cycle

    cycle = {
        "_id": ObjectId(),
        "period_start": period_start,
        "period_end": period_end,
        "status": CycleStatus.DRAFT.value,
        "invoice_generated_at": None,
        "paid_at": None,
        "created_at": datetime.utcnow(),
    }
    try:
        await db.settlement_cycles.insert_one(cycle)
    except DuplicateKeyError:
        # concurrent job run created it first
        return await db.settlement_cycles.find_one({
            "period_start": period_start,
            "period_end": period_end,
        })
    return cycle


async def advance_cycle_status(db, cycle_id: ObjectId, new_status: CycleStatus) -> bool:
    """
    Move a cycle forward by exactly one step. Returns False when it was not in
    the preceding state (already advanced, or an attempt to go backwards).
    """
    new_status = CycleStatus(new_status)
    position = CYCLE_STATUS_ORDER.index(new_status)
    if position == 0:
        raise ValueError("A settlement cycle cannot move back to DRAFT")

    now = datetime.utcnow()
    fields = {"status": new_status.value, "updated_at": now}
    if new_status == CycleStatus.INVOICED:
        fields["invoice_generated_at"] = now
    elif new_status == CycleStatus.PAID:
        fields["paid_at"] = now

    res = await db.settlement_cycles.update_one(
        {"_id": cycle_id, "status": CYCLE_STATUS_ORDER[position - 1].value},
        {"$set": fields},
    )
    return res.modified_count == 1


async def get_latest_invoiced_cycle(db) -> dict | None:
    rows = await db.settlement_cycles.find(
        {"status": CycleStatus.INVOICED.value},
        sort=[("period_end", DESCENDING)],
        limit=1,
    ).to_list(1)
    return rows[0] if rows else None
