import logging
from datetime import datetime

from fastapi import HTTPException
from pymongo.errors import DuplicateKeyError

from config.constants import CYCLE_END_WEEKDAY, DEFAULT_GST_RATE
from models.billing import CycleStatus
from utils.billing import (
    build_platform_invoice,
    compute_platform_fees_for_period,
    get_billing_profile,
)
from utils.dates import local_today
from utils.invoice_numbers import allocate_platform_invoice_number
from utils.settlement import advance_cycle_status, current_cycle_bounds, get_or_create_cycle

logger = logging.getLogger(__name__)

ACTIVE_MERCHANT_FILTER = {"is_active": True, "account_status": "ACTIVE"}


async def _invoice_merchant(db, merchant: dict, cycle: dict, profile: dict, now: datetime) -> str:
    """
    Returns "succeeded" or "skipped". Raises on anything unexpected.
    """
    existing = await db.platform_invoices.find_one({
        "merchant_id": merchant["_id"],
        "cycle_id": cycle["_id"],
    })
    if existing:
        return "skipped"

    fees = await compute_platform_fees_for_period(
        db,
        merchant["_id"],
        cycle["period_start"],
        cycle["period_end"],
        profile.get("default_gst_rate", DEFAULT_GST_RATE),
    )
    if fees.platform_fee <= 0:
        return "skipped"

    invoice = build_platform_invoice(
        merchant=merchant,
        cycle=cycle,
        profile=profile,
        fees=fees,
        now=now,
    )
    # number taken last so a merchant that fails above never consumes one
    invoice_number = await allocate_platform_invoice_number(db, now=now)
    invoice["invoice_number"] = invoice_number

    try:
        await db.platform_invoices.insert_one(invoice)
    except DuplicateKeyError:
        # another run invoiced this merchant first; the number stays burned
        logger.warning(
            "PLATFORM_INVOICE_DUPLICATE merchant=%s cycle=%s number=%s",
            merchant["_id"], cycle["_id"], invoice_number,
        )
        return "skipped"

    logger.info(
        "PLATFORM_INVOICE_ISSUED merchant=%s number=%s total=%s",
        merchant["_id"], invoice_number, fees.total,
    )
    return "succeeded"


async def generate_platform_invoices(db, now: datetime | None = None) -> dict:
    """
    Invoice every active merchant's platform fees for the current weekly cycle.

    Safe to re-run: an INVOICED/PAID cycle is left alone, and merchants that
    already have an invoice for the cycle are skipped.
    """
    now = now or datetime.utcnow()
    run_day = local_today(now)
    if run_day.weekday() != CYCLE_END_WEEKDAY:
        logger.warning("PLATFORM_INVOICE_OFF_SCHEDULE run_day=%s weekday=%s", run_day, run_day.strftime("%A"))

    period_start, period_end = current_cycle_bounds(now)
    cycle = await get_or_create_cycle(db, period_start, period_end)

    summary = {
        "cycle_id": str(cycle["_id"]),
        "period_start": period_start.isoformat(),
        "period_end": period_end.isoformat(),
        "succeeded": 0,
        "skipped": 0,
        "failed": 0,
    }

    if cycle["status"] != CycleStatus.DRAFT.value:
        summary["cycle_status"] = cycle["status"]
        return summary

    profile = await get_billing_profile(db)
    if not profile:
        raise HTTPException(500, "Platform billing profile not configured")

    merchants = await db.merchants.find(ACTIVE_MERCHANT_FILTER).to_list(None)

    for merchant in merchants:
        try:
            outcome = await _invoice_merchant(db, merchant, cycle, profile, now)
            summary[outcome] += 1
        except Exception:
            # Never stop the run for one merchant
            logger.exception("PLATFORM_INVOICE_ERROR merchant=%s cycle=%s", merchant.get("_id"), cycle["_id"])
            summary["failed"] += 1

    await advance_cycle_status(db, cycle["_id"], CycleStatus.INVOICED)
    summary["cycle_status"] = CycleStatus.INVOICED.value

    logger.info(
        "PLATFORM_INVOICE_RUN cycle=%s succeeded=%s skipped=%s failed=%s",
        cycle["_id"], summary["succeeded"], summary["skipped"], summary["failed"],
    )
    return summary
