import logging
from datetime import date, datetime

from bson import ObjectId
from fastapi import HTTPException
from pymongo import ReturnDocument

from config.constants import (
    INVOICE_NUMBER_TOKEN,
    MAX_ALLOCATION_ATTEMPTS,
    MERCHANT_INVOICE_PADDING,
    MERCHANT_INVOICE_PREFIX,
    MERCHANT_INVOICE_SERIES_FORMAT,
    PLATFORM_BILLING_PROFILE_ID,
    PLATFORM_INVOICE_PADDING,
    PLATFORM_INVOICE_PREFIX,
    PLATFORM_INVOICE_SERIES_FORMAT,
)
from utils.dates import financial_year, local_today

logger = logging.getLogger(__name__)


def format_invoice_number(
    series_format: str | None,
    *,
    prefix: str,
    number: int,
    padding: int,
    on: date,
    default_format: str = PLATFORM_INVOICE_SERIES_FORMAT,
) -> str:
    if not series_format or INVOICE_NUMBER_TOKEN not in series_format:
        logger.warning("INVOICE_SERIES_FORMAT_INVALID format=%r fallback=%s", series_format, default_format)
        series_format = default_format

    return (
        series_format
        .replace("{PREFIX}", prefix)
        .replace("{FY}", financial_year(on))
        .replace("{YYYY}", str(on.year))
        .replace(INVOICE_NUMBER_TOKEN, str(number).zfill(padding))
    )


# ==============================
# Platform invoices (PlatformBillingProfile counter)
# ==============================

async def allocate_platform_invoice_number(db, now: datetime | None = None) -> str:
    """
    Take the next platform invoice number.
    The counter moves with one atomic $inc, so concurrent callers never share a number.
    """
    profiles = db.platform_billing_profile

    await profiles.update_one(
        {"_id": PLATFORM_BILLING_PROFILE_ID},
        {"$setOnInsert": {
            "legal_name": "Platform",
            "invoice_prefix": PLATFORM_INVOICE_PREFIX,
            "invoice_next_number": 1,
            "invoice_padding": PLATFORM_INVOICE_PADDING,
            "series_format": PLATFORM_INVOICE_SERIES_FORMAT,
        }},
        upsert=True,
    )
    # counter cleared by hand -> restart at 1 instead of incrementing from null or 0
    await profiles.update_one(
        {"_id": PLATFORM_BILLING_PROFILE_ID, "invoice_next_number": {"$not": {"$gte": 1}}},
        {"$set": {"invoice_next_number": 1}},
    )

    profile = await profiles.find_one_and_update(
        {"_id": PLATFORM_BILLING_PROFILE_ID},
        {"$inc": {"invoice_next_number": 1}},
        return_document=ReturnDocument.BEFORE,
    )

    return format_invoice_number(
        profile.get("series_format"),
        prefix=profile.get("invoice_prefix") or PLATFORM_INVOICE_PREFIX,
        number=profile["invoice_next_number"],
        padding=profile.get("invoice_padding") or PLATFORM_INVOICE_PADDING,
        on=local_today(now),
        default_format=PLATFORM_INVOICE_SERIES_FORMAT,
    )


# ==============================
# Merchant invoices (per-store counter, yearly reset)
# ==============================

def _merchant_series_defaults(merchant_id: ObjectId, year: int) -> dict:
    return {
        "merchant_id": merchant_id,
        "invoice_prefix": MERCHANT_INVOICE_PREFIX,
        "invoice_next_number": 1,
        "invoice_padding": MERCHANT_INVOICE_PADDING,
        "invoice_series_format": MERCHANT_INVOICE_SERIES_FORMAT,
        "invoice_year": year,
    }


def _format_merchant_number(settings: dict, number: int, on: date) -> str:
    return format_invoice_number(
        settings.get("invoice_series_format"),
        prefix=settings.get("invoice_prefix") or MERCHANT_INVOICE_PREFIX,
        number=number,
        padding=settings.get("invoice_padding") or MERCHANT_INVOICE_PADDING,
        on=on,
        default_format=MERCHANT_INVOICE_SERIES_FORMAT,
    )


async def allocate_merchant_invoice_number(db, merchant_id: ObjectId, now: datetime | None = None) -> str:
    """
    Take the next number in a merchant's own series.
    The series restarts at 1 when the calendar year changes; the restart is a
    compare-and-swap on the stored year, retried a bounded number of times.
    """
    today = local_today(now)
    year = today.year
    store_settings = db.store_settings

    await store_settings.update_one(
        {"merchant_id": merchant_id},
        {"$setOnInsert": _merchant_series_defaults(merchant_id, year)},
        upsert=True,
    )

    for _ in range(MAX_ALLOCATION_ATTEMPTS):
        settings = await store_settings.find_one_and_update(
            {"merchant_id": merchant_id, "invoice_year": year, "invoice_next_number": {"$gte": 1}},
            {"$inc": {"invoice_next_number": 1}},
            return_document=ReturnDocument.BEFORE,
        )
        if settings:
            return _format_merchant_number(settings, settings["invoice_next_number"], today)

        # new year (or broken counter): claim number 1 and leave 2 for the next caller
        settings = await store_settings.find_one_and_update(
            {
                "merchant_id": merchant_id,
                "$or": [
                    {"invoice_year": {"$ne": year}},
                    {"invoice_next_number": {"$not": {"$gte": 1}}},
                ],
            },
            {"$set": {"invoice_year": year, "invoice_next_number": 2}},
            return_document=ReturnDocument.BEFORE,
        )
        if settings:
            return _format_merchant_number(settings, 1, today)

    raise RuntimeError(f"Invoice number allocation failed for merchant {merchant_id}")


async def allocate_invoice_number_for_order(db, order_id: ObjectId, now: datetime | None = None) -> dict:
    """
    Idempotent per order: an order keeps the first number it was given.
    """
    order = await db.orders.find_one({"_id": order_id})
    if not order:
        raise HTTPException(404, "Order not found")

    if order.get("invoice_number"):
        return {
            "invoice_number": order["invoice_number"],
            "invoice_issued_at": order.get("invoice_issued_at"),
        }

    invoice_number = await allocate_merchant_invoice_number(db, order["merchant_id"], now=now)
    issued_at = now or datetime.utcnow()

    res = await db.orders.update_one(
        {"_id": order_id, "invoice_number": None},
        {"$set": {"invoice_number": invoice_number, "invoice_issued_at": issued_at}},
    )
    if res.modified_count == 0:
        # lost the race to a concurrent request; theirs is the order's number
        order = await db.orders.find_one({"_id": order_id})
        logger.warning("ORDER_INVOICE_NUMBER_RACE order=%s discarded=%s", order_id, invoice_number)
        return {
            "invoice_number": order["invoice_number"],
            "invoice_issued_at": order.get("invoice_issued_at"),
        }

    return {"invoice_number": invoice_number, "invoice_issued_at": issued_at}


# ==============================
# Merchant series settings
# ==============================

async def get_merchant_invoice_settings(db, merchant_id: ObjectId, now: datetime | None = None) -> dict:
    """
    The merchant's series as it would be used for the next invoice, with
    defaults filled in and a preview of the next number.
    """
    today = local_today(now)
    settings = await db.store_settings.find_one({"merchant_id": merchant_id}) or {}
    result = {**_merchant_series_defaults(merchant_id, today.year), **settings}
    result.pop("_id", None)

    next_number = result["invoice_next_number"]
    if result["invoice_year"] != today.year or not next_number or next_number < 1:
        next_number = 1

    result["invoice_next_number"] = next_number
    result["next_invoice_preview"] = _format_merchant_number(result, next_number, today)
    return result


async def update_merchant_invoice_settings(
    db,
    merchant_id: ObjectId,
    changes: dict,
    now: datetime | None = None,
) -> dict:
    changes = dict(changes)
    series_format = changes.get("invoice_series_format")
    if series_format is not None:
        series_format = series_format.strip()
        if series_format and INVOICE_NUMBER_TOKEN not in series_format:
            raise HTTPException(400, f"Series format must include {INVOICE_NUMBER_TOKEN} token")
        changes["invoice_series_format"] = series_format or MERCHANT_INVOICE_SERIES_FORMAT

    if "invoice_prefix" in changes:
        prefix = (changes["invoice_prefix"] or "").strip().upper()
        if not prefix:
            raise HTTPException(400, "Prefix is required")
        changes["invoice_prefix"] = prefix

    year = local_today(now).year
    if "invoice_next_number" in changes:
        # a number set by hand belongs to the current year's series
        changes["invoice_year"] = year

    defaults = {
        k: v for k, v in _merchant_series_defaults(merchant_id, year).items()
        if k not in changes
    }
    await db.store_settings.update_one(
        {"merchant_id": merchant_id},
        {
            "$set": {**changes, "updated_at": datetime.utcnow()},
            "$setOnInsert": defaults,
        },
        upsert=True,
    )
    return await get_merchant_invoice_settings(db, merchant_id, now=now)
