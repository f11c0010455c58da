import csv
import io
from datetime import date

from bson import ObjectId
from pymongo import ASCENDING
from fastapi import HTTPException

from config.constants import DEFAULT_GST_RATE, DEFAULT_SAC_CODE
from models.ledger import LedgerEntryType, LedgerStatus
from utils.billing import get_billing_profile
from utils.dates import local_day_bounds, local_today, to_local
from utils.gst import calculate_gst, determine_tax_type, split_gst

STATEMENT_COLUMNS = ["date", "order", "description", "sac", "taxable_value", "cgst", "sgst", "igst", "total"]
LEDGER_EXPORT_COLUMNS = ["date", "type", "status", "amount_paise", "order", "payout_batch_id", "description"]


def resolve_date_range(from_date: date | None, to_date: date | None) -> tuple[date, date]:
    """
    Defaults to the current month so far. Dates are local calendar days.
    """
    today = local_today()
    start = from_date or today.replace(day=1)
    end = to_date or today
    if start > end:
        raise HTTPException(400, "from must not be after to")
    return start, end


def _to_csv(columns: list[str], rows: list[dict]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=columns, lineterminator="\n")
    writer.writeheader()
    writer.writerows(rows)
    return buffer.getvalue()


async def _order_numbers(db, order_ids) -> dict:
    ids = [oid for oid in set(order_ids) if oid]
    if not ids:
        return {}
    orders = await db.orders.find({"_id": {"$in": ids}}, {"order_number": 1}).to_list(None)
    return {o["_id"]: o.get("order_number") for o in orders}


# ==============================
# Billing statement (platform fees + GST)
# ==============================

async def build_billing_statement(db, merchant_id: ObjectId, start_day: date, end_day: date) -> dict:
    """
    One line per charged platform fee in the range, taxed the way the platform
    invoice taxes it. GST is rounded per line, so the statement total can differ
    from the invoice total by a few paise.
    """
    merchant = await db.merchants.find_one({"_id": merchant_id})
    if not merchant:
        raise HTTPException(404, "Merchant not found")

    profile = await get_billing_profile(db) or {}
    gst_rate = profile.get("default_gst_rate", DEFAULT_GST_RATE)
    sac_code = profile.get("default_sac_code") or DEFAULT_SAC_CODE
    tax_type = determine_tax_type(
        profile.get("state_code") or profile.get("state"),
        (merchant.get("billing") or {}).get("state"),
    )

    start, end = local_day_bounds(start_day, end_day)
    entries = await db.ledger_entries.find(
        {
            "merchant_id": merchant_id,
            "type": LedgerEntryType.PLATFORM_FEE.value,
            "status": LedgerStatus.COMPLETED.value,
            "created_at": {"$gte": start, "$lte": end},
        },
        sort=[("created_at", ASCENDING)],
    ).to_list(None)
    numbers = await _order_numbers(db, [e.get("order_id") for e in entries])

    rows = []
    for entry in entries:
        taxable = abs(entry["amount_paise"])
        gst = calculate_gst(taxable, gst_rate)
        split = split_gst(gst, tax_type)
        rows.append({
            "date": to_local(entry["created_at"]).date().isoformat(),
            "order": numbers.get(entry.get("order_id")) or "",
            "description": entry.get("description") or "",
            "sac": sac_code,
            "taxable_value": taxable,
            **split,
            "total": taxable + gst,
        })

    return {
        "merchant_id": merchant_id,
        "from": start_day,
        "to": end_day,
        "tax_type": tax_type.value,
        "rows": rows,
        "totals": {
            key: sum(r[key] for r in rows)
            for key in ("taxable_value", "cgst", "sgst", "igst", "total")
        },
    }


def billing_statement_csv(statement: dict) -> str:
    return _to_csv(STATEMENT_COLUMNS, statement["rows"])


# ==============================
# Ledger export
# ==============================

async def export_ledger_csv(
    db,
    merchant_id: ObjectId,
    start_day: date,
    end_day: date,
    entry_type: LedgerEntryType | None = None,
) -> str:
    start, end = local_day_bounds(start_day, end_day)
    query = {"merchant_id": merchant_id, "created_at": {"$gte": start, "$lte": end}}
    if entry_type:
        query["type"] = LedgerEntryType(entry_type).value

    entries = await db.ledger_entries.find(query, sort=[("created_at", ASCENDING)]).to_list(None)
    numbers = await _order_numbers(db, [e.get("order_id") for e in entries])

    rows = [
        {
            "date": to_local(e["created_at"]).isoformat(timespec="seconds"),
            "type": e["type"],
            "status": e["status"],
            "amount_paise": e["amount_paise"],
            "order": numbers.get(e.get("order_id")) or "",
            "payout_batch_id": str(e["payout_batch_id"]) if e.get("payout_batch_id") else "",
            "description": e.get("description") or "",
        }
        for e in entries
    ]
    return _to_csv(LEDGER_EXPORT_COLUMNS, rows)


def csv_filename(kind: str, merchant_id: ObjectId, start_day: date, end_day: date) -> str:
    return f"{kind}-{str(merchant_id)[-6:]}-{start_day.isoformat()}-{end_day.isoformat()}.csv"
