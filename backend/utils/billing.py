from dataclasses import dataclass
from datetime import datetime

from bson import ObjectId
from fastapi import HTTPException

from config.constants import (
    DEFAULT_GST_RATE,
    DEFAULT_SAC_CODE,
    INVOICE_CURRENCY,
    PLATFORM_BILLING_PROFILE_ID,
)
from models.billing import InvoiceStatus, TaxType
from utils.dates import to_local
from utils.gst import calculate_gst, determine_tax_type, get_state_code, split_gst
from utils.guards import parse_object_id
from utils.ledger import sum_completed_platform_fees


@dataclass(frozen=True)
class PlatformFeeComputation:
    platform_fee: int
    gst_amount: int
    total: int


async def get_billing_profile(db) -> dict | None:
    return await db.platform_billing_profile.find_one({"_id": PLATFORM_BILLING_PROFILE_ID})


async def compute_platform_fees_for_period(
    db,
    merchant_id: ObjectId,
    period_start: datetime,
    period_end: datetime,
    gst_rate_percent=DEFAULT_GST_RATE,
) -> PlatformFeeComputation:
    platform_fee = await sum_completed_platform_fees(db, merchant_id, period_start, period_end)
    gst_amount = calculate_gst(platform_fee, gst_rate_percent)
    return PlatformFeeComputation(
        platform_fee=platform_fee,
        gst_amount=gst_amount,
        total=platform_fee + gst_amount,
    )


def _period_label(period_start: datetime, period_end: datetime) -> str:
    return f"{to_local(period_start):%d/%m/%Y} to {to_local(period_end):%d/%m/%Y}"


def build_platform_invoice(
    *,
    merchant: dict,
    cycle: dict,
    profile: dict,
    fees: PlatformFeeComputation,
    invoice_number: str | None = None,
    now: datetime | None = None,
) -> dict:
    """
    Invoice document for one merchant and cycle, with its single period line item.
    """
    gst_rate = profile.get("default_gst_rate", DEFAULT_GST_RATE)
    tax_type = determine_tax_type(
        profile.get("state_code") or profile.get("state"),
        (merchant.get("billing") or {}).get("state"),
    )
    split = split_gst(fees.gst_amount, tax_type)

    return {
        "_id": ObjectId(),
        "merchant_id": merchant["_id"],
        "cycle_id": cycle["_id"],
        "invoice_number": invoice_number,
        "invoice_date": now or datetime.utcnow(),
        "period_start": cycle["period_start"],
        "period_end": cycle["period_end"],
        "currency": INVOICE_CURRENCY,
        "subtotal": fees.platform_fee,
        "gst_rate": gst_rate,
        "gst_amount": fees.gst_amount,
        "tax_type": tax_type.value,
        **split,
        "total": fees.total,
        "status": InvoiceStatus.ISSUED.value,
        "line_items": [{
            "type": "PLATFORM_FEE",
            "description": (
                "Platform service fee for period "
                + _period_label(cycle["period_start"], cycle["period_end"])
            ),
            "sac_code": profile.get("default_sac_code") or DEFAULT_SAC_CODE,
            "quantity": 1,
            "unit_price": fees.platform_fee,
            "amount": fees.platform_fee,
            "gst_rate": gst_rate,
            "gst_amount": fees.gst_amount,
            "total_amount": fees.total,
        }],
        "created_at": datetime.utcnow(),
    }


async def cancel_platform_invoice(db, invoice_id) -> None:
    invoice_oid = parse_object_id(invoice_id, "invoice_id")
    res = await db.platform_invoices.update_one(
        {"_id": invoice_oid, "status": InvoiceStatus.ISSUED.value},
        {"$set": {"status": InvoiceStatus.CANCELLED.value, "cancelled_at": datetime.utcnow()}},
    )
    if res.modified_count == 1:
        return

    invoice = await db.platform_invoices.find_one({"_id": invoice_oid})
    if not invoice:
        raise HTTPException(404, "Platform invoice not found")
    raise HTTPException(400, f"Cannot cancel {invoice['status']} invoice")


# ==============================
# Structured data for the PDF renderer
# ==============================

def _supplier(profile: dict) -> dict:
    return {
        "legal_name": profile.get("legal_name"),
        "address": profile.get("address"),
        "city": profile.get("city"),
        "state": profile.get("state"),
        "pincode": profile.get("pincode"),
        "gstin": profile.get("gstin"),
        "state_code": get_state_code(profile.get("state_code") or profile.get("state")),
        "email": profile.get("email"),
        "phone": profile.get("phone"),
    }


def _recipient(merchant: dict) -> dict:
    billing = merchant.get("billing") or {}
    return {
        "legal_name": merchant.get("legal_name") or merchant.get("display_name"),
        "trade_name": merchant.get("display_name"),
        "address": billing.get("address"),
        "city": billing.get("city"),
        "state": billing.get("state"),
        "pincode": billing.get("pincode"),
        "gstin": billing.get("gstin"),
        "state_code": get_state_code(billing.get("state")),
        "email": merchant.get("email"),
        "phone": merchant.get("phone"),
    }


async def build_platform_invoice_data(db, invoice_id) -> dict:
    invoice = await db.platform_invoices.find_one({"_id": parse_object_id(invoice_id, "invoice_id")})
    if not invoice:
        raise HTTPException(404, "Platform invoice not found")

    merchant = await db.merchants.find_one({"_id": invoice["merchant_id"]})
    if not merchant:
        raise HTTPException(404, "Merchant not found")

    profile = await get_billing_profile(db)
    if not profile:
        raise HTTPException(500, "Platform billing profile not configured")

    tax_type = TaxType(invoice["tax_type"])
    split = split_gst(invoice["gst_amount"], tax_type)

    return {
        "invoice_number": invoice["invoice_number"],
        "invoice_date": invoice["invoice_date"],
        "period_from": invoice["period_start"],
        "period_to": invoice["period_end"],
        "currency": invoice["currency"],
        "status": invoice["status"],
        "supplier": _supplier(profile),
        "recipient": _recipient(merchant),
        "line_items": invoice["line_items"],
        "totals": {
            "total_taxable": invoice["subtotal"],
            "total_cgst": split["cgst"],
            "total_sgst": split["sgst"],
            "total_igst": split["igst"],
            "grand_total": invoice["total"],
        },
        "tax_type": tax_type.value,
    }
