from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from pymongo import DESCENDING

from config.constants import PLATFORM_BILLING_PROFILE_ID
from database import get_db
from models.billing import (
    BankAccountUpdate,
    BillingProfileUpdate,
    InvoiceStatus,
    MerchantInvoiceSettingsUpdate,
    PayoutBatchStatus,
)
from models.ledger import LedgerEntryType
from models.pricing import (
    AssignPackage,
    MerchantFeeOverride,
    PricingPackageCreate,
    PricingPackageUpdate,
)
from utils.audit import log_audit
from utils.billing import build_platform_invoice_data, cancel_platform_invoice, get_billing_profile
from utils.crypto import encrypt_bank_account_number
from utils.guards import parse_object_id
from utils.invoice_numbers import get_merchant_invoice_settings, update_merchant_invoice_settings
from utils.ledger import get_ledger_summary, list_ledger_entries
from utils.pricing import (
    archive_pricing_package,
    assign_pricing_package,
    create_pricing_package,
    get_effective_fee_config,
    publish_pricing_package,
    set_merchant_fee_overrides,
    soft_delete_pricing_package,
    update_pricing_package,
)
from utils.security import require_admin_key
from utils.serializers import serialize_doc, serialize_value
from utils.statements import (
    billing_statement_csv,
    build_billing_statement,
    csv_filename,
    export_ledger_csv,
    resolve_date_range,
)


router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    dependencies=[Depends(require_admin_key)],
)


# =====================================================
# PRICING PACKAGES
# =====================================================

@router.get("/pricing-packages")
async def list_pricing_packages(db=Depends(get_db)):
    packages = await db.pricing_packages.find(
        {"deleted_at": None},
        sort=[("created_at", DESCENDING)],
    ).to_list(None)
    return {"count": len(packages), "packages": [serialize_doc(p) for p in packages]}


@router.post("/pricing-packages", status_code=201)
async def add_pricing_package(data: PricingPackageCreate, db=Depends(get_db)):
    package = await create_pricing_package(db, data.dict())
    await log_audit(db, action="PRICING_PACKAGE_CREATED", entity="pricing_package", entity_id=package["_id"])
    return serialize_doc(package)


@router.patch("/pricing-packages/{package_id}")
async def edit_pricing_package(package_id: str, data: PricingPackageUpdate, db=Depends(get_db)):
    changes = data.dict(exclude_unset=True)
    package = await update_pricing_package(db, package_id, changes)
    await log_audit(
        db,
        action="PRICING_PACKAGE_UPDATED",
        entity="pricing_package",
        entity_id=package["_id"],
        metadata={"fields": sorted(changes)},
    )
    return serialize_doc(package)


@router.post("/pricing-packages/{package_id}/publish")
async def publish_package(package_id: str, db=Depends(get_db)):
    package = await publish_pricing_package(db, package_id)
    await log_audit(db, action="PRICING_PACKAGE_PUBLISHED", entity="pricing_package", entity_id=package["_id"])
    return serialize_doc(package)


@router.post("/pricing-packages/{package_id}/archive")
async def archive_package(package_id: str, db=Depends(get_db)):
    package = await archive_pricing_package(db, package_id)
    await log_audit(db, action="PRICING_PACKAGE_ARCHIVED", entity="pricing_package", entity_id=package["_id"])
    return serialize_doc(package)


@router.delete("/pricing-packages/{package_id}")
async def delete_package(package_id: str, db=Depends(get_db)):
    await soft_delete_pricing_package(db, package_id)
    await log_audit(db, action="PRICING_PACKAGE_DELETED", entity="pricing_package", entity_id=package_id)
    return {"ok": True}


# =====================================================
# MERCHANT FEES
# =====================================================

async def _require_merchant(db, merchant_id: str):
    merchant_oid = parse_object_id(merchant_id, "merchant_id")
    if not await db.merchants.find_one({"_id": merchant_oid}, {"_id": 1}):
        raise HTTPException(404, "Merchant not found")
    return merchant_oid


@router.put("/merchants/{merchant_id}/fee-overrides")
async def update_fee_overrides(merchant_id: str, data: MerchantFeeOverride, db=Depends(get_db)):
    overrides = data.dict()
    await set_merchant_fee_overrides(db, merchant_id, overrides)
    await log_audit(
        db,
        action="MERCHANT_FEE_OVERRIDES_SET",
        entity="merchant",
        entity_id=merchant_id,
        metadata=overrides,
    )
    return {"ok": True, "effective": (await get_effective_fee_config(db, merchant_id)).dict()}


@router.post("/merchants/{merchant_id}/pricing-package")
async def assign_package(merchant_id: str, data: AssignPackage, db=Depends(get_db)):
    package = await assign_pricing_package(db, merchant_id, data.package_id)
    await log_audit(
        db,
        action="MERCHANT_PACKAGE_ASSIGNED",
        entity="merchant",
        entity_id=merchant_id,
        metadata={"package_id": str(package["_id"])},
    )
    return {"ok": True, "effective": (await get_effective_fee_config(db, merchant_id)).dict()}


@router.get("/merchants/{merchant_id}/fee-config")
async def merchant_fee_config(merchant_id: str, db=Depends(get_db)):
    return (await get_effective_fee_config(db, merchant_id)).dict()


@router.get("/merchants/{merchant_id}/ledger")
async def merchant_ledger(
    merchant_id: str,
    limit: int = Query(100, ge=1, le=500),
    db=Depends(get_db),
):
    merchant_oid = await _require_merchant(db, merchant_id)
    entries = await list_ledger_entries(db, merchant_oid, limit=limit)
    return {
        "summary": await get_ledger_summary(db, merchant_oid),
        "entries": [serialize_doc(e) for e in entries],
    }


def _csv_response(body: str, filename: str) -> StreamingResponse:
    return StreamingResponse(
        iter([body]),
        media_type="text/csv; charset=utf-8",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "Cache-Control": "no-cache",
        },
    )


@router.get("/merchants/{merchant_id}/ledger.csv")
async def merchant_ledger_csv(
    merchant_id: str,
    from_date: Optional[date] = Query(None, alias="from"),
    to_date: Optional[date] = Query(None, alias="to"),
    entry_type: Optional[LedgerEntryType] = Query(None, alias="type"),
    db=Depends(get_db),
):
    merchant_oid = await _require_merchant(db, merchant_id)
    start_day, end_day = resolve_date_range(from_date, to_date)
    body = await export_ledger_csv(db, merchant_oid, start_day, end_day, entry_type)
    return _csv_response(body, csv_filename("ledger", merchant_oid, start_day, end_day))


@router.get("/merchants/{merchant_id}/statement")
async def merchant_statement(
    merchant_id: str,
    from_date: Optional[date] = Query(None, alias="from"),
    to_date: Optional[date] = Query(None, alias="to"),
    db=Depends(get_db),
):
    start_day, end_day = resolve_date_range(from_date, to_date)
    statement = await build_billing_statement(db, parse_object_id(merchant_id, "merchant_id"), start_day, end_day)
    return serialize_value(statement)


@router.get("/merchants/{merchant_id}/statement.csv")
async def merchant_statement_csv(
    merchant_id: str,
    from_date: Optional[date] = Query(None, alias="from"),
    to_date: Optional[date] = Query(None, alias="to"),
    db=Depends(get_db),
):
    merchant_oid = parse_object_id(merchant_id, "merchant_id")
    start_day, end_day = resolve_date_range(from_date, to_date)
    statement = await build_billing_statement(db, merchant_oid, start_day, end_day)
    return _csv_response(
        billing_statement_csv(statement),
        csv_filename("billing-statement", merchant_oid, start_day, end_day),
    )


# =====================================================
# MERCHANT INVOICE SERIES
# =====================================================

@router.get("/merchants/{merchant_id}/invoice-settings")
async def read_invoice_settings(merchant_id: str, db=Depends(get_db)):
    merchant_oid = await _require_merchant(db, merchant_id)
    return serialize_value(await get_merchant_invoice_settings(db, merchant_oid))


@router.put("/merchants/{merchant_id}/invoice-settings")
async def write_invoice_settings(merchant_id: str, data: MerchantInvoiceSettingsUpdate, db=Depends(get_db)):
    merchant_oid = await _require_merchant(db, merchant_id)
    changes = data.dict(exclude_unset=True, exclude_none=True)
    if not changes:
        raise HTTPException(400, "No changes supplied")

    settings = await update_merchant_invoice_settings(db, merchant_oid, changes)
    await log_audit(
        db,
        action="MERCHANT_INVOICE_SETTINGS_UPDATED",
        entity="merchant",
        entity_id=merchant_oid,
        metadata={"fields": sorted(changes)},
    )
    return serialize_value(settings)


# =====================================================
# MERCHANT BANK ACCOUNT (payout destination)
# =====================================================

@router.put("/merchants/{merchant_id}/bank-account")
async def update_bank_account(merchant_id: str, data: BankAccountUpdate, db=Depends(get_db)):
    merchant_oid = await _require_merchant(db, merchant_id)
    account_number = data.account_number.strip()

    bank_account = {
        "account_holder_name": data.account_holder_name.strip(),
        "ifsc_code": data.ifsc_code.strip().upper(),
        "bank_account_encrypted": encrypt_bank_account_number(account_number),
        "bank_account_masked": "X" * (len(account_number) - 4) + account_number[-4:],
        "updated_at": datetime.utcnow(),
    }
    await db.merchants.update_one({"_id": merchant_oid}, {"$set": {"bank_account": bank_account}})

    # never log the number itself
    await log_audit(
        db,
        action="MERCHANT_BANK_ACCOUNT_UPDATED",
        entity="merchant",
        entity_id=merchant_oid,
        metadata={"last4": account_number[-4:], "ifsc_code": bank_account["ifsc_code"]},
    )
    return {
        "ok": True,
        "bank_account_masked": bank_account["bank_account_masked"],
        "ifsc_code": bank_account["ifsc_code"],
    }


# =====================================================
# PLATFORM BILLING PROFILE
# =====================================================

@router.get("/billing-profile")
async def read_billing_profile(db=Depends(get_db)):
    profile = await get_billing_profile(db)
    if not profile:
        raise HTTPException(404, "Platform billing profile not configured")
    return serialize_doc(profile)


@router.put("/billing-profile")
async def update_billing_profile(data: BillingProfileUpdate, db=Depends(get_db)):
    changes = data.dict(exclude_unset=True, exclude_none=True)
    if not changes:
        raise HTTPException(400, "No changes supplied")

    # the invoice counter is never editable here
    await db.platform_billing_profile.update_one(
        {"_id": PLATFORM_BILLING_PROFILE_ID},
        {
            "$set": {**changes, "updated_at": datetime.utcnow()},
            "$setOnInsert": {"invoice_next_number": 1},
        },
        upsert=True,
    )
    await log_audit(
        db,
        action="BILLING_PROFILE_UPDATED",
        entity="platform_billing_profile",
        entity_id=PLATFORM_BILLING_PROFILE_ID,
        metadata={"fields": sorted(changes)},
    )
    return serialize_doc(await get_billing_profile(db))


# =====================================================
# PLATFORM INVOICES
# =====================================================

@router.get("/platform-invoices")
async def list_platform_invoices(
    merchant_id: Optional[str] = None,
    status: Optional[InvoiceStatus] = None,
    db=Depends(get_db),
):
    query = {}
    if merchant_id:
        query["merchant_id"] = parse_object_id(merchant_id, "merchant_id")
    if status:
        query["status"] = status.value

    invoices = await db.platform_invoices.find(
        query,
        sort=[("invoice_date", DESCENDING)],
        limit=200,
    ).to_list(200)
    return {"count": len(invoices), "invoices": [serialize_doc(i) for i in invoices]}


@router.get("/platform-invoices/{invoice_id}/data")
async def platform_invoice_data(invoice_id: str, db=Depends(get_db)):
    return serialize_value(await build_platform_invoice_data(db, invoice_id))


@router.post("/platform-invoices/{invoice_id}/cancel")
async def cancel_invoice(invoice_id: str, db=Depends(get_db)):
    await cancel_platform_invoice(db, invoice_id)
    await log_audit(db, action="PLATFORM_INVOICE_CANCELLED", entity="platform_invoice", entity_id=invoice_id)
    return {"ok": True}


# =====================================================
# PAYOUT BATCHES
# =====================================================

@router.get("/payout-batches")
async def list_payout_batches(
    status: Optional[PayoutBatchStatus] = None,
    db=Depends(get_db),
):
    query = {"status": status.value} if status else {}
    batches = await db.payout_batches.find(
        query,
        sort=[("created_at", DESCENDING)],
        limit=200,
    ).to_list(200)
    return {"count": len(batches), "batches": [serialize_doc(b) for b in batches]}
