import base64
import json
from urllib import request, error

from fastapi import HTTPException

from config.constants import INVOICE_CURRENCY
from config.env import (
    PAYOUT_PROVIDER,
    RAZORPAYX_KEY_ID,
    RAZORPAYX_KEY_SECRET,
    RAZORPAYX_ACCOUNT_NUMBER,
)
from utils.crypto import decrypt_bank_account_number

RAZORPAYX_API_BASE = "https://api.razorpay.com/v1"

# RazorpayX payout.status -> payout batch status
PROCESSED_STATUSES = {"processed"}
FAILED_STATUSES = {"rejected", "failed", "reversed", "cancelled"}


def _basic_auth_header(key_id: str, key_secret: str) -> str:
    token = f"{key_id}:{key_secret}".encode("utf-8")
    return "Basic " + base64.b64encode(token).decode("utf-8")


def _require_razorpayx_config() -> tuple[str, str, str]:
    if (PAYOUT_PROVIDER or "").lower() != "razorpayx":
        raise HTTPException(status_code=500, detail="Unsupported payout provider")
    if not RAZORPAYX_KEY_ID or not RAZORPAYX_KEY_SECRET or not RAZORPAYX_ACCOUNT_NUMBER:
        raise HTTPException(status_code=500, detail="RazorpayX payout config missing")
    return RAZORPAYX_KEY_ID, RAZORPAYX_KEY_SECRET, RAZORPAYX_ACCOUNT_NUMBER


def _post(path: str, payload: dict, auth_header: str) -> dict:
    req = request.Request(
        url=f"{RAZORPAYX_API_BASE}{path}",
        data=json.dumps(payload).encode("utf-8"),
        headers={
            "Content-Type": "application/json",
            "Authorization": auth_header,
        },
        method="POST",
    )
    try:
        with request.urlopen(req, timeout=20) as resp:
            return json.loads(resp.read().decode("utf-8"))
    except error.HTTPError as e:
        details = e.read().decode("utf-8", errors="ignore")
        raise HTTPException(status_code=502, detail=f"Payout provider error: {details}")
    except Exception:
        raise HTTPException(status_code=502, detail="Payout provider request failed")


def _merchant_account_number(bank: dict) -> str:
    encrypted = bank.get("bank_account_encrypted")
    if encrypted:
        return decrypt_bank_account_number(encrypted)
    account_number = bank.get("bank_account_number")
    if not account_number:
        raise HTTPException(status_code=400, detail="Merchant bank account is missing for payout")
    return account_number


def execute_batch_payout(*, batch: dict, merchant: dict) -> dict:
    """
    Send one payout batch to the merchant's bank account (IMPS).
    Blocking; call it through asyncio.to_thread.
    """
    key_id, key_secret, source_account = _require_razorpayx_config()
    auth_header = _basic_auth_header(key_id, key_secret)

    amount_paise = batch["total_amount"]
    if not isinstance(amount_paise, int) or amount_paise <= 0:
        raise HTTPException(status_code=400, detail="Invalid payout amount")

    bank = merchant.get("bank_account") or {}
    reference = str(batch["_id"])
    notes = {
        "merchant_id": str(merchant["_id"]),
        "payout_batch_id": reference,
        "platform_invoice_id": str(batch["platform_invoice_id"]),
    }

    contact = _post("/contacts", {
        "name": bank.get("account_holder_name") or merchant.get("display_name") or "Merchant",
        "type": "vendor",
        "reference_id": reference,
        "email": merchant.get("email"),
        "contact": merchant.get("phone"),
        "notes": notes,
    }, auth_header)
    contact_id = contact.get("id")
    if not contact_id:
        raise HTTPException(status_code=502, detail="Payout provider contact creation failed")

    fund_account = _post("/fund_accounts", {
        "contact_id": contact_id,
        "account_type": "bank_account",
        "bank_account": {
            "name": bank.get("account_holder_name"),
            "ifsc": bank.get("ifsc_code"),
            "account_number": _merchant_account_number(bank),
        },
    }, auth_header)
    fund_account_id = fund_account.get("id")
    if not fund_account_id:
        raise HTTPException(status_code=502, detail="Payout provider fund account creation failed")

    payout = _post("/payouts", {
        "account_number": source_account,
        "fund_account_id": fund_account_id,
        "amount": amount_paise,
        "currency": INVOICE_CURRENCY,
        "mode": "IMPS",
        "purpose": "payout",
        "queue_if_low_balance": True,
        "reference_id": reference,
        "narration": "Weekly settlement payout",
        "notes": notes,
    }, auth_header)
    payout_id = payout.get("id")
    if not payout_id:
        raise HTTPException(status_code=502, detail="Payout creation failed at provider")

    return {
        "razorpay_payout_id": payout_id,
        "provider_status": payout.get("status"),
        "provider_contact_id": contact_id,
        "provider_fund_account_id": fund_account_id,
    }
