import hashlib
import hmac

from fastapi import HTTPException

from config.env import RAZORPAY_WEBHOOK_SECRET, RAZORPAYX_WEBHOOK_SECRET


def _signature_matches(secret: str | None, raw_body: bytes, received_signature: str, label: str) -> bool:
    if not secret:
        raise HTTPException(status_code=500, detail=f"{label} webhook secret is not configured")
    expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, received_signature)


def verify_payment_webhook_signature(*, raw_body: bytes, received_signature: str) -> bool:
    return _signature_matches(RAZORPAY_WEBHOOK_SECRET, raw_body, received_signature, "Razorpay")


def verify_payout_webhook_signature(*, raw_body: bytes, received_signature: str) -> bool:
    return _signature_matches(RAZORPAYX_WEBHOOK_SECRET, raw_body, received_signature, "RazorpayX")
