import base64
import hashlib

from cryptography.fernet import Fernet, InvalidToken
from fastapi import HTTPException

from config.env import BANK_DATA_ENCRYPTION_KEY


def _build_fernet() -> Fernet:
    seed = (BANK_DATA_ENCRYPTION_KEY or "").strip()
    if not seed:
        raise HTTPException(status_code=500, detail="Bank data encryption key is not configured")
    key = base64.urlsafe_b64encode(hashlib.sha256(seed.encode("utf-8")).digest())
    return Fernet(key)


def encrypt_bank_account_number(account_number: str) -> str:
    if not account_number:
        raise HTTPException(status_code=400, detail="Bank account number missing")
    return _build_fernet().encrypt(account_number.encode("utf-8")).decode("utf-8")


def decrypt_bank_account_number(token: str) -> str:
    if not token:
        raise HTTPException(status_code=400, detail="Encrypted bank account number missing")
    try:
        raw = _build_fernet().decrypt(token.encode("utf-8"))
    except InvalidToken:
        raise HTTPException(status_code=400, detail="Invalid encrypted bank account number")
    return raw.decode("utf-8")


def bank_last4(bank_account: dict | None) -> str | None:
    """
    Last four digits for notifications. Prefers the stored mask so the
    encryption key is only needed when no mask was saved.
    """
    if not bank_account:
        return None

    masked = bank_account.get("bank_account_masked")
    if masked:
        digits = "".join(ch for ch in masked if ch.isdigit())
        return digits[-4:] or None

    encrypted = bank_account.get("bank_account_encrypted")
    if encrypted:
        return decrypt_bank_account_number(encrypted)[-4:]
    return None
