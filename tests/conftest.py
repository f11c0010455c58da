import os

# Settings are read at import time; give tests a complete environment.
os.environ.setdefault("MONGODB_URI", "mongodb://localhost:27017/platform_billing_test")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("RAZORPAY_WEBHOOK_SECRET", "test-razorpay-webhook-secret")
os.environ.setdefault("RAZORPAYX_WEBHOOK_SECRET", "test-razorpayx-webhook-secret")
os.environ.setdefault("BANK_DATA_ENCRYPTION_KEY", "test-bank-data-key")
os.environ.setdefault("PLATFORM_TIMEZONE", "Asia/Kolkata")

from datetime import datetime

import pytest
from bson import ObjectId
from mongomock_motor import AsyncMongoMockClient

from config.constants import PLATFORM_BILLING_PROFILE_ID
from utils.indexes import ensure_indexes


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
async def db():
    client = AsyncMongoMockClient()
    database = client["platform_billing_test"]
    await ensure_indexes(database)
    yield database


@pytest.fixture
def make_merchant(db):
    async def _make(**overrides):
        merchant = {
            "_id": ObjectId(),
            "display_name": "Acme Store",
            "legal_name": "Acme Retail Pvt Ltd",
            "email": "owner@acme.example",
            "phone": "9876543210",
            "is_active": True,
            "account_status": "ACTIVE",
            "billing": {
                "address": "12 MG Road",
                "city": "Lucknow",
                "state": "09-Uttar Pradesh",
                "pincode": "226001",
                "gstin": "09ABCDE1234F1Z5",
            },
            "bank_account": {
                "account_holder_name": "Acme Retail Pvt Ltd",
                "ifsc_code": "HDFC0000123",
                "bank_account_masked": "XXXXXXXX4321",
            },
            "created_at": datetime.utcnow(),
        }
        merchant.update(overrides)
        await db.merchants.insert_one(merchant)
        return merchant

    return _make


@pytest.fixture
async def billing_profile(db):
    profile = {
        "_id": PLATFORM_BILLING_PROFILE_ID,
        "legal_name": "Platform Technologies Pvt Ltd",
        "address": "1 Sector 62",
        "city": "Noida",
        "state": "Uttar Pradesh",
        "state_code": "09",
        "pincode": "201309",
        "gstin": "09AAACP1234A1Z1",
        "email": "billing@platform.example",
        "invoice_prefix": "SMK",
        "invoice_next_number": 1,
        "invoice_padding": 5,
        "series_format": "{PREFIX}-{FY}-{NNNNN}",
        "default_sac_code": "9983",
        "default_gst_rate": 18,
    }
    await db.platform_billing_profile.insert_one(profile)
    return profile
