import asyncio
from datetime import date, datetime

import pytest
from bson import ObjectId
from fastapi import HTTPException

from config.constants import PLATFORM_BILLING_PROFILE_ID
from utils.dates import financial_year
from utils.invoice_numbers import (
    allocate_invoice_number_for_order,
    allocate_merchant_invoice_number,
    allocate_platform_invoice_number,
    format_invoice_number,
    get_merchant_invoice_settings,
    update_merchant_invoice_settings,
)

pytestmark = pytest.mark.anyio

# 10:00 IST on 15 Jun 2025
JUNE_2025 = datetime(2025, 6, 15, 4, 30)


@pytest.mark.parametrize(
    "on, fy",
    [
        (date(2025, 4, 1), "2025-26"),
        (date(2025, 3, 31), "2024-25"),
        (date(2099, 12, 31), "2099-00"),
    ],
)
def test_financial_year(on, fy):
    assert financial_year(on) == fy


def test_format_replaces_every_token():
    number = format_invoice_number(
        "{PREFIX}/{FY}/{YYYY}/{NNNNN}",
        prefix="SMK",
        number=42,
        padding=5,
        on=date(2025, 6, 15),
    )
    assert number == "SMK/2025-26/2025/00042"


def test_format_without_counter_token_falls_back():
    number = format_invoice_number("{PREFIX}-FIXED", prefix="SMK", number=7, padding=5, on=date(2025, 6, 15))
    assert number == "SMK-2025-26-00007"


async def test_platform_numbers_start_at_one_and_increase(db):
    first = await allocate_platform_invoice_number(db, now=JUNE_2025)
    second = await allocate_platform_invoice_number(db, now=JUNE_2025)
    assert first == "SMK-2025-26-00001"
    assert second == "SMK-2025-26-00002"

    profile = await db.platform_billing_profile.find_one({"_id": PLATFORM_BILLING_PROFILE_ID})
    assert profile["invoice_next_number"] == 3


async def test_platform_numbers_use_stored_series(db, billing_profile):
    await db.platform_billing_profile.update_one(
        {"_id": PLATFORM_BILLING_PROFILE_ID},
        {"$set": {"invoice_prefix": "INV", "invoice_padding": 3, "invoice_next_number": 41,
                  "series_format": "{PREFIX}{NNNNN}"}},
    )
    assert await allocate_platform_invoice_number(db, now=JUNE_2025) == "INV041"


async def test_cleared_platform_counter_restarts_at_one(db, billing_profile):
    await db.platform_billing_profile.update_one(
        {"_id": PLATFORM_BILLING_PROFILE_ID},
        {"$set": {"invoice_next_number": 0}},
    )
    assert await allocate_platform_invoice_number(db, now=JUNE_2025) == "SMK-2025-26-00001"


def _counter(invoice_number: str) -> int:
    return int(invoice_number.rsplit("-", 1)[-1])


async def test_concurrent_platform_allocations_have_no_gaps(db, billing_profile):
    numbers = await asyncio.gather(*[allocate_platform_invoice_number(db, now=JUNE_2025) for _ in range(20)])
    assert sorted(_counter(n) for n in numbers) == list(range(1, 21))

    profile = await db.platform_billing_profile.find_one({"_id": PLATFORM_BILLING_PROFILE_ID})
    assert profile["invoice_next_number"] == 21


async def test_concurrent_merchant_allocations_have_no_gaps(db):
    merchant_id = ObjectId()
    numbers = await asyncio.gather(*[allocate_merchant_invoice_number(db, merchant_id, now=JUNE_2025) for _ in range(20)])
    assert sorted(_counter(n) for n in numbers) == list(range(1, 21))
    assert all(n.startswith("MRC-2025-") for n in numbers)


async def test_concurrent_allocations_across_year_reset(db):
    merchant_id = ObjectId()
    await db.store_settings.insert_one({
        "merchant_id": merchant_id,
        "invoice_prefix": "MRC",
        "invoice_next_number": 57,
        "invoice_padding": 5,
        "invoice_series_format": "{PREFIX}-{YYYY}-{NNNNN}",
        "invoice_year": 2025,
    })

    new_year = datetime(2026, 1, 5, 6, 0)
    numbers = await asyncio.gather(*[allocate_merchant_invoice_number(db, merchant_id, now=new_year) for _ in range(15)])
    assert sorted(_counter(n) for n in numbers) == list(range(1, 16))
    assert all(n.startswith("MRC-2026-") for n in numbers)

    settings = await db.store_settings.find_one({"merchant_id": merchant_id})
    assert settings["invoice_year"] == 2026
    assert settings["invoice_next_number"] == 16


async def test_merchant_series_is_per_merchant(db):
    a, b = ObjectId(), ObjectId()
    assert await allocate_merchant_invoice_number(db, a, now=JUNE_2025) == "MRC-2025-00001"
    assert await allocate_merchant_invoice_number(db, a, now=JUNE_2025) == "MRC-2025-00002"
    assert await allocate_merchant_invoice_number(db, b, now=JUNE_2025) == "MRC-2025-00001"


async def test_merchant_series_resets_with_calendar_year(db):
    merchant_id = ObjectId()
    for _ in range(3):
        await allocate_merchant_invoice_number(db, merchant_id, now=datetime(2025, 12, 31, 12, 0))

    # 31 Dec 2025 20:00 UTC is already 1 Jan 2026 in India
    new_year = datetime(2025, 12, 31, 20, 0)
    assert await allocate_merchant_invoice_number(db, merchant_id, now=new_year) == "MRC-2026-00001"
    assert await allocate_merchant_invoice_number(db, merchant_id, now=new_year) == "MRC-2026-00002"


async def test_order_keeps_its_first_invoice_number(db):
    order_id, merchant_id = ObjectId(), ObjectId()
    await db.orders.insert_one({
        "_id": order_id,
        "merchant_id": merchant_id,
        "idempotency_key": "order-1",
        "invoice_number": None,
    })

    first = await allocate_invoice_number_for_order(db, order_id, now=JUNE_2025)
    again = await allocate_invoice_number_for_order(db, order_id, now=JUNE_2025)
    assert first["invoice_number"] == "MRC-2025-00001"
    assert again["invoice_number"] == first["invoice_number"]

    settings = await db.store_settings.find_one({"merchant_id": merchant_id})
    assert settings["invoice_next_number"] == 2


async def test_order_invoice_number_for_missing_order(db):
    with pytest.raises(HTTPException) as exc:
        await allocate_invoice_number_for_order(db, ObjectId())
    assert exc.value.status_code == 404


async def test_invoice_settings_defaults_for_new_merchant(db):
    settings = await get_merchant_invoice_settings(db, ObjectId(), now=JUNE_2025)
    assert settings["invoice_prefix"] == "MRC"
    assert settings["invoice_padding"] == 5
    assert settings["invoice_next_number"] == 1
    assert settings["next_invoice_preview"] == "MRC-2025-00001"


async def test_updated_series_is_used_by_allocation(db):
    merchant_id = ObjectId()
    settings = await update_merchant_invoice_settings(
        db,
        merchant_id,
        {"invoice_prefix": " acme ", "invoice_padding": 3, "invoice_next_number": 120,
         "invoice_series_format": "{PREFIX}/{YYYY}/{NNNNN}"},
        now=JUNE_2025,
    )
    assert settings["invoice_prefix"] == "ACME"
    assert settings["next_invoice_preview"] == "ACME/2025/120"

    assert await allocate_merchant_invoice_number(db, merchant_id, now=JUNE_2025) == "ACME/2025/120"
    assert await allocate_merchant_invoice_number(db, merchant_id, now=JUNE_2025) == "ACME/2025/121"


async def test_series_format_must_keep_counter_token(db):
    with pytest.raises(HTTPException) as exc:
        await update_merchant_invoice_settings(db, ObjectId(), {"invoice_series_format": "{PREFIX}-{YYYY}"})
    assert exc.value.status_code == 400


async def test_preview_restarts_in_a_new_year(db):
    merchant_id = ObjectId()
    await update_merchant_invoice_settings(db, merchant_id, {"invoice_next_number": 40}, now=JUNE_2025)

    settings = await get_merchant_invoice_settings(db, merchant_id, now=datetime(2026, 2, 1, 6, 0))
    assert settings["next_invoice_preview"] == "MRC-2026-00001"
