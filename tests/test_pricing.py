
import pytest
from bson import ObjectId
from fastapi import HTTPException

from config.constants import PLATFORM_SETTINGS_ID
from utils.fees import calculate_platform_fee
from utils.pricing import (
    archive_pricing_package,
    assign_pricing_package,
    create_pricing_package,
    get_effective_fee_config,
    merge_fee_config,
    publish_pricing_package,
    set_merchant_fee_overrides,
    soft_delete_pricing_package,
    update_pricing_package,
)

pytestmark = pytest.mark.anyio


PACKAGE = {
    "name": "Growth",
    "description": "For scaling stores",
    "fixed_fee_paise": 300,
    "variable_fee_bps": 150,
    "max_cap_paise": None,
    "payout_frequency": "DAILY",
    "is_active": True,
}


def test_merge_is_per_field():
    merged = merge_fee_config(
        {"fee_percentage_bps": 100, "fee_flat_paise": None},
        {"variable_fee_bps": 150, "fixed_fee_paise": 300, "max_cap_paise": None},
        {"default_fee_max_cap_paise": 4000, "default_payout_frequency": "WEEKLY"},
    )
    assert merged == {
        "percentage_bps": 100,
        "flat_paise": 300,
        "max_cap_paise": 4000,
        "payout_frequency": "WEEKLY",
    }


def test_merge_falls_back_to_constants():
    assert merge_fee_config(None, None, None) == {
        "percentage_bps": 200,
        "flat_paise": 500,
        "max_cap_paise": 2500,
        "payout_frequency": "WEEKLY",
    }


async def test_no_package_no_override_uses_platform_defaults(db, make_merchant):
    merchant = await make_merchant()
    effective = await get_effective_fee_config(db, merchant["_id"])
    assert effective.percentage_bps == 200
    assert effective.flat_paise == 500
    assert effective.max_cap_paise == 2500
    assert effective.package_name is None


async def test_platform_settings_singleton_is_read_every_call(db, make_merchant):
    merchant = await make_merchant()
    assert (await get_effective_fee_config(db, merchant["_id"])).flat_paise == 500

    await db.platform_settings.insert_one({"_id": PLATFORM_SETTINGS_ID, "default_fee_flat_paise": 900})
    assert (await get_effective_fee_config(db, merchant["_id"])).flat_paise == 900


async def test_unknown_merchant_is_an_error(db):
    with pytest.raises(HTTPException) as exc:
        await get_effective_fee_config(db, ObjectId())
    assert exc.value.status_code == 404


async def test_published_package_applies_and_override_wins(db, make_merchant):
    merchant = await make_merchant()
    package = await create_pricing_package(db, dict(PACKAGE))
    await publish_pricing_package(db, package["_id"])
    await assign_pricing_package(db, merchant["_id"], package["_id"])

    effective = await get_effective_fee_config(db, merchant["_id"])
    assert effective.percentage_bps == 150
    assert effective.flat_paise == 300
    assert effective.max_cap_paise == 2500
    assert effective.payout_frequency == "DAILY"
    assert effective.package_name == "Growth"

    await set_merchant_fee_overrides(db, merchant["_id"], {"fee_flat_paise": 0})
    effective = await get_effective_fee_config(db, merchant["_id"])
    assert effective.flat_paise == 0
    assert effective.percentage_bps == 150

    # 10000 * 1.5% + 0
    assert calculate_platform_fee(10000, effective.as_fee_config()) == 150


async def test_draft_package_cannot_be_assigned(db, make_merchant):
    merchant = await make_merchant()
    package = await create_pricing_package(db, dict(PACKAGE))
    with pytest.raises(HTTPException) as exc:
        await assign_pricing_package(db, merchant["_id"], package["_id"])
    assert exc.value.status_code == 400


@pytest.mark.parametrize("change", ["archive", "delete", "deactivate"])
async def test_ineligible_package_is_ignored(db, make_merchant, change):
    merchant = await make_merchant()
    package = await create_pricing_package(db, dict(PACKAGE))
    await publish_pricing_package(db, package["_id"])
    await assign_pricing_package(db, merchant["_id"], package["_id"])

    if change == "archive":
        await archive_pricing_package(db, package["_id"])
    elif change == "delete":
        await soft_delete_pricing_package(db, package["_id"])
    else:
        await db.pricing_packages.update_one({"_id": package["_id"]}, {"$set": {"is_active": False}})

    effective = await get_effective_fee_config(db, merchant["_id"])
    assert effective.package_id is None
    assert effective.flat_paise == 500


async def test_only_draft_packages_are_editable(db):
    package = await create_pricing_package(db, dict(PACKAGE))
    updated = await update_pricing_package(db, package["_id"], {"fixed_fee_paise": 100})
    assert updated["fixed_fee_paise"] == 100

    await publish_pricing_package(db, package["_id"])
    with pytest.raises(HTTPException) as exc:
        await update_pricing_package(db, package["_id"], {"fixed_fee_paise": 50})
    assert exc.value.status_code == 400


async def test_publish_twice_is_rejected(db):
    package = await create_pricing_package(db, dict(PACKAGE))
    await publish_pricing_package(db, package["_id"])
    with pytest.raises(HTTPException):
        await publish_pricing_package(db, package["_id"])


async def test_negative_override_is_rejected(db, make_merchant):
    merchant = await make_merchant()
    with pytest.raises(HTTPException) as exc:
        await set_merchant_fee_overrides(db, merchant["_id"], {"fee_flat_paise": -1})
    assert exc.value.status_code == 400
    merchant = await db.merchants.find_one({"_id": merchant["_id"]})
    assert merchant.get("fee_flat_paise") is None
