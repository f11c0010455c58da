from datetime import datetime

from bson import ObjectId
from fastapi import HTTPException

from config.constants import (
    DEFAULT_FEE_FLAT_PAISE,
    DEFAULT_FEE_MAX_CAP_PAISE,
    DEFAULT_FEE_PERCENTAGE_BPS,
    DEFAULT_PAYOUT_FREQUENCY,
    PLATFORM_SETTINGS_ID,
)
from models.fees import EffectiveFeeConfig
from models.pricing import PackageStatus
from utils.guards import parse_object_id

# Resolved field -> merchant override / package / platform default keys
FEE_FIELDS = {
    "percentage_bps": ("fee_percentage_bps", "variable_fee_bps", "default_fee_percentage_bps"),
    "flat_paise": ("fee_flat_paise", "fixed_fee_paise", "default_fee_flat_paise"),
    "max_cap_paise": ("fee_max_cap_paise", "max_cap_paise", "default_fee_max_cap_paise"),
    "payout_frequency": ("payout_frequency_override", "payout_frequency", "default_payout_frequency"),
}

PLATFORM_FALLBACKS = {
    "percentage_bps": DEFAULT_FEE_PERCENTAGE_BPS,
    "flat_paise": DEFAULT_FEE_FLAT_PAISE,
    "max_cap_paise": DEFAULT_FEE_MAX_CAP_PAISE,
    "payout_frequency": DEFAULT_PAYOUT_FREQUENCY,
}


# ==============================
# Pure merge (merchant > package > platform)
# ==============================

def merge_fee_config(
    merchant_override: dict | None,
    package_config: dict | None,
    platform_default: dict | None,
) -> dict:
    """
    Resolve every fee field independently: first non-null value wins.
    Inputs are the raw merchant / package / platform-settings documents.
    """
    tiers = (merchant_override or {}, package_config or {}, platform_default or {})
    resolved = {}
    for field, keys in FEE_FIELDS.items():
        value = None
        for tier, key in zip(tiers, keys):
            if tier.get(key) is not None:
                value = tier[key]
                break
        resolved[field] = value if value is not None else PLATFORM_FALLBACKS[field]
    return resolved


def is_package_eligible(package: dict | None) -> bool:
    if not package:
        return False
    return (
        package.get("deleted_at") is None
        and package.get("status") == PackageStatus.PUBLISHED.value
        and bool(package.get("is_active"))
    )


# ==============================
# Effective config (read per call, never cached)
# ==============================

async def get_platform_settings(db) -> dict:
    return await db.platform_settings.find_one({"_id": PLATFORM_SETTINGS_ID}) or {}


async def get_effective_fee_config(db, merchant_id) -> EffectiveFeeConfig:
    merchant_oid = parse_object_id(merchant_id, "merchant_id")

    merchant = await db.merchants.find_one({"_id": merchant_oid})
    if not merchant:
        raise HTTPException(404, "Merchant not found")

    package = None
    if merchant.get("pricing_package_id"):
        package = await db.pricing_packages.find_one({"_id": merchant["pricing_package_id"]})
        if not is_package_eligible(package):
            package = None

    settings = await get_platform_settings(db)
    resolved = merge_fee_config(merchant, package, settings)

    return EffectiveFeeConfig(
        **resolved,
        package_id=str(package["_id"]) if package else None,
        package_name=package.get("name") if package else None,
    )


# ==============================
# Package lifecycle (admin)
# ==============================

async def _load_package(db, package_id) -> dict:
    package = await db.pricing_packages.find_one({"_id": parse_object_id(package_id, "package_id")})
    if not package or package.get("deleted_at"):
        raise HTTPException(404, "Pricing package not found")
    return package


async def create_pricing_package(db, data: dict) -> dict:
    now = datetime.utcnow()
    package = {
        "_id": ObjectId(),
        **data,
        "status": PackageStatus.DRAFT.value,
        "deleted_at": None,
        "created_at": now,
        "updated_at": now,
    }
    await db.pricing_packages.insert_one(package)
    return package


async def update_pricing_package(db, package_id, changes: dict) -> dict:
    package = await _load_package(db, package_id)
    if package["status"] != PackageStatus.DRAFT.value:
        raise HTTPException(
            400,
            f"Cannot edit {package['status']} package. Only DRAFT packages can be edited",
        )

    changes = {k: v for k, v in changes.items() if v is not None}
    changes["updated_at"] = datetime.utcnow()
    await db.pricing_packages.update_one(
        {"_id": package["_id"], "status": PackageStatus.DRAFT.value},
        {"$set": changes},
    )
    return {**package, **changes}


async def _move_package(db, package_id, from_status: PackageStatus, to_status: PackageStatus, extra=None) -> dict:
    package = await _load_package(db, package_id)
    if package["status"] != from_status.value:
        raise HTTPException(
            400,
            f"Cannot move {package['status']} package to {to_status.value}",
        )

    fields = {"status": to_status.value, "updated_at": datetime.utcnow(), **(extra or {})}
    res = await db.pricing_packages.update_one(
        {"_id": package["_id"], "status": from_status.value},
        {"$set": fields},
    )
    if res.modified_count != 1:
        raise HTTPException(409, "Pricing package changed concurrently")
    return {**package, **fields}


async def publish_pricing_package(db, package_id) -> dict:
    return await _move_package(db, package_id, PackageStatus.DRAFT, PackageStatus.PUBLISHED)


async def archive_pricing_package(db, package_id) -> dict:
    return await _move_package(
        db,
        package_id,
        PackageStatus.PUBLISHED,
        PackageStatus.ARCHIVED,
        extra={"is_active": False},
    )


async def soft_delete_pricing_package(db, package_id) -> None:
    package = await _load_package(db, package_id)
    await db.pricing_packages.update_one(
        {"_id": package["_id"]},
        {"$set": {"deleted_at": datetime.utcnow(), "is_active": False}},
    )


async def assign_pricing_package(db, merchant_id, package_id) -> dict:
    merchant_oid = parse_object_id(merchant_id, "merchant_id")
    package = await _load_package(db, package_id)
    if not is_package_eligible(package):
        raise HTTPException(400, "Only PUBLISHED, active packages can be assigned to merchants")

    res = await db.merchants.update_one(
        {"_id": merchant_oid},
        {"$set": {"pricing_package_id": package["_id"], "updated_at": datetime.utcnow()}},
    )
    if res.matched_count == 0:
        raise HTTPException(404, "Merchant not found")
    return package


async def set_merchant_fee_overrides(db, merchant_id, overrides: dict) -> None:
    """
    Overwrite all override fields; a None value clears the override.
    """
    merchant_oid = parse_object_id(merchant_id, "merchant_id")
    for key in ("fee_percentage_bps", "fee_flat_paise", "fee_max_cap_paise"):
        value = overrides.get(key)
        if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value < 0):
            raise HTTPException(400, f"{key} must be a non-negative integer")

    fields = {
        "fee_percentage_bps": overrides.get("fee_percentage_bps"),
        "fee_flat_paise": overrides.get("fee_flat_paise"),
        "fee_max_cap_paise": overrides.get("fee_max_cap_paise"),
        "payout_frequency_override": overrides.get("payout_frequency_override"),
        "updated_at": datetime.utcnow(),
    }
    res = await db.merchants.update_one({"_id": merchant_oid}, {"$set": fields})
    if res.matched_count == 0:
        raise HTTPException(404, "Merchant not found")
