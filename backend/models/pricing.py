from pydantic import BaseModel, Field
from typing import Literal, Optional
from enum import Enum


class PackageStatus(str, Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    ARCHIVED = "ARCHIVED"


PayoutFrequency = Literal["WEEKLY", "DAILY", "MANUAL"]


class PricingPackageCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None

    fixed_fee_paise: int = Field(..., ge=0)
    variable_fee_bps: int = Field(..., ge=0, le=10000)
    max_cap_paise: Optional[int] = Field(default=None, ge=0)

    payout_frequency: PayoutFrequency = "WEEKLY"
    is_active: bool = True


class PricingPackageUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None

    fixed_fee_paise: Optional[int] = Field(default=None, ge=0)
    variable_fee_bps: Optional[int] = Field(default=None, ge=0, le=10000)
    max_cap_paise: Optional[int] = Field(default=None, ge=0)

    payout_frequency: Optional[PayoutFrequency] = None
    is_active: Optional[bool] = None


class MerchantFeeOverride(BaseModel):
    fee_percentage_bps: Optional[int] = Field(default=None, ge=0, le=10000)
    fee_flat_paise: Optional[int] = Field(default=None, ge=0)
    fee_max_cap_paise: Optional[int] = Field(default=None, ge=0)
    payout_frequency_override: Optional[PayoutFrequency] = None


class AssignPackage(BaseModel):
    package_id: str
