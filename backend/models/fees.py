from pydantic import BaseModel, Field
from typing import Optional


class FeeConfig(BaseModel):
    """
    Fee inputs for one order, all in minor units.

    A null field contributes nothing: no percentage, no flat part, no cap.
    """
    percentage_bps: Optional[int] = Field(default=None, ge=0)
    flat_paise: Optional[int] = Field(default=None, ge=0)
    max_cap_paise: Optional[int] = Field(default=None, ge=0)


class EffectiveFeeConfig(BaseModel):
    percentage_bps: int
    flat_paise: int
    max_cap_paise: Optional[int] = None
    payout_frequency: str

    package_id: Optional[str] = None
    package_name: Optional[str] = None

    def as_fee_config(self) -> FeeConfig:
        return FeeConfig(
            percentage_bps=self.percentage_bps,
            flat_paise=self.flat_paise,
            max_cap_paise=self.max_cap_paise,
        )
