import math
from decimal import Decimal

from config.constants import (
    BPS_DENOMINATOR,
    DEFAULT_FEE_FLAT_PAISE,
    DEFAULT_FEE_MAX_CAP_PAISE,
    DEFAULT_FEE_PERCENTAGE_BPS,
)
from models.fees import FeeConfig

DEFAULT_FEE_CONFIG = FeeConfig(
    percentage_bps=DEFAULT_FEE_PERCENTAGE_BPS,
    flat_paise=DEFAULT_FEE_FLAT_PAISE,
    max_cap_paise=DEFAULT_FEE_MAX_CAP_PAISE,
)


def _as_minor_units(value) -> int:
    """
    Normalize an amount to a non-negative integer.
    Negative, non-finite or non-numeric input becomes 0.
    """
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(value, 0)
    if isinstance(value, (float, Decimal)):
        if value != value or not math.isfinite(value):
            return 0
        return max(int(value), 0)
    return 0


def calculate_platform_fee(gross_amount_paise, config: FeeConfig | None = None) -> int:
    """
    Platform fee for one order, in paise.

    fee = floor(gross * bps / 10000) + flat, capped at max_cap,
    never above the gross amount and never negative.
    """
    gross = _as_minor_units(gross_amount_paise)
    if config is None:
        config = DEFAULT_FEE_CONFIG

    percentage_bps = max(config.percentage_bps or 0, 0)
    flat_paise = max(config.flat_paise or 0, 0)

    fee = (gross * percentage_bps) // BPS_DENOMINATOR + flat_paise

    if config.max_cap_paise is not None:
        fee = min(fee, max(config.max_cap_paise, 0))

    return max(min(fee, gross), 0)


def calculate_net_payable(gross_amount_paise, config: FeeConfig | None = None) -> int:
    gross = _as_minor_units(gross_amount_paise)
    return max(0, gross - calculate_platform_fee(gross, config))
