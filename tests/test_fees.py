import math
from decimal import Decimal

import pytest

from models.fees import FeeConfig
from utils.fees import calculate_net_payable, calculate_platform_fee


@pytest.mark.parametrize(
    "gross, expected_fee",
    [
        (10000, 700),      # 2% + 500
        (200000, 2500),    # 4500 capped at 2500
        (100, 100),        # never above gross
        (10050, 701),      # floor(201.0) + 500
        (0, 0),
    ],
)
def test_default_pricing(gross, expected_fee):
    assert calculate_platform_fee(gross) == expected_fee
    assert calculate_net_payable(gross) == gross - expected_fee


def test_percentage_part_is_floored():
    config = FeeConfig(percentage_bps=250, flat_paise=0)
    # 199 * 250 / 10000 = 4.975
    assert calculate_platform_fee(199, config) == 4


@pytest.mark.parametrize("gross", [-1, -10000, math.nan, math.inf, -math.inf, "10000", None, True])
def test_invalid_gross_charges_nothing(gross):
    assert calculate_platform_fee(gross) == 0
    assert calculate_net_payable(gross) == 0


def test_decimal_gross_is_accepted():
    assert calculate_platform_fee(Decimal("10000")) == 700


def test_null_fields_contribute_nothing():
    assert calculate_platform_fee(10000, FeeConfig()) == 0
    assert calculate_platform_fee(10000, FeeConfig(flat_paise=300)) == 300


def test_null_cap_means_uncapped():
    config = FeeConfig(percentage_bps=1000, flat_paise=0, max_cap_paise=None)
    assert calculate_platform_fee(1_000_000, config) == 100_000


def test_zero_cap_means_free():
    config = FeeConfig(percentage_bps=200, flat_paise=500, max_cap_paise=0)
    assert calculate_platform_fee(10000, config) == 0
    assert calculate_net_payable(10000, config) == 10000


def test_net_never_negative_and_fee_never_above_gross():
    config = FeeConfig(percentage_bps=10000, flat_paise=10_000)
    for gross in (1, 50, 999, 12345):
        fee = calculate_platform_fee(gross, config)
        assert 0 <= fee <= gross
        assert calculate_net_payable(gross, config) == gross - fee >= 0
