"""Unit tests for commission calculation"""

import pytest
from decimal import Decimal
from matching_income.domain.commission import calculate_matching_commission, calculate_personal_commission
from matching_income.domain.exceptions import InvalidAmountError


def test_personal_commission_five_percent():
    """₹5,00,000 personal purchase earns ₹25,000"""
    assert calculate_personal_commission(50_000_000) == 2_500_000


def test_matching_commission_on_balanced_amount():
    """₹1,50,000 balanced earns ₹7,500"""
    assert calculate_matching_commission(15_000_000) == 750_000


def test_commission_rounds_half_up():
    """5% of 1,010 paise is 50.5 paise → 51"""
    assert calculate_matching_commission(1_010) == 51
    assert calculate_personal_commission(1_009) == 50  # 50.45 → 50


def test_commission_custom_percentage():
    assert calculate_personal_commission(1_000_000, Decimal("7.5")) == 75_000
    assert calculate_matching_commission(1_000_000, "10") == 100_000


def test_commission_zero_amount():
    assert calculate_matching_commission(0) == 0


def test_commission_rejects_negative_amount():
    with pytest.raises(InvalidAmountError):
        calculate_personal_commission(-1)


def test_commission_rejects_fractional_amount():
    """Amounts are whole paise only"""
    with pytest.raises(InvalidAmountError):
        calculate_matching_commission(10.5)
    with pytest.raises(InvalidAmountError):
        calculate_matching_commission(True)


def test_commission_rejects_out_of_range_percentage():
    with pytest.raises(InvalidAmountError):
        calculate_personal_commission(1_000, Decimal("101"))
    with pytest.raises(InvalidAmountError):
        calculate_personal_commission(1_000, Decimal("-1"))
