"""Commission calculation - pure functions over paise amounts"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Union
from matching_income.domain.exceptions import InvalidAmountError

DEFAULT_COMMISSION_PERCENTAGE = Decimal("5")

Percentage = Union[Decimal, int, str]


def _commission(amount_paise: int, percentage: Percentage) -> int:
    if isinstance(amount_paise, bool) or not isinstance(amount_paise, int):
        raise InvalidAmountError(f"Amount must be a whole number of paise, got {amount_paise!r}")
    if amount_paise < 0:
        raise InvalidAmountError(f"Amount cannot be negative: {amount_paise}")

    pct = Decimal(str(percentage))
    if pct < 0 or pct > 100:
        raise InvalidAmountError(f"Commission percentage must be within 0-100, got {pct}")

    raw = Decimal(amount_paise) * pct / Decimal(100)
    return int(raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_personal_commission(
    sale_amount_paise: int,
    percentage: Percentage = DEFAULT_COMMISSION_PERCENTAGE,
) -> int:
    """
    Commission on a member's own purchase.

    Example:
        ₹5,00,000 sale at 5% → ₹25,000
        50_000_000 paise → 2_500_000 paise
    """
    return _commission(sale_amount_paise, percentage)


def calculate_matching_commission(
    balanced_amount_paise: int,
    percentage: Percentage = DEFAULT_COMMISSION_PERCENTAGE,
) -> int:
    """
    Commission on the balanced (matched) amount, never on either leg's full sales.

    Rounds half-up to the whole paisa: 5% of 1_010 paise = 50.5 → 51 paise.
    """
    return _commission(balanced_amount_paise, percentage)
