"""Binary matching engine - pairs left against right and tracks carry-forward"""

from datetime import datetime
from typing import Optional
from matching_income.domain.models import CarryForwardLeg, LegBalance, LegType, MatchOutcome
from matching_income.domain.leg_balance import consume, get_available_balance


def refresh_carry_forward(balance: LegBalance) -> LegBalance:
    """
    Tag whichever leg still holds available balance as the carry-forward leg.

    Carry-forward is not a separate pool: it is simply the unconsumed
    remainder sitting in that leg's available balance.
    """
    left = balance.left.available_balance_paise
    right = balance.right.available_balance_paise

    if left > right:
        balance.carry_forward_leg = CarryForwardLeg.LEFT
        balance.carry_forward_paise = left - right
    elif right > left:
        balance.carry_forward_leg = CarryForwardLeg.RIGHT
        balance.carry_forward_paise = right - left
    else:
        balance.carry_forward_leg = CarryForwardLeg.NONE
        balance.carry_forward_paise = 0

    return balance


def run_matching_pass(balance: LegBalance, now: Optional[datetime] = None) -> Optional[MatchOutcome]:
    """
    Pair the member's available left and right balances.

    Algorithm:
    1. matched = min(left available, right available)
    2. matched > 0: consume it from both legs, bump total_matched/matching_count
    3. the stronger leg keeps its residual as carry-forward

    Returns None when either leg is empty (no match; the other leg just
    accumulates). The caller turns a MatchOutcome into a matching_bonus income.

    Example:
        left 2,00,000 / right 1,50,000 → matched 1,50,000, left carries 50,000
    """
    left_before = get_available_balance(balance, LegType.LEFT)
    right_before = get_available_balance(balance, LegType.RIGHT)
    matched = min(left_before, right_before)

    if matched <= 0:
        refresh_carry_forward(balance)
        return None

    assert matched <= min(left_before, right_before)

    consume(balance, LegType.LEFT, matched)
    consume(balance, LegType.RIGHT, matched)
    balance.total_matched_paise += matched
    balance.matching_count += 1
    if now is not None:
        balance.last_matched_at = now

    refresh_carry_forward(balance)

    # Smaller leg is always fully consumed
    assert min(balance.left.available_balance_paise, balance.right.available_balance_paise) == 0

    return MatchOutcome(
        matched_paise=matched,
        left_before_paise=left_before,
        right_before_paise=right_before,
        carry_forward_leg=balance.carry_forward_leg,
        carry_forward_paise=balance.carry_forward_paise,
    )
