"""Leg balance tracking - totals, available balances and FIFO consumption of open sales"""

from typing import Iterable, List
from matching_income.domain.models import Allocation, LegBalance, LegType, Sale
from matching_income.domain.exceptions import InvalidAmountError, InsufficientBalanceError


def record_sale(balance: LegBalance, leg_type: LegType, amount_paise: int) -> LegBalance:
    """
    Add a qualifying sale to one of the member's legs.

    Personal sales leave the legs untouched; their commission is produced by
    the ingest instead.
    """
    if amount_paise <= 0:
        raise InvalidAmountError(f"Sale amount must be positive, got {amount_paise}")

    if leg_type == LegType.PERSONAL:
        return balance

    leg = balance.leg(leg_type)
    leg.total_sales_paise += amount_paise
    leg.available_balance_paise += amount_paise
    leg.sale_count += 1
    return balance


def get_available_balance(balance: LegBalance, leg_type: LegType) -> int:
    return balance.leg(leg_type).available_balance_paise


def consume(balance: LegBalance, leg_type: LegType, amount_paise: int) -> LegBalance:
    """Remove `amount_paise` from a leg's available balance"""
    if amount_paise < 0:
        raise InvalidAmountError(f"Cannot consume a negative amount: {amount_paise}")

    leg = balance.leg(leg_type)
    if amount_paise > leg.available_balance_paise:
        raise InsufficientBalanceError(
            f"{balance.member_id} {leg_type.value} leg has {leg.available_balance_paise} paise available, "
            f"cannot consume {amount_paise}"
        )
    leg.available_balance_paise -= amount_paise
    return balance


def allocate_fifo(open_sales: Iterable[Sale], amount_paise: int) -> List[Allocation]:
    """
    Spread a consumed amount over a leg's open sales, oldest first.

    Decrements each sale's unmatched_paise. Sales are ordered by sale_date; the
    input order breaks ties, so callers should pass them in insertion order.
    """
    ordered = sorted(open_sales, key=lambda s: s.sale_date)
    remaining = amount_paise
    allocations = []

    for sale in ordered:
        if remaining == 0:
            break
        if sale.unmatched_paise <= 0:
            continue
        take = min(sale.unmatched_paise, remaining)
        sale.unmatched_paise -= take
        remaining -= take
        allocations.append(Allocation(sale=sale, amount_paise=take))

    if remaining > 0:
        raise InsufficientBalanceError(
            f"Open sales are {remaining} paise short of the consumed amount {amount_paise}"
        )

    return allocations
