"""Income lifecycle - record creation and the pending → approved → credited → paid state machine"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Union
from matching_income.domain.models import (
    Allocation,
    DECIDED_STATUSES,
    IncomeRecord,
    IncomeStatus,
    LegType,
    MatchingBonusIncome,
    MatchOutcome,
    PairedSale,
    PaymentDetails,
    PersonalSaleIncome,
    Sale,
)
from matching_income.domain.commission import calculate_matching_commission, calculate_personal_commission
from matching_income.domain.exceptions import (
    AlreadyDecidedError,
    InvalidPaymentError,
    InvalidStatusTransitionError,
    MissingReasonError,
    NotEligibleError,
)
from matching_income.utils.date_utils import add_months

ELIGIBILITY_MONTHS = 3


def eligible_for_approval_date(sale_date: datetime, months: int = ELIGIBILITY_MONTHS) -> datetime:
    return add_months(sale_date, months)


def derived_status(record: IncomeRecord, now: datetime) -> IncomeStatus:
    """Status as exposed to clients: pending turns eligible once the lock expires"""
    if record.status in (IncomeStatus.PENDING, IncomeStatus.ELIGIBLE):
        if now >= record.eligible_for_approval_date:
            return IncomeStatus.ELIGIBLE
        return IncomeStatus.PENDING
    return record.status


def new_personal_income(
    sale: Sale,
    percentage: Decimal,
    months: int = ELIGIBILITY_MONTHS,
) -> PersonalSaleIncome:
    """Pending personal_sale income for the buyer/seller of a self-purchase"""
    return PersonalSaleIncome(
        user_id=sale.seller_id,
        sale_id=sale.sale_id,
        sale_amount_paise=sale.sale_amount_paise,
        income_amount_paise=calculate_personal_commission(sale.sale_amount_paise, percentage),
        commission_percentage=Decimal(str(percentage)),
        sale_date=sale.sale_date,
        eligible_for_approval_date=eligible_for_approval_date(sale.sale_date, months),
        leg_type=LegType.PERSONAL,
        notes=f"Personal purchase of plot {sale.plot_id}",
    )


def new_matching_income(
    member_id: str,
    outcome: MatchOutcome,
    left_allocations: List[Allocation],
    right_allocations: List[Allocation],
    percentage: Decimal,
    months: int = ELIGIBILITY_MONTHS,
    trigger: Optional[Sale] = None,
) -> MatchingBonusIncome:
    """
    Pending matching_bonus income for one matching pass.

    The trigger sale is the sale whose arrival caused the match, or for a
    sweep the most recent sale consumed on either leg; the lock runs from its
    date. paired_with is the oldest sale consumed on the opposite leg.
    """
    if trigger is None:
        consumed = left_allocations + right_allocations
        trigger = max(consumed, key=lambda a: a.sale.sale_date).sale
    opposite = right_allocations if trigger.leg_type == LegType.LEFT else left_allocations
    paired = opposite[0].sale

    return MatchingBonusIncome(
        user_id=member_id,
        sale_id=trigger.sale_id,
        sale_amount_paise=trigger.sale_amount_paise,
        income_amount_paise=calculate_matching_commission(outcome.matched_paise, percentage),
        commission_percentage=Decimal(str(percentage)),
        sale_date=trigger.sale_date,
        eligible_for_approval_date=eligible_for_approval_date(trigger.sale_date, months),
        leg_type=trigger.leg_type,
        balanced_amount_paise=outcome.matched_paise,
        paired_with=PairedSale(
            sale_id=paired.sale_id,
            leg_type=paired.leg_type,
            buyer_id=paired.buyer_id,
            plot_id=paired.plot_id,
            amount_paise=paired.sale_amount_paise,
            sale_date=paired.sale_date,
        ),
        notes=(
            f"Matched {outcome.matched_paise} paise "
            f"(left {outcome.left_before_paise}, right {outcome.right_before_paise})"
        ),
    )


def _ensure_undecided(record: IncomeRecord) -> None:
    if record.status in DECIDED_STATUSES:
        raise AlreadyDecidedError(f"Income {record.record_id} is already {record.status.value}")


def _ensure_eligible(record: IncomeRecord, now: datetime) -> None:
    if now < record.eligible_for_approval_date:
        raise NotEligibleError(
            f"Income {record.record_id} is locked until {record.eligible_for_approval_date.isoformat()}"
        )


def approve(record: IncomeRecord, admin_id: str, now: datetime, notes: Optional[str] = None) -> IncomeRecord:
    """eligible → approved"""
    _ensure_undecided(record)
    _ensure_eligible(record, now)

    record.status = IncomeStatus.APPROVED
    record.approved_by = admin_id
    record.approved_at = now
    if notes:
        record.admin_notes = notes
    return record


def reject(record: IncomeRecord, admin_id: str, reason: Optional[str], now: datetime) -> IncomeRecord:
    """eligible → rejected (terminal)"""
    if reason is None or not reason.strip():
        raise MissingReasonError("A reason is required to reject an income")
    _ensure_undecided(record)
    _ensure_eligible(record, now)

    record.status = IncomeStatus.REJECTED
    record.rejected_by = admin_id
    record.rejected_at = now
    record.rejection_reason = reason.strip()
    return record


def update_status(
    record: IncomeRecord,
    target: Union[IncomeStatus, str],
    now: datetime,
    payment: Optional[PaymentDetails] = None,
) -> IncomeRecord:
    """
    Post-approval transitions driven by finance.

    - approved → credited
    - credited → paid (requires payment with paid_amount > 0)
    """
    try:
        target = IncomeStatus(target)
    except ValueError:
        raise InvalidStatusTransitionError(f"Unknown status: {target}") from None

    if target == IncomeStatus.CREDITED:
        if record.status != IncomeStatus.APPROVED:
            raise InvalidStatusTransitionError(
                f"Only approved income can be credited; income {record.record_id} is {record.status.value}"
            )
        record.status = IncomeStatus.CREDITED
        record.credited_at = now
        return record

    if target == IncomeStatus.PAID:
        if record.status != IncomeStatus.CREDITED:
            raise InvalidStatusTransitionError(
                f"Only credited income can be paid; income {record.record_id} is {record.status.value}"
            )
        if payment is None or payment.paid_amount_paise <= 0:
            raise InvalidPaymentError("Paid amount must be greater than zero")
        record.status = IncomeStatus.PAID
        record.payment = payment
        return record

    raise InvalidStatusTransitionError(
        f"Status {target.value} cannot be set directly; use approve/reject for decisions"
    )
