"""Sale ingestion - leg assignment, balance update, matching and income emission"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session
from matching_income.domain.models import (
    IncomeRecord,
    IncomeRules,
    IncomeStatus,
    IngestResult,
    LegBalance,
    LegType,
    MatchingMode,
    Sale,
)
from matching_income.domain.exceptions import (
    DuplicateSaleError,
    InvalidAmountError,
    MemberNotFoundError,
)
from matching_income.domain.genealogy import determine_leg
from matching_income.domain.leg_balance import allocate_fifo, record_sale
from matching_income.domain.matching import refresh_carry_forward, run_matching_pass
from matching_income.domain.lifecycle import new_matching_income, new_personal_income
from matching_income.infrastructure.database.repositories import (
    AuditRepository,
    IncomeRepository,
    LegBalanceRepository,
    MemberRepository,
    SaleRepository,
)
from matching_income.infrastructure.observability.logging import log_matching_pass
from matching_income.infrastructure.observability.metrics import record_income_created, sale_ingest_counter
from matching_income.services.locks import MemberLocks

SYSTEM_ACTOR = "system"


@dataclass
class SweepResult:
    """Outcome of a matching sweep across members"""

    members_checked: int = 0
    matches: int = 0
    total_matched_paise: int = 0
    incomes: List[IncomeRecord] = field(default_factory=list)


def _emit(db: Session, income: IncomeRecord, now: datetime) -> IncomeRecord:
    """Persist a new pending income and its creation audit row"""
    income = IncomeRepository(db).add(income)
    AuditRepository(db).add(
        record_id=income.record_id,
        from_status=None,
        to_status=IncomeStatus.PENDING,
        actor_id=SYSTEM_ACTOR,
        occurred_at=now,
        notes=f"{income.income_type.value} for sale {income.sale_id}",
    )
    return income


def _match_member(
    db: Session,
    balance: LegBalance,
    rules: IncomeRules,
    now: datetime,
    trigger: Optional[Sale] = None,
) -> Optional[IncomeRecord]:
    """Run one matching pass and persist its consumption and bonus; caller holds the member lock"""
    outcome = run_matching_pass(balance, now)
    if outcome is None:
        return None

    sales = SaleRepository(db)
    left_allocations = allocate_fifo(sales.open_sales(balance.member_id, LegType.LEFT), outcome.matched_paise)
    right_allocations = allocate_fifo(sales.open_sales(balance.member_id, LegType.RIGHT), outcome.matched_paise)
    sales.save_unmatched([a.sale for a in left_allocations + right_allocations])

    income = new_matching_income(
        member_id=balance.member_id,
        outcome=outcome,
        left_allocations=left_allocations,
        right_allocations=right_allocations,
        percentage=rules.commission_percentage,
        months=rules.eligibility_months,
        trigger=trigger,
    )
    income = _emit(db, income, now)

    log_matching_pass(
        balance.member_id,
        outcome.matched_paise,
        outcome.carry_forward_leg.value,
        outcome.carry_forward_paise,
    )
    return income


def ingest_sale(
    db: Session,
    sale: Sale,
    rules: IncomeRules,
    locks: MemberLocks,
    now: datetime,
) -> IngestResult:
    """
    Record a qualifying sale and everything it triggers.

    Flow:
    1. Reject duplicates and unknown members
    2. Resolve the leg from the placement tree
    3. Personal sale: emit personal_sale income for the seller
    4. Leg sale: under the seller's lock, add it to the leg, run a matching
       pass (realtime mode) and emit any matching_bonus
    5. Commit everything in one transaction

    Raises:
        DuplicateSaleError, MemberNotFoundError, NotInDownlineError, InvalidAmountError
    """
    sales = SaleRepository(db)
    members = MemberRepository(db)
    balances = LegBalanceRepository(db)

    if sale.sale_amount_paise <= 0:
        raise InvalidAmountError(f"Sale amount must be positive, got {sale.sale_amount_paise}")
    if sales.exists(sale.sale_id):
        raise DuplicateSaleError(f"Sale {sale.sale_id} was already ingested")
    for member_id in (sale.buyer_id, sale.seller_id):
        if members.get(member_id) is None:
            raise MemberNotFoundError(f"Member {member_id} not found")

    sale.leg_type = determine_leg(sale.buyer_id, sale.seller_id, members.get)
    incomes: List[IncomeRecord] = []

    try:
        if sale.leg_type == LegType.PERSONAL:
            sale.unmatched_paise = 0
            sales.create(sale)
            income = new_personal_income(sale, rules.commission_percentage, rules.eligibility_months)
            incomes.append(_emit(db, income, now))
            db.commit()
            balance = balances.get(sale.seller_id)
        else:
            with locks.hold(sale.seller_id):
                row = balances.get_for_update(sale.seller_id)
                balance = balances.to_domain(row)
                record_sale(balance, sale.leg_type, sale.sale_amount_paise)
                sale.unmatched_paise = sale.sale_amount_paise
                sale_row = sales.create(sale)

                if rules.matching_mode == MatchingMode.REALTIME:
                    income = _match_member(db, balance, rules, now, trigger=sale)
                    if income is not None:
                        incomes.append(income)
                        db.refresh(sale_row)
                        sale.unmatched_paise = sale_row.unmatched_paise
                else:
                    refresh_carry_forward(balance)

                balances.apply(row, balance)
                db.commit()
    except Exception:
        db.rollback()
        raise

    sale_ingest_counter.labels(leg_type=sale.leg_type.value).inc()
    for income in incomes:
        record_income_created(income.income_type.value, getattr(income, "balanced_amount_paise", 0))

    return IngestResult(sale=sale, balance=balance, incomes=incomes)


def run_matching_sweep(
    db: Session,
    rules: IncomeRules,
    locks: MemberLocks,
    now: datetime,
) -> SweepResult:
    """
    Match every member holding balance on both legs.

    Each member is matched in its own transaction. In realtime mode there is
    normally nothing to do; in batch mode this is where matching happens.
    """
    balances = LegBalanceRepository(db)
    result = SweepResult()

    for member_id in balances.members_with_both_legs():
        result.members_checked += 1
        with locks.hold(member_id):
            try:
                row = balances.get_for_update(member_id)
                balance = balances.to_domain(row)
                income = _match_member(db, balance, rules, now)
                balances.apply(row, balance)
                db.commit()
            except Exception:
                db.rollback()
                logging.error("Matching sweep failed", extra={"member_id": member_id})
                raise

        if income is not None:
            result.matches += 1
            result.total_matched_paise += income.balanced_amount_paise
            result.incomes.append(income)
            record_income_created(income.income_type.value, income.balanced_amount_paise)

    logging.info(
        "Matching sweep completed",
        extra={
            "step": "matching_sweep",
            "members_checked": result.members_checked,
            "matches": result.matches,
            "total_matched_paise": result.total_matched_paise,
        },
    )
    return result
