"""/v1/leg-balance - per-member leg totals, carry-forward and open sales"""

from typing import Literal
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from matching_income.api.auth import Principal, ensure_can_view, get_current_principal, require_admin
from matching_income.api.errors import http_error
from matching_income.api.v1.schemas import (
    LegBalanceDetail,
    LegBalanceListResponse,
    LegBalanceResponse,
    LegBalanceSchema,
    LegBalanceSummaryResponse,
    PaginationSchema,
    SaleSchema,
    UnmatchedData,
    UnmatchedResponse,
    UnmatchedSummarySchema,
)
from matching_income.domain.exceptions import DomainException
from matching_income.domain.models import LegBalance, LegType
from matching_income.infrastructure.database.repositories import LegBalanceRepository, SaleRepository
from matching_income.infrastructure.database.session import get_db
from matching_income.services import genealogy

router = APIRouter()


def _load_balance(db: Session, principal: Principal, user_id: str) -> LegBalance:
    """Member's balance, zeroed when they have no leg sales yet"""
    try:
        ensure_can_view(principal, user_id)
        genealogy.get_member(db, user_id)
    except DomainException as e:
        raise http_error(e)
    return LegBalanceRepository(db).get(user_id) or LegBalance(member_id=user_id)


@router.get("/leg-balance/admin/all", response_model=LegBalanceListResponse)
def list_leg_balances(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=500),
    sort_by: str = Query("total_matched"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
):
    balances, total = LegBalanceRepository(db).list_all(page, limit, sort_by, sort_order)
    return LegBalanceListResponse(
        data=[LegBalanceSchema.from_domain(b) for b in balances],
        pagination=PaginationSchema.build(page, limit, total),
    )


@router.get("/leg-balance/{user_id}", response_model=LegBalanceResponse)
def read_leg_balance(
    user_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """Leg balance plus the sales still holding unmatched volume"""
    balance = _load_balance(db, principal, user_id)
    open_sales = SaleRepository(db).open_sales(user_id)

    detail = LegBalanceDetail(
        **LegBalanceSchema.from_domain(balance).model_dump(),
        unmatched_sales=[SaleSchema.from_domain(s) for s in open_sales],
    )
    return LegBalanceResponse(data=detail)


@router.get("/leg-balance/{user_id}/summary", response_model=LegBalanceSummaryResponse)
def read_leg_balance_summary(
    user_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    balance = _load_balance(db, principal, user_id)
    return LegBalanceSummaryResponse(data=LegBalanceSchema.from_domain(balance))


@router.get("/leg-balance/{user_id}/unmatched", response_model=UnmatchedResponse)
def read_unmatched_sales(
    user_id: str,
    leg: Literal["left", "right", "both"] = Query("both"),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """Open sales on one or both legs, oldest first"""
    _load_balance(db, principal, user_id)
    leg_filter = None if leg == "both" else LegType(leg)
    open_sales = SaleRepository(db).open_sales(user_id, leg_filter)

    left = [s for s in open_sales if s.leg_type == LegType.LEFT]
    right = [s for s in open_sales if s.leg_type == LegType.RIGHT]
    summary = UnmatchedSummarySchema(
        left_count=len(left),
        left_amount_paise=sum(s.unmatched_paise for s in left),
        right_count=len(right),
        right_amount_paise=sum(s.unmatched_paise for s in right),
        total_unmatched_paise=sum(s.unmatched_paise for s in open_sales),
    )

    return UnmatchedResponse(
        data=UnmatchedData(
            unmatched_sales=[SaleSchema.from_domain(s) for s in open_sales],
            summary=summary,
        )
    )
