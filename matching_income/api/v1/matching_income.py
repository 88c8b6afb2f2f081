"""/v1/matching-income - income listings and the admin lifecycle"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from matching_income.api.auth import (
    Principal,
    acting_admin,
    ensure_can_view,
    get_current_principal,
    require_admin,
)
from matching_income.api.dependencies import (
    get_event_client,
    get_income_rules,
    get_member_locks,
    get_now,
    get_request_id,
)
from matching_income.api.errors import http_error
from matching_income.api.v1.schemas import (
    ApproveRequest,
    AuditEntrySchema,
    AuditResponse,
    BulkApprovalItem,
    BulkApproveRequest,
    BulkApproveResponse,
    IncomeListResponse,
    IncomeRecordResponse,
    IncomeRecordSchema,
    IncomeSummarySchema,
    PaginationSchema,
    RejectRequest,
    StatsResponse,
    StatusUpdateRequest,
    SweepResponse,
    TeamIncomeResponse,
    TeamSummarySchema,
)
from matching_income.domain.exceptions import DomainException, NotInDownlineError
from matching_income.domain.models import IncomeRecord, IncomeRules, IncomeStatus, IncomeType, LegType
from matching_income.infrastructure.clients.income_events import IncomeEventClient
from matching_income.infrastructure.database.repositories import (
    IncomeFilters,
    IncomeRepository,
    LegBalanceRepository,
)
from matching_income.infrastructure.database.session import get_db
from matching_income.services import genealogy, income_lifecycle
from matching_income.services.ledger_ingest import run_matching_sweep
from matching_income.services.locks import MemberLocks
from matching_income.utils.date_utils import start_of_day

router = APIRouter()

SORT_ORDER_PATTERN = "^(asc|desc)$"


def _filters(
    income_type: Optional[IncomeType],
    status: Optional[IncomeStatus],
    leg_type: Optional[LegType],
    start_date: Optional[date],
    end_date: Optional[date],
    page: int,
    limit: int,
    sort_by: str,
    sort_order: str,
    **extra,
) -> IncomeFilters:
    """Build repository filters; end_date is inclusive of the whole day"""
    # date.max has no following day, so it leaves the range open
    open_end = end_date is None or end_date == date.max
    return IncomeFilters(
        income_type=income_type,
        status=status,
        leg_type=leg_type,
        start_date=start_of_day(start_date) if start_date else None,
        end_date=None if open_end else start_of_day(end_date + timedelta(days=1)),
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
        **extra,
    )


def _queue_event(
    background_tasks: BackgroundTasks,
    event_client: IncomeEventClient,
    event: str,
    record: IncomeRecord,
) -> None:
    if event_client.enabled:
        background_tasks.add_task(
            event_client.send_event, income_lifecycle.income_event_payload(event, record)
        )


@router.get("/matching-income/user/{user_id}", response_model=IncomeListResponse)
def list_user_income(
    user_id: str,
    income_type: Optional[IncomeType] = Query(None),
    status: Optional[IncomeStatus] = Query(None),
    leg_type: Optional[LegType] = Query(None),
    start_date: Optional[date] = Query(None, description="Sale date from (inclusive)"),
    end_date: Optional[date] = Query(None, description="Sale date to (inclusive)"),
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=500),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc", pattern=SORT_ORDER_PATTERN),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    now: datetime = Depends(get_now),
):
    """
    Income records of one member with totals over all matching records.

    The summary also carries the member's lifetime left/right leg sales.
    """
    try:
        ensure_can_view(principal, user_id)
    except DomainException as e:
        raise http_error(e)

    filters = _filters(
        income_type, status, leg_type, start_date, end_date, page, limit, sort_by, sort_order,
        user_ids=[user_id],
    )
    incomes = IncomeRepository(db)
    records, total = incomes.find(filters, now)
    summary = IncomeSummarySchema(**incomes.summarize(filters, now))

    balance = LegBalanceRepository(db).get(user_id)
    summary.left_leg_total_sales_paise = balance.left.total_sales_paise if balance else 0
    summary.right_leg_total_sales_paise = balance.right.total_sales_paise if balance else 0

    return IncomeListResponse(
        data=[IncomeRecordSchema.from_domain(r, now) for r in records],
        summary=summary,
        pagination=PaginationSchema.build(page, limit, total),
    )


@router.get("/matching-income/team/{user_id}", response_model=TeamIncomeResponse)
def list_team_income(
    user_id: str,
    member_id: Optional[str] = Query(None, description="Restrict to one downline member"),
    income_type: Optional[IncomeType] = Query(None),
    status: Optional[IncomeStatus] = Query(None),
    leg_type: Optional[LegType] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=500),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc", pattern=SORT_ORDER_PATTERN),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    now: datetime = Depends(get_now),
):
    """Income records of everyone placed under user_id"""
    try:
        ensure_can_view(principal, user_id)
        team_ids = [m.member_id for m in genealogy.get_downline(db, user_id)]
        if member_id is not None:
            if member_id not in team_ids:
                raise NotInDownlineError(f"Member {member_id} is not in the team of {user_id}")
            scope = [member_id]
        else:
            scope = team_ids
    except DomainException as e:
        raise http_error(e)

    filters = _filters(
        income_type, status, leg_type, start_date, end_date, page, limit, sort_by, sort_order,
        user_ids=scope,
    )
    incomes = IncomeRepository(db)
    records, total = incomes.find(filters, now)
    totals = incomes.summarize(filters, now)

    summary = TeamSummarySchema(
        total_team_members=len(team_ids),
        active_members=incomes.users_with_income(team_ids),
        total_team_income_paise=totals["total_income_paise"],
        income_by_type=totals["income_by_type"],
        income_by_status=totals["income_by_status"],
    )

    return TeamIncomeResponse(
        data=[IncomeRecordSchema.from_domain(r, now) for r in records],
        summary=summary,
        pagination=PaginationSchema.build(page, limit, total),
    )


@router.get("/matching-income/admin/all", response_model=IncomeListResponse)
def list_all_income(
    eligible_only: bool = Query(False, description="Only records awaiting approval"),
    search: Optional[str] = Query(None, description="Member name/id or sale id"),
    income_type: Optional[IncomeType] = Query(None),
    status: Optional[IncomeStatus] = Query(None),
    leg_type: Optional[LegType] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=500),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc", pattern=SORT_ORDER_PATTERN),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
    now: datetime = Depends(get_now),
):
    filters = _filters(
        income_type, status, leg_type, start_date, end_date, page, limit, sort_by, sort_order,
        eligible_only=eligible_only,
        search=search,
    )
    incomes = IncomeRepository(db)
    records, total = incomes.find(filters, now)

    return IncomeListResponse(
        data=[IncomeRecordSchema.from_domain(r, now) for r in records],
        summary=IncomeSummarySchema(**incomes.summarize(filters, now)),
        pagination=PaginationSchema.build(page, limit, total),
    )


@router.get("/matching-income/cycle", response_model=IncomeListResponse)
def list_cycle_income(
    cycle_start_date: date = Query(..., description="First day of the payout cycle"),
    cycle_end_date: date = Query(..., description="Last day of the payout cycle (inclusive)"),
    income_type: Optional[IncomeType] = Query(None),
    status: Optional[IncomeStatus] = Query(None),
    leg_type: Optional[LegType] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=500),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc", pattern=SORT_ORDER_PATTERN),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
    now: datetime = Depends(get_now),
):
    """All members' income with a sale date inside one payout cycle"""
    return list_all_income(
        eligible_only=False,
        search=None,
        income_type=income_type,
        status=status,
        leg_type=leg_type,
        start_date=cycle_start_date,
        end_date=cycle_end_date,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
        db=db,
        principal=principal,
        now=now,
    )


@router.get("/matching-income/admin/stats", response_model=StatsResponse)
def income_stats(
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
    now: datetime = Depends(get_now),
):
    """Dashboard counts: awaiting approval, current month, overall, unique users"""
    return StatsResponse(data=IncomeRepository(db).stats(now))


@router.patch("/matching-income/admin/approve/{record_id}", response_model=IncomeRecordResponse)
def approve_income(
    record_id: str,
    request_body: ApproveRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
    now: datetime = Depends(get_now),
    event_client: IncomeEventClient = Depends(get_event_client),
):
    """Approve an eligible record; the 3-month lock is checked inside the row lock"""
    try:
        admin_id = acting_admin(principal, request_body.admin_id)
        record = income_lifecycle.approve_income(db, record_id, admin_id, now, request_body.notes)
    except DomainException as e:
        raise http_error(e)

    _queue_event(background_tasks, event_client, "income.approved", record)
    return IncomeRecordResponse(
        message="Income approved",
        data=IncomeRecordSchema.from_domain(record, now),
    )


@router.post("/matching-income/admin/bulk-approve", response_model=BulkApproveResponse)
def bulk_approve_income(
    request_body: BulkApproveRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
    now: datetime = Depends(get_now),
    event_client: IncomeEventClient = Depends(get_event_client),
):
    """
    Approve many records independently.

    Failures (not eligible, already decided, unknown id) are reported per
    record and never abort the rest of the batch.
    """
    try:
        admin_id = acting_admin(principal, request_body.admin_id)
    except DomainException as e:
        raise http_error(e)
    results = income_lifecycle.bulk_approve(db, request_body.record_ids, admin_id, now, request_body.notes)

    approved = [r for r in results if r.success]
    for result in approved:
        if event_client.enabled:
            record = income_lifecycle.get_income(db, result.record_id)
            _queue_event(background_tasks, event_client, "income.approved", record)

    logging.info(
        "Bulk approval processed",
        extra={
            "request_id": get_request_id(request),
            "admin_id": admin_id,
            "approved": len(approved),
            "failed": len(results) - len(approved),
        },
    )

    return BulkApproveResponse(
        approved=len(approved),
        failed=len(results) - len(approved),
        results=[
            BulkApprovalItem(record_id=r.record_id, success=r.success, error=r.error, message=r.message)
            for r in results
        ],
    )


@router.patch("/matching-income/admin/reject/{record_id}", response_model=IncomeRecordResponse)
def reject_income(
    record_id: str,
    request_body: RejectRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
    now: datetime = Depends(get_now),
    event_client: IncomeEventClient = Depends(get_event_client),
):
    try:
        admin_id = acting_admin(principal, request_body.admin_id)
        record = income_lifecycle.reject_income(db, record_id, admin_id, request_body.reason, now)
    except DomainException as e:
        raise http_error(e)

    _queue_event(background_tasks, event_client, "income.rejected", record)
    return IncomeRecordResponse(
        message="Income rejected",
        data=IncomeRecordSchema.from_domain(record, now),
    )


@router.patch("/matching-income/admin/status/{record_id}", response_model=IncomeRecordResponse)
def update_income_status(
    record_id: str,
    request_body: StatusUpdateRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
    now: datetime = Depends(get_now),
    event_client: IncomeEventClient = Depends(get_event_client),
):
    """Move an approved record to credited, or a credited one to paid"""
    payment = request_body.payment_details.to_domain(now) if request_body.payment_details else None
    try:
        record = income_lifecycle.update_income_status(
            db, record_id, request_body.status, principal.user_id, now, payment
        )
    except DomainException as e:
        raise http_error(e)

    _queue_event(background_tasks, event_client, f"income.{record.status.value}", record)
    return IncomeRecordResponse(
        message=f"Income marked {record.status.value}",
        data=IncomeRecordSchema.from_domain(record, now),
    )


@router.post("/matching-income/admin/calculate", response_model=SweepResponse)
def calculate_matching(
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
    rules: IncomeRules = Depends(get_income_rules),
    locks: MemberLocks = Depends(get_member_locks),
    now: datetime = Depends(get_now),
):
    """Run a matching pass for every member holding balance on both legs"""
    try:
        result = run_matching_sweep(db, rules, locks, now)
    except DomainException as e:
        raise http_error(e)
    except Exception as e:
        logging.error(f"Matching sweep failed: {str(e)}", extra={"request_id": get_request_id(request)})
        raise HTTPException(status_code=500, detail="Internal server error")

    return SweepResponse(
        members_checked=result.members_checked,
        matches=result.matches,
        total_matched_paise=result.total_matched_paise,
        data=[IncomeRecordSchema.from_domain(i, now) for i in result.incomes],
    )


@router.get("/matching-income/admin/audit/{record_id}", response_model=AuditResponse)
def read_audit(
    record_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
):
    """Status transitions of one record, oldest first"""
    try:
        entries = income_lifecycle.list_audit(db, record_id)
    except DomainException as e:
        raise http_error(e)

    return AuditResponse(
        record_id=record_id,
        data=[
            AuditEntrySchema(
                from_status=entry.from_status,
                to_status=entry.to_status,
                actor_id=entry.actor_id,
                notes=entry.notes,
                occurred_at=entry.occurred_at,
            )
            for entry in entries
        ],
    )
