"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from matching_income.domain.lifecycle import derived_status
from matching_income.domain.models import (
    IncomeRecord,
    LegBalance,
    MatchingBonusIncome,
    Member,
    PairedSale,
    PaymentDetails,
    Sale,
)


class MemberCreateRequest(BaseModel):
    """Request body for POST /v1/members"""

    member_id: str = Field(..., min_length=1, description="Member identifier")
    name: str = Field(..., min_length=1)
    parent_id: Optional[str] = Field(None, description="Placement parent; omit for a root member")
    position: Optional[Literal["left", "right"]] = None
    sponsor_id: Optional[str] = None


class MemberSchema(BaseModel):
    member_id: str
    name: str
    parent_id: Optional[str] = None
    position: Optional[str] = None
    sponsor_id: Optional[str] = None

    @classmethod
    def from_domain(cls, member: Member) -> "MemberSchema":
        return cls(
            member_id=member.member_id,
            name=member.name,
            parent_id=member.parent_id,
            position=member.position.value if member.position else None,
            sponsor_id=member.sponsor_id,
        )


class MemberResponse(BaseModel):
    success: bool = True
    data: MemberSchema


class DownlineResponse(BaseModel):
    """Response for GET /v1/members/{member_id}/downline"""

    success: bool = True
    member_id: str
    total: int
    data: List[MemberSchema]


class SaleCreateRequest(BaseModel):
    """Request body for POST /v1/sales"""

    sale_id: Optional[str] = Field(None, description="Generated when omitted")
    buyer_id: str = Field(..., min_length=1)
    seller_id: str = Field(..., min_length=1)
    plot_id: str = Field(..., min_length=1)
    sale_amount_paise: int = Field(..., gt=0, description="Sale amount in paise")
    sale_date: Optional[datetime] = Field(None, description="Defaults to now")


class SaleSchema(BaseModel):
    sale_id: str
    buyer_id: str
    seller_id: str
    plot_id: str
    sale_amount_paise: int
    sale_date: datetime
    leg_type: Optional[str] = None
    unmatched_paise: int

    @classmethod
    def from_domain(cls, sale: Sale) -> "SaleSchema":
        return cls(
            sale_id=sale.sale_id,
            buyer_id=sale.buyer_id,
            seller_id=sale.seller_id,
            plot_id=sale.plot_id,
            sale_amount_paise=sale.sale_amount_paise,
            sale_date=sale.sale_date,
            leg_type=sale.leg_type.value if sale.leg_type else None,
            unmatched_paise=sale.unmatched_paise,
        )


class LegStateSchema(BaseModel):
    total_sales_paise: int = 0
    available_balance_paise: int = 0
    sale_count: int = 0


class CarryForwardSchema(BaseModel):
    leg: str = "none"
    amount_paise: int = 0


class LegBalanceSchema(BaseModel):
    """Leg totals, available balances and carry-forward of one member"""

    member_id: str
    left_leg: LegStateSchema
    right_leg: LegStateSchema
    carry_forward: CarryForwardSchema
    total_matched_paise: int = 0
    matching_count: int = 0
    last_matched_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, balance: LegBalance) -> "LegBalanceSchema":
        return cls(
            member_id=balance.member_id,
            left_leg=LegStateSchema(
                total_sales_paise=balance.left.total_sales_paise,
                available_balance_paise=balance.left.available_balance_paise,
                sale_count=balance.left.sale_count,
            ),
            right_leg=LegStateSchema(
                total_sales_paise=balance.right.total_sales_paise,
                available_balance_paise=balance.right.available_balance_paise,
                sale_count=balance.right.sale_count,
            ),
            carry_forward=CarryForwardSchema(
                leg=balance.carry_forward_leg.value,
                amount_paise=balance.carry_forward_paise,
            ),
            total_matched_paise=balance.total_matched_paise,
            matching_count=balance.matching_count,
            last_matched_at=balance.last_matched_at,
        )


class PairedSaleSchema(BaseModel):
    sale_id: str
    leg_type: str
    buyer_id: str
    plot_id: str
    amount_paise: int
    sale_date: datetime

    @classmethod
    def from_domain(cls, paired: PairedSale) -> "PairedSaleSchema":
        return cls(
            sale_id=paired.sale_id,
            leg_type=paired.leg_type.value,
            buyer_id=paired.buyer_id,
            plot_id=paired.plot_id,
            amount_paise=paired.amount_paise,
            sale_date=paired.sale_date,
        )


class PaymentDetailsSchema(BaseModel):
    """Payout details supplied with the paid transition"""

    paid_amount_paise: int
    paid_date: Optional[datetime] = None
    transaction_id: Optional[str] = None
    payment_mode: Optional[str] = None

    def to_domain(self, now: datetime) -> PaymentDetails:
        return PaymentDetails(
            paid_amount_paise=self.paid_amount_paise,
            paid_date=self.paid_date or now,
            transaction_id=self.transaction_id,
            payment_mode=self.payment_mode,
        )


class IncomeRecordSchema(BaseModel):
    """Single income record with its status derived at read time"""

    record_id: str
    user_id: str
    sale_id: str
    income_type: str
    status: str
    leg_type: str
    sale_amount_paise: int
    balanced_amount_paise: Optional[int] = None
    income_amount_paise: int
    commission_percentage: float
    sale_date: datetime
    eligible_for_approval_date: datetime
    days_until_eligible: int
    paired_with: Optional[PairedSaleSchema] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    credited_at: Optional[datetime] = None
    payment_details: Optional[PaymentDetailsSchema] = None
    notes: Optional[str] = None
    admin_notes: Optional[str] = None

    @classmethod
    def from_domain(cls, record: IncomeRecord, now: datetime) -> "IncomeRecordSchema":
        remaining = record.eligible_for_approval_date - now
        days_until_eligible = max(0, remaining.days + (1 if remaining.seconds else 0))

        balanced = None
        paired = None
        if isinstance(record, MatchingBonusIncome):
            balanced = record.balanced_amount_paise
            if record.paired_with is not None:
                paired = PairedSaleSchema.from_domain(record.paired_with)

        payment = None
        if record.payment is not None:
            payment = PaymentDetailsSchema(
                paid_amount_paise=record.payment.paid_amount_paise,
                paid_date=record.payment.paid_date,
                transaction_id=record.payment.transaction_id,
                payment_mode=record.payment.payment_mode,
            )

        return cls(
            record_id=str(record.record_id),
            user_id=record.user_id,
            sale_id=record.sale_id,
            income_type=record.income_type.value,
            status=derived_status(record, now).value,
            leg_type=record.leg_type.value,
            sale_amount_paise=record.sale_amount_paise,
            balanced_amount_paise=balanced,
            income_amount_paise=record.income_amount_paise,
            commission_percentage=float(record.commission_percentage),
            sale_date=record.sale_date,
            eligible_for_approval_date=record.eligible_for_approval_date,
            days_until_eligible=days_until_eligible,
            paired_with=paired,
            approved_by=record.approved_by,
            approved_at=record.approved_at,
            rejected_by=record.rejected_by,
            rejected_at=record.rejected_at,
            rejection_reason=record.rejection_reason,
            credited_at=record.credited_at,
            payment_details=payment,
            notes=record.notes,
            admin_notes=record.admin_notes,
        )


class SaleIngestData(BaseModel):
    sale: SaleSchema
    leg_balance: Optional[LegBalanceSchema] = None
    incomes: List[IncomeRecordSchema]


class SaleIngestResponse(BaseModel):
    """Response for POST /v1/sales"""

    success: bool = True
    data: SaleIngestData


class PaginationSchema(BaseModel):
    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "PaginationSchema":
        return cls(page=page, limit=limit, total=total, pages=(total + limit - 1) // limit)


class IncomeSummarySchema(BaseModel):
    total_records: int = 0
    total_income_paise: int = 0
    approved_income_paise: int = 0
    pending_income_paise: int = 0
    paid_income_paise: int = 0
    income_by_type: Dict[str, int] = {}
    income_by_status: Dict[str, int] = {}
    count_by_status: Dict[str, int] = {}
    left_leg_total_sales_paise: Optional[int] = None
    right_leg_total_sales_paise: Optional[int] = None


class IncomeListResponse(BaseModel):
    """Response for the user and admin income listings"""

    success: bool = True
    data: List[IncomeRecordSchema]
    summary: IncomeSummarySchema
    pagination: PaginationSchema


class TeamSummarySchema(BaseModel):
    total_team_members: int = 0
    active_members: int = 0
    total_team_income_paise: int = 0
    income_by_type: Dict[str, int] = {}
    income_by_status: Dict[str, int] = {}


class TeamIncomeResponse(BaseModel):
    """Response for GET /v1/matching-income/team/{user_id}"""

    success: bool = True
    data: List[IncomeRecordSchema]
    summary: TeamSummarySchema
    pagination: PaginationSchema


class StatsResponse(BaseModel):
    """Response for GET /v1/matching-income/admin/stats"""

    success: bool = True
    data: Dict[str, Any]


class ApproveRequest(BaseModel):
    """Request body for PATCH /v1/matching-income/admin/approve/{record_id}"""

    admin_id: Optional[str] = Field(None, description="Must match the authenticated admin when given")
    notes: Optional[str] = None


class BulkApproveRequest(BaseModel):
    """Request body for POST /v1/matching-income/admin/bulk-approve"""

    admin_id: Optional[str] = None
    record_ids: List[str] = Field(..., min_length=1)
    notes: Optional[str] = None


class RejectRequest(BaseModel):
    """Request body for PATCH /v1/matching-income/admin/reject/{record_id}"""

    admin_id: Optional[str] = None
    reason: Optional[str] = None


class StatusUpdateRequest(BaseModel):
    """Request body for PATCH /v1/matching-income/admin/status/{record_id}"""

    status: str = Field(..., description="credited or paid")
    payment_details: Optional[PaymentDetailsSchema] = None


class IncomeRecordResponse(BaseModel):
    success: bool = True
    message: str
    data: IncomeRecordSchema


class BulkApprovalItem(BaseModel):
    record_id: str
    success: bool
    error: Optional[str] = None
    message: Optional[str] = None


class BulkApproveResponse(BaseModel):
    success: bool = True
    approved: int
    failed: int
    results: List[BulkApprovalItem]


class SweepResponse(BaseModel):
    """Response for POST /v1/matching-income/admin/calculate"""

    success: bool = True
    members_checked: int
    matches: int
    total_matched_paise: int
    data: List[IncomeRecordSchema]


class AuditEntrySchema(BaseModel):
    from_status: Optional[str] = None
    to_status: str
    actor_id: Optional[str] = None
    notes: Optional[str] = None
    occurred_at: datetime


class AuditResponse(BaseModel):
    success: bool = True
    record_id: str
    data: List[AuditEntrySchema]


class LegBalanceDetail(LegBalanceSchema):
    unmatched_sales: List[SaleSchema] = []


class LegBalanceResponse(BaseModel):
    """Response for GET /v1/leg-balance/{user_id}"""

    success: bool = True
    data: LegBalanceDetail


class LegBalanceSummaryResponse(BaseModel):
    success: bool = True
    data: LegBalanceSchema


class UnmatchedSummarySchema(BaseModel):
    left_count: int = 0
    left_amount_paise: int = 0
    right_count: int = 0
    right_amount_paise: int = 0
    total_unmatched_paise: int = 0


class UnmatchedData(BaseModel):
    unmatched_sales: List[SaleSchema]
    summary: UnmatchedSummarySchema


class UnmatchedResponse(BaseModel):
    """Response for GET /v1/leg-balance/{user_id}/unmatched"""

    success: bool = True
    data: UnmatchedData


class LegBalanceListResponse(BaseModel):
    success: bool = True
    data: List[LegBalanceSchema]
    pagination: PaginationSchema
