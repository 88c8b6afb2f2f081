"""Data access layer for members, sales, leg balances and income records"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, Query
from matching_income.infrastructure.database import models as orm
from matching_income.domain.exceptions import DuplicateSaleError
from matching_income.domain.models import (
    CarryForwardLeg,
    EARNED_STATUSES,
    IncomeRecord,
    IncomeStatus,
    IncomeType,
    LegBalance,
    LegState,
    LegType,
    MatchingBonusIncome,
    Member,
    PairedSale,
    PaymentDetails,
    PersonalSaleIncome,
    Sale,
)
from matching_income.utils.date_utils import ensure_utc, month_bounds


class MemberRepository:
    """Repository for the placement tree"""

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def to_domain(row: orm.Member) -> Member:
        return Member(
            member_id=row.member_id,
            name=row.name,
            parent_id=row.parent_id,
            position=LegType(row.position) if row.position else None,
            sponsor_id=row.sponsor_id,
        )

    def get(self, member_id: str) -> Optional[Member]:
        row = self.db.get(orm.Member, member_id)
        return self.to_domain(row) if row else None

    def get_row(self, member_id: str) -> Optional[orm.Member]:
        return self.db.get(orm.Member, member_id)

    def get_child(self, parent_id: str, position: LegType) -> Optional[Member]:
        row = (
            self.db.query(orm.Member)
            .filter(orm.Member.parent_id == parent_id, orm.Member.position == position.value)
            .first()
        )
        return self.to_domain(row) if row else None

    def children_of(self, member_id: str) -> List[Member]:
        rows = (
            self.db.query(orm.Member)
            .filter(orm.Member.parent_id == member_id)
            .order_by(orm.Member.position)
            .all()
        )
        return [self.to_domain(r) for r in rows]

    def create(self, member: Member) -> orm.Member:
        row = orm.Member(
            member_id=member.member_id,
            name=member.name,
            parent_id=member.parent_id,
            position=member.position.value if member.position else None,
            sponsor_id=member.sponsor_id,
        )
        self.db.add(row)
        self.db.flush()
        return row

    @staticmethod
    def member_ids_matching(search: str):
        """Select of member ids whose name or id contains `search`"""
        pattern = f"%{search}%"
        return select(orm.Member.member_id).where(
            or_(orm.Member.name.ilike(pattern), orm.Member.member_id.ilike(pattern))
        )


class SaleRepository:
    """Repository for ingested sales"""

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def to_domain(row: orm.Sale) -> Sale:
        return Sale(
            sale_id=row.sale_id,
            buyer_id=row.buyer_id,
            seller_id=row.seller_id,
            plot_id=row.plot_id,
            sale_amount_paise=row.sale_amount_paise,
            sale_date=ensure_utc(row.sale_date),
            leg_type=LegType(row.leg_type),
            unmatched_paise=row.unmatched_paise,
        )

    def exists(self, sale_id: str) -> bool:
        return self.db.query(orm.Sale.id).filter(orm.Sale.sale_id == sale_id).first() is not None

    def create(self, sale: Sale) -> orm.Sale:
        row = orm.Sale(
            sale_id=sale.sale_id,
            buyer_id=sale.buyer_id,
            seller_id=sale.seller_id,
            plot_id=sale.plot_id,
            sale_amount_paise=sale.sale_amount_paise,
            sale_date=sale.sale_date,
            leg_type=sale.leg_type.value,
            unmatched_paise=sale.unmatched_paise,
        )
        self.db.add(row)
        try:
            self.db.flush()
        except IntegrityError:
            raise DuplicateSaleError(f"Sale {sale.sale_id} was already ingested") from None
        return row

    def open_sales(self, seller_id: str, leg: Optional[LegType] = None) -> List[Sale]:
        """Leg sales with unmatched balance, oldest first"""
        query = self.db.query(orm.Sale).filter(
            orm.Sale.seller_id == seller_id,
            orm.Sale.unmatched_paise > 0,
            orm.Sale.leg_type != LegType.PERSONAL.value,
        )
        if leg is not None:
            query = query.filter(orm.Sale.leg_type == leg.value)
        rows = query.order_by(orm.Sale.sale_date.asc(), orm.Sale.id.asc()).all()
        return [self.to_domain(r) for r in rows]

    def save_unmatched(self, sales: List[Sale]) -> None:
        """Write back unmatched_paise after FIFO allocation"""
        for sale in sales:
            (
                self.db.query(orm.Sale)
                .filter(orm.Sale.sale_id == sale.sale_id)
                .update({orm.Sale.unmatched_paise: sale.unmatched_paise}, synchronize_session="fetch")
            )


class LegBalanceRepository:
    """Repository for per-member leg balances"""

    SORT_COLUMNS = {
        "total_matched": orm.LegBalance.total_matched_paise,
        "left_total_sales": orm.LegBalance.left_total_sales_paise,
        "right_total_sales": orm.LegBalance.right_total_sales_paise,
        "matching_count": orm.LegBalance.matching_count,
        "updated_at": orm.LegBalance.updated_at,
    }

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def to_domain(row: orm.LegBalance) -> LegBalance:
        return LegBalance(
            member_id=row.member_id,
            left=LegState(
                total_sales_paise=row.left_total_sales_paise,
                available_balance_paise=row.left_available_paise,
                sale_count=row.left_sale_count,
            ),
            right=LegState(
                total_sales_paise=row.right_total_sales_paise,
                available_balance_paise=row.right_available_paise,
                sale_count=row.right_sale_count,
            ),
            carry_forward_leg=CarryForwardLeg(row.carry_forward_leg),
            carry_forward_paise=row.carry_forward_paise,
            total_matched_paise=row.total_matched_paise,
            matching_count=row.matching_count,
            last_matched_at=ensure_utc(row.last_matched_at),
        )

    @staticmethod
    def apply(row: orm.LegBalance, balance: LegBalance) -> orm.LegBalance:
        row.left_total_sales_paise = balance.left.total_sales_paise
        row.left_available_paise = balance.left.available_balance_paise
        row.left_sale_count = balance.left.sale_count
        row.right_total_sales_paise = balance.right.total_sales_paise
        row.right_available_paise = balance.right.available_balance_paise
        row.right_sale_count = balance.right.sale_count
        row.carry_forward_leg = balance.carry_forward_leg.value
        row.carry_forward_paise = balance.carry_forward_paise
        row.total_matched_paise = balance.total_matched_paise
        row.matching_count = balance.matching_count
        row.last_matched_at = balance.last_matched_at
        return row

    def get(self, member_id: str) -> Optional[LegBalance]:
        row = self.db.get(orm.LegBalance, member_id)
        return self.to_domain(row) if row else None

    def _locked_row(self, member_id: str) -> Optional[orm.LegBalance]:
        return (
            self.db.query(orm.LegBalance)
            .filter(orm.LegBalance.member_id == member_id)
            .with_for_update()
            .first()
        )

    def get_for_update(self, member_id: str) -> orm.LegBalance:
        """
        Row-locked balance, created empty on the member's first sale.

        The empty row is inserted with ON CONFLICT DO NOTHING, so a worker that
        loses the race to create it locks the winner's row instead of failing.
        """
        row = self._locked_row(member_id)
        if row is None:
            insert = postgresql_insert if self.db.get_bind().dialect.name == "postgresql" else sqlite_insert
            self.db.execute(
                insert(orm.LegBalance)
                .values(
                    member_id=member_id,
                    left_total_sales_paise=0,
                    left_available_paise=0,
                    left_sale_count=0,
                    right_total_sales_paise=0,
                    right_available_paise=0,
                    right_sale_count=0,
                    carry_forward_leg=CarryForwardLeg.NONE.value,
                    carry_forward_paise=0,
                    total_matched_paise=0,
                    matching_count=0,
                )
                .on_conflict_do_nothing(index_elements=[orm.LegBalance.member_id])
            )
            row = self._locked_row(member_id)
        return row

    def members_with_both_legs(self) -> List[str]:
        rows = (
            self.db.query(orm.LegBalance.member_id)
            .filter(orm.LegBalance.left_available_paise > 0, orm.LegBalance.right_available_paise > 0)
            .order_by(orm.LegBalance.member_id)
            .all()
        )
        return [r[0] for r in rows]

    def list_all(
        self,
        page: int = 1,
        limit: int = 20,
        sort_by: str = "total_matched",
        sort_order: str = "desc",
    ) -> Tuple[List[LegBalance], int]:
        column = self.SORT_COLUMNS.get(sort_by, orm.LegBalance.total_matched_paise)
        ordering = column.asc() if sort_order == "asc" else column.desc()
        query = self.db.query(orm.LegBalance)
        total = query.count()
        rows = (
            query.order_by(ordering, orm.LegBalance.member_id.asc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return [self.to_domain(r) for r in rows], total


@dataclass
class IncomeFilters:
    """Query options shared by the user, team and admin listings"""

    user_ids: Optional[List[str]] = None
    income_type: Optional[IncomeType] = None
    status: Optional[IncomeStatus] = None
    leg_type: Optional[LegType] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None  # exclusive
    eligible_only: bool = False
    search: Optional[str] = None
    page: int = 1
    limit: int = 100
    sort_by: str = "created_at"
    sort_order: str = "desc"


def _paired_to_json(paired: Optional[PairedSale]) -> Optional[Dict[str, Any]]:
    if paired is None:
        return None
    return {
        "sale_id": paired.sale_id,
        "leg_type": LegType(paired.leg_type).value,
        "buyer_id": paired.buyer_id,
        "plot_id": paired.plot_id,
        "amount_paise": paired.amount_paise,
        "sale_date": paired.sale_date.isoformat(),
    }


def _paired_from_json(data: Optional[Dict[str, Any]]) -> Optional[PairedSale]:
    if not data:
        return None
    return PairedSale(
        sale_id=data["sale_id"],
        leg_type=LegType(data["leg_type"]),
        buyer_id=data["buyer_id"],
        plot_id=data["plot_id"],
        amount_paise=data["amount_paise"],
        sale_date=ensure_utc(datetime.fromisoformat(data["sale_date"])),
    )


def _to_basis_points(percentage: Decimal) -> int:
    return int((Decimal(str(percentage)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class IncomeRepository:
    """Repository for income records"""

    SORT_COLUMNS = {
        "created_at": orm.IncomeRecord.created_at,
        "sale_date": orm.IncomeRecord.sale_date,
        "income_amount": orm.IncomeRecord.income_amount_paise,
        "sale_amount": orm.IncomeRecord.sale_amount_paise,
        "eligible_for_approval_date": orm.IncomeRecord.eligible_for_approval_date,
        "status": orm.IncomeRecord.status,
    }

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def to_domain(row: orm.IncomeRecord) -> IncomeRecord:
        payment = None
        if row.paid_amount_paise is not None:
            payment = PaymentDetails(
                paid_amount_paise=row.paid_amount_paise,
                paid_date=ensure_utc(row.paid_date),
                transaction_id=row.transaction_id,
                payment_mode=row.payment_mode,
            )

        fields = dict(
            record_id=row.id,
            user_id=row.user_id,
            sale_id=row.sale_id,
            sale_amount_paise=row.sale_amount_paise,
            income_amount_paise=row.income_amount_paise,
            commission_percentage=Decimal(row.commission_basis_points) / Decimal(100),
            sale_date=ensure_utc(row.sale_date),
            eligible_for_approval_date=ensure_utc(row.eligible_for_approval_date),
            leg_type=LegType(row.leg_type),
            status=IncomeStatus(row.status),
            notes=row.notes,
            admin_notes=row.admin_notes,
            approved_by=row.approved_by,
            approved_at=ensure_utc(row.approved_at),
            rejected_by=row.rejected_by,
            rejected_at=ensure_utc(row.rejected_at),
            rejection_reason=row.rejection_reason,
            credited_at=ensure_utc(row.credited_at),
            payment=payment,
        )

        if row.income_type == IncomeType.MATCHING_BONUS.value:
            return MatchingBonusIncome(
                balanced_amount_paise=row.balanced_amount_paise or 0,
                paired_with=_paired_from_json(row.paired_with),
                **fields,
            )
        return PersonalSaleIncome(**fields)

    @staticmethod
    def apply(row: orm.IncomeRecord, record: IncomeRecord) -> orm.IncomeRecord:
        """Copy lifecycle-mutable fields onto the row"""
        row.status = record.status.value
        row.notes = record.notes
        row.admin_notes = record.admin_notes
        row.approved_by = record.approved_by
        row.approved_at = record.approved_at
        row.rejected_by = record.rejected_by
        row.rejected_at = record.rejected_at
        row.rejection_reason = record.rejection_reason
        row.credited_at = record.credited_at
        if record.payment is not None:
            row.paid_amount_paise = record.payment.paid_amount_paise
            row.paid_date = record.payment.paid_date
            row.transaction_id = record.payment.transaction_id
            row.payment_mode = record.payment.payment_mode
        return row

    def add(self, record: IncomeRecord) -> IncomeRecord:
        """Persist a newly emitted income and return it with its id"""
        row = orm.IncomeRecord(
            user_id=record.user_id,
            sale_id=record.sale_id,
            income_type=record.income_type.value,
            sale_amount_paise=record.sale_amount_paise,
            income_amount_paise=record.income_amount_paise,
            commission_basis_points=_to_basis_points(record.commission_percentage),
            status=record.status.value,
            sale_date=record.sale_date,
            eligible_for_approval_date=record.eligible_for_approval_date,
            leg_type=record.leg_type.value,
            notes=record.notes,
        )
        if isinstance(record, MatchingBonusIncome):
            row.balanced_amount_paise = record.balanced_amount_paise
            row.paired_with = _paired_to_json(record.paired_with)
        self.db.add(row)
        self.db.flush()
        record.record_id = row.id
        return record

    def get(self, record_id: uuid.UUID) -> Optional[IncomeRecord]:
        row = self.db.get(orm.IncomeRecord, record_id)
        return self.to_domain(row) if row else None

    def get_for_update(self, record_id: uuid.UUID) -> Optional[orm.IncomeRecord]:
        return (
            self.db.query(orm.IncomeRecord)
            .filter(orm.IncomeRecord.id == record_id)
            .with_for_update()
            .first()
        )

    @staticmethod
    def _derived_status(now: datetime):
        return case(
            (
                and_(
                    orm.IncomeRecord.status == IncomeStatus.PENDING.value,
                    orm.IncomeRecord.eligible_for_approval_date <= now,
                ),
                IncomeStatus.ELIGIBLE.value,
            ),
            else_=orm.IncomeRecord.status,
        )

    def _filtered(self, filters: IncomeFilters, now: datetime) -> Query:
        query = self.db.query(orm.IncomeRecord)

        if filters.user_ids is not None:
            query = query.filter(orm.IncomeRecord.user_id.in_(filters.user_ids))
        if filters.income_type is not None:
            query = query.filter(orm.IncomeRecord.income_type == filters.income_type.value)
        if filters.leg_type is not None:
            query = query.filter(orm.IncomeRecord.leg_type == filters.leg_type.value)
        if filters.start_date is not None:
            query = query.filter(orm.IncomeRecord.sale_date >= filters.start_date)
        if filters.end_date is not None:
            query = query.filter(orm.IncomeRecord.sale_date < filters.end_date)

        # pending/eligible are both stored as pending; split them on the lock date
        status = IncomeStatus.ELIGIBLE if filters.eligible_only else filters.status
        if status == IncomeStatus.ELIGIBLE:
            query = query.filter(
                orm.IncomeRecord.status == IncomeStatus.PENDING.value,
                orm.IncomeRecord.eligible_for_approval_date <= now,
            )
        elif status == IncomeStatus.PENDING:
            query = query.filter(
                orm.IncomeRecord.status == IncomeStatus.PENDING.value,
                orm.IncomeRecord.eligible_for_approval_date > now,
            )
        elif status is not None:
            query = query.filter(orm.IncomeRecord.status == status.value)

        if filters.search:
            pattern = f"%{filters.search}%"
            member_ids = MemberRepository.member_ids_matching(filters.search)
            query = query.filter(
                or_(
                    orm.IncomeRecord.user_id.in_(member_ids),
                    orm.IncomeRecord.user_id.ilike(pattern),
                    orm.IncomeRecord.sale_id.ilike(pattern),
                )
            )

        return query

    def find(self, filters: IncomeFilters, now: datetime) -> Tuple[List[IncomeRecord], int]:
        """Filtered, sorted page of records plus the total match count"""
        query = self._filtered(filters, now)
        total = query.count()

        column = self.SORT_COLUMNS.get(filters.sort_by, orm.IncomeRecord.created_at)
        ordering = column.asc() if filters.sort_order == "asc" else column.desc()
        rows = (
            query.order_by(ordering, orm.IncomeRecord.sale_date.desc())
            .offset((filters.page - 1) * filters.limit)
            .limit(filters.limit)
            .all()
        )
        return [self.to_domain(r) for r in rows], total

    def summarize(self, filters: IncomeFilters, now: datetime) -> Dict[str, Any]:
        """Totals over every record matching the filters (not just one page)"""
        derived = self._derived_status(now)
        rows = (
            self._filtered(filters, now)
            .with_entities(
                orm.IncomeRecord.income_type,
                derived.label("derived_status"),
                func.count(orm.IncomeRecord.id),
                func.coalesce(func.sum(orm.IncomeRecord.income_amount_paise), 0),
            )
            .group_by(orm.IncomeRecord.income_type, derived)
            .all()
        )

        income_by_type = {t.value: 0 for t in IncomeType}
        income_by_status: Dict[str, int] = {}
        count_by_status: Dict[str, int] = {}
        total_records = 0
        total_income = 0

        for income_type, status, count, amount in rows:
            amount = int(amount)
            income_by_type[income_type] = income_by_type.get(income_type, 0) + amount
            income_by_status[status] = income_by_status.get(status, 0) + amount
            count_by_status[status] = count_by_status.get(status, 0) + count
            total_records += count
            total_income += amount

        earned = {s.value for s in EARNED_STATUSES}
        return {
            "total_records": total_records,
            "total_income_paise": total_income,
            "approved_income_paise": sum(v for k, v in income_by_status.items() if k in earned),
            "pending_income_paise": income_by_status.get(IncomeStatus.PENDING.value, 0)
            + income_by_status.get(IncomeStatus.ELIGIBLE.value, 0),
            "paid_income_paise": income_by_status.get(IncomeStatus.PAID.value, 0),
            "income_by_type": income_by_type,
            "income_by_status": income_by_status,
            "count_by_status": count_by_status,
        }

    def users_with_income(self, user_ids: List[str]) -> int:
        if not user_ids:
            return 0
        return (
            self.db.query(func.count(func.distinct(orm.IncomeRecord.user_id)))
            .filter(orm.IncomeRecord.user_id.in_(user_ids))
            .scalar()
        )

    def stats(self, now: datetime) -> Dict[str, Any]:
        """Admin dashboard aggregates"""

        def count_and_sum(*criteria) -> Dict[str, int]:
            count, amount = (
                self.db.query(
                    func.count(orm.IncomeRecord.id),
                    func.coalesce(func.sum(orm.IncomeRecord.income_amount_paise), 0),
                )
                .filter(*criteria)
                .one()
            )
            return {"count": count, "amount_paise": int(amount)}

        month_start, next_month = month_bounds(now)
        overall = count_and_sum()
        overall["by_status"] = self.summarize(IncomeFilters(), now)["count_by_status"]
        unique_users = self.db.query(func.count(func.distinct(orm.IncomeRecord.user_id))).scalar()

        return {
            "eligible_for_approval": count_and_sum(
                orm.IncomeRecord.status == IncomeStatus.PENDING.value,
                orm.IncomeRecord.eligible_for_approval_date <= now,
            ),
            "current_month": count_and_sum(
                orm.IncomeRecord.sale_date >= month_start,
                orm.IncomeRecord.sale_date < next_month,
            ),
            "overall": overall,
            "unique_users": unique_users,
        }


class AuditRepository:
    """Repository for the lifecycle audit trail"""

    def __init__(self, db: Session):
        self.db = db

    def add(
        self,
        record_id: uuid.UUID,
        from_status: Optional[IncomeStatus],
        to_status: IncomeStatus,
        actor_id: Optional[str],
        occurred_at: datetime,
        notes: Optional[str] = None,
    ) -> orm.IncomeAudit:
        row = orm.IncomeAudit(
            record_id=record_id,
            from_status=from_status.value if from_status else None,
            to_status=to_status.value,
            actor_id=actor_id,
            notes=notes,
            occurred_at=occurred_at,
        )
        self.db.add(row)
        self.db.flush()
        return row

    def list_for(self, record_id: uuid.UUID) -> List[orm.IncomeAudit]:
        return (
            self.db.query(orm.IncomeAudit)
            .filter(orm.IncomeAudit.record_id == record_id)
            .order_by(orm.IncomeAudit.id.asc())
            .all()
        )
