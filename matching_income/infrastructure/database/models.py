"""SQLAlchemy ORM models for members, sales, leg balances and income records"""

import uuid
from sqlalchemy import (
    Column,
    String,
    BigInteger,
    DateTime,
    Integer,
    ForeignKey,
    Text,
    JSON,
    UniqueConstraint,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class Member(Base):
    """Binary placement tree node"""

    __tablename__ = "member"
    __table_args__ = (UniqueConstraint("parent_id", "position", name="uq_member_parent_position"),)

    member_id = Column(Text, primary_key=True)
    name = Column(Text, nullable=False)
    parent_id = Column(Text, ForeignKey("member.member_id"), nullable=True, index=True)
    position = Column(String(8), nullable=True)  # left | right
    sponsor_id = Column(Text, nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Sale(Base):
    """Qualifying plot sale; unmatched_paise is what matching has not consumed yet"""

    __tablename__ = "sale"
    __table_args__ = (Index("ix_sale_open", "seller_id", "leg_type", "unmatched_paise"),)

    # Surrogate key orders sales sharing a sale_date
    id = Column(Integer, primary_key=True, autoincrement=True)
    sale_id = Column(Text, nullable=False, unique=True)
    buyer_id = Column(Text, nullable=False, index=True)
    seller_id = Column(Text, nullable=False, index=True)
    plot_id = Column(Text, nullable=False)
    sale_amount_paise = Column(BigInteger, nullable=False)
    sale_date = Column(DateTime(timezone=True), nullable=False)
    leg_type = Column(String(8), nullable=False)  # left | right | personal
    unmatched_paise = Column(BigInteger, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class LegBalance(Base):
    """Per-member leg aggregates, locked row-wise while being mutated"""

    __tablename__ = "leg_balance"

    member_id = Column(Text, primary_key=True)
    left_total_sales_paise = Column(BigInteger, nullable=False, default=0)
    left_available_paise = Column(BigInteger, nullable=False, default=0)
    left_sale_count = Column(Integer, nullable=False, default=0)
    right_total_sales_paise = Column(BigInteger, nullable=False, default=0)
    right_available_paise = Column(BigInteger, nullable=False, default=0)
    right_sale_count = Column(Integer, nullable=False, default=0)
    carry_forward_leg = Column(String(8), nullable=False, default="none")
    carry_forward_paise = Column(BigInteger, nullable=False, default=0)
    total_matched_paise = Column(BigInteger, nullable=False, default=0)
    matching_count = Column(Integer, nullable=False, default=0)
    last_matched_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class IncomeRecord(Base):
    """Commission entitlement; status never stores the derived 'eligible'"""

    __tablename__ = "income_record"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, index=True)
    sale_id = Column(Text, nullable=False, index=True)
    income_type = Column(String(32), nullable=False, index=True)
    sale_amount_paise = Column(BigInteger, nullable=False)
    balanced_amount_paise = Column(BigInteger, nullable=True)
    income_amount_paise = Column(BigInteger, nullable=False)
    commission_basis_points = Column(Integer, nullable=False, default=500)  # 500 = 5.00%
    status = Column(String(16), nullable=False, default="pending", index=True)
    sale_date = Column(DateTime(timezone=True), nullable=False)
    eligible_for_approval_date = Column(DateTime(timezone=True), nullable=False, index=True)
    leg_type = Column(String(8), nullable=False)
    paired_with = Column(JSON, nullable=True)
    approved_by = Column(Text, nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejected_by = Column(Text, nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    credited_at = Column(DateTime(timezone=True), nullable=True)
    paid_amount_paise = Column(BigInteger, nullable=True)
    paid_date = Column(DateTime(timezone=True), nullable=True)
    transaction_id = Column(Text, nullable=True)
    payment_mode = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    audits = relationship("IncomeAudit", back_populates="record", cascade="all, delete-orphan")


class IncomeAudit(Base):
    """One row per lifecycle transition"""

    __tablename__ = "income_audit"

    id = Column(Integer, primary_key=True, autoincrement=True)
    record_id = Column(UUID(as_uuid=True), ForeignKey("income_record.id", ondelete="CASCADE"), nullable=False, index=True)
    from_status = Column(String(16), nullable=True)
    to_status = Column(String(16), nullable=False)
    actor_id = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    occurred_at = Column(DateTime(timezone=True), nullable=False)

    record = relationship("IncomeRecord", back_populates="audits")
