"""Domain models - pure Python dataclasses representing business entities"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import ClassVar, List, Optional


class LegType(str, Enum):
    """Where a sale lands relative to the seller"""

    LEFT = "left"
    RIGHT = "right"
    PERSONAL = "personal"


class CarryForwardLeg(str, Enum):
    LEFT = "left"
    RIGHT = "right"
    NONE = "none"


class IncomeType(str, Enum):
    PERSONAL_SALE = "personal_sale"
    MATCHING_BONUS = "matching_bonus"


class IncomeStatus(str, Enum):
    """Lifecycle states. ELIGIBLE is derived at read time and never stored."""

    PENDING = "pending"
    ELIGIBLE = "eligible"
    APPROVED = "approved"
    REJECTED = "rejected"
    CREDITED = "credited"
    PAID = "paid"


DECIDED_STATUSES = frozenset(
    {IncomeStatus.APPROVED, IncomeStatus.REJECTED, IncomeStatus.CREDITED, IncomeStatus.PAID}
)

# Statuses whose income counts as earned on dashboards
EARNED_STATUSES = frozenset({IncomeStatus.APPROVED, IncomeStatus.CREDITED, IncomeStatus.PAID})


class MatchingMode(str, Enum):
    REALTIME = "realtime"  # match right after every leg sale
    BATCH = "batch"  # defer to the admin sweep


@dataclass(frozen=True)
class IncomeRules:
    """Commission and lock parameters passed explicitly into every operation"""

    commission_percentage: Decimal = Decimal("5")
    eligibility_months: int = 3
    matching_mode: MatchingMode = MatchingMode.REALTIME


@dataclass
class Member:
    """Node in the binary placement tree"""

    member_id: str
    name: str
    parent_id: Optional[str] = None
    position: Optional[LegType] = None  # LEFT or RIGHT under parent_id
    sponsor_id: Optional[str] = None


@dataclass
class Sale:
    """Qualifying plot sale"""

    sale_id: str
    buyer_id: str
    seller_id: str
    plot_id: str
    sale_amount_paise: int
    sale_date: datetime
    leg_type: Optional[LegType] = None  # resolved from the placement tree at ingest
    unmatched_paise: int = 0


@dataclass
class LegState:
    """Running totals for one leg"""

    total_sales_paise: int = 0
    available_balance_paise: int = 0
    sale_count: int = 0


@dataclass
class LegBalance:
    """Per-member leg aggregates and carry-forward"""

    member_id: str
    left: LegState = field(default_factory=LegState)
    right: LegState = field(default_factory=LegState)
    carry_forward_leg: CarryForwardLeg = CarryForwardLeg.NONE
    carry_forward_paise: int = 0
    total_matched_paise: int = 0
    matching_count: int = 0
    last_matched_at: Optional[datetime] = None

    def leg(self, leg_type: LegType) -> LegState:
        if leg_type == LegType.LEFT:
            return self.left
        if leg_type == LegType.RIGHT:
            return self.right
        raise ValueError(f"Personal sales have no leg balance: {leg_type}")


@dataclass
class Allocation:
    """Portion of a sale consumed by a matching pass"""

    sale: Sale
    amount_paise: int


@dataclass
class MatchOutcome:
    """Result of one matching pass over a member's legs"""

    matched_paise: int
    left_before_paise: int
    right_before_paise: int
    carry_forward_leg: CarryForwardLeg
    carry_forward_paise: int


@dataclass
class PairedSale:
    """Opposite-leg sale a matching bonus was paired against"""

    sale_id: str
    leg_type: LegType
    buyer_id: str
    plot_id: str
    amount_paise: int
    sale_date: datetime


@dataclass
class PaymentDetails:
    """Payout of a credited income; only attached by the paid transition"""

    paid_amount_paise: int
    paid_date: datetime
    transaction_id: Optional[str] = None
    payment_mode: Optional[str] = None


@dataclass
class IncomeRecord:
    """Commission entitlement shared fields; each variant fixes its income_type"""

    income_type: ClassVar[IncomeType]

    user_id: str
    sale_id: str
    sale_amount_paise: int
    income_amount_paise: int
    commission_percentage: Decimal
    sale_date: datetime
    eligible_for_approval_date: datetime
    leg_type: LegType
    status: IncomeStatus = IncomeStatus.PENDING
    record_id: Optional[uuid.UUID] = None
    notes: Optional[str] = None
    admin_notes: Optional[str] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    credited_at: Optional[datetime] = None
    payment: Optional[PaymentDetails] = None


@dataclass
class PersonalSaleIncome(IncomeRecord):
    """Commission on the member's own purchase"""

    income_type: ClassVar[IncomeType] = IncomeType.PERSONAL_SALE


@dataclass
class MatchingBonusIncome(IncomeRecord):
    """Commission on the balanced amount of a left/right match"""

    income_type: ClassVar[IncomeType] = IncomeType.MATCHING_BONUS

    balanced_amount_paise: int = 0
    paired_with: Optional[PairedSale] = None


@dataclass
class BulkApprovalResult:
    """Per-record outcome of a bulk approve"""

    record_id: str
    success: bool
    error: Optional[str] = None
    message: Optional[str] = None


@dataclass
class IngestResult:
    """Everything a sale ingestion produced"""

    sale: Sale
    balance: Optional[LegBalance]
    incomes: List[IncomeRecord] = field(default_factory=list)
