"""Admin lifecycle operations - approve, reject, credit, pay - with audit trail"""

import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union
from sqlalchemy.orm import Session
from matching_income.domain import lifecycle
from matching_income.domain.models import (
    BulkApprovalResult,
    IncomeRecord,
    IncomeStatus,
    MatchingBonusIncome,
    PaymentDetails,
)
from matching_income.domain.exceptions import DomainException, InvalidStatusTransitionError, RecordNotFoundError
from matching_income.infrastructure.database.repositories import AuditRepository, IncomeRepository
from matching_income.infrastructure.observability.logging import log_transition
from matching_income.infrastructure.observability.metrics import record_transition

RecordId = Union[uuid.UUID, str]


def _parse_record_id(record_id: RecordId) -> uuid.UUID:
    if isinstance(record_id, uuid.UUID):
        return record_id
    try:
        return uuid.UUID(str(record_id))
    except ValueError:
        raise RecordNotFoundError(f"Income {record_id} not found") from None


def get_income(db: Session, record_id: RecordId) -> IncomeRecord:
    record = IncomeRepository(db).get(_parse_record_id(record_id))
    if record is None:
        raise RecordNotFoundError(f"Income {record_id} not found")
    return record


def _transition(
    db: Session,
    record_id: RecordId,
    to_status: IncomeStatus,
    actor_id: Optional[str],
    now: datetime,
    mutate: Callable[[IncomeRecord], IncomeRecord],
    notes: Optional[str] = None,
) -> IncomeRecord:
    """
    Apply one state machine step atomically.

    The record row is locked, mutated through the domain state machine, audited
    and committed; any failure rolls back and leaves the record untouched.
    """
    incomes = IncomeRepository(db)
    parsed_id = _parse_record_id(record_id)

    try:
        row = incomes.get_for_update(parsed_id)
        if row is None:
            raise RecordNotFoundError(f"Income {record_id} not found")

        record = incomes.to_domain(row)
        from_status = lifecycle.derived_status(record, now)
        mutate(record)

        incomes.apply(row, record)
        AuditRepository(db).add(
            record_id=parsed_id,
            from_status=from_status,
            to_status=record.status,
            actor_id=actor_id,
            occurred_at=now,
            notes=notes,
        )
        db.commit()
    except DomainException:
        db.rollback()
        record_transition(to_status.value, ok=False)
        raise
    except Exception:
        db.rollback()
        raise

    record_transition(to_status.value, ok=True)
    log_transition(str(parsed_id), actor_id, from_status.value, record.status.value)
    return record


def approve_income(
    db: Session,
    record_id: RecordId,
    admin_id: str,
    now: datetime,
    notes: Optional[str] = None,
) -> IncomeRecord:
    """eligible → approved; NotEligibleError inside the lock, AlreadyDecidedError once decided"""
    return _transition(
        db,
        record_id,
        IncomeStatus.APPROVED,
        admin_id,
        now,
        lambda record: lifecycle.approve(record, admin_id, now, notes),
        notes=notes,
    )


def reject_income(
    db: Session,
    record_id: RecordId,
    admin_id: str,
    reason: Optional[str],
    now: datetime,
) -> IncomeRecord:
    return _transition(
        db,
        record_id,
        IncomeStatus.REJECTED,
        admin_id,
        now,
        lambda record: lifecycle.reject(record, admin_id, reason, now),
        notes=reason,
    )


def update_income_status(
    db: Session,
    record_id: RecordId,
    status: Union[IncomeStatus, str],
    actor_id: Optional[str],
    now: datetime,
    payment: Optional[PaymentDetails] = None,
) -> IncomeRecord:
    """approved → credited, credited → paid"""
    try:
        target = IncomeStatus(status)
    except ValueError:
        raise InvalidStatusTransitionError(f"Unknown status: {status}") from None
    return _transition(
        db,
        record_id,
        target,
        actor_id,
        now,
        lambda record: lifecycle.update_status(record, status, now, payment),
    )


def bulk_approve(
    db: Session,
    record_ids: List[RecordId],
    admin_id: str,
    now: datetime,
    notes: Optional[str] = None,
) -> List[BulkApprovalResult]:
    """
    Approve each record independently.

    Never raises for business-rule failures: every id gets its own result so
    the caller can report partial completion.
    """
    results = []
    for record_id in record_ids:
        try:
            approve_income(db, record_id, admin_id, now, notes)
            results.append(BulkApprovalResult(record_id=str(record_id), success=True))
        except DomainException as e:
            results.append(
                BulkApprovalResult(
                    record_id=str(record_id),
                    success=False,
                    error=type(e).__name__,
                    message=str(e),
                )
            )
    return results


def list_audit(db: Session, record_id: RecordId):
    parsed_id = _parse_record_id(record_id)
    if IncomeRepository(db).get(parsed_id) is None:
        raise RecordNotFoundError(f"Income {record_id} not found")
    return AuditRepository(db).list_for(parsed_id)


def income_event_payload(event: str, record: IncomeRecord) -> Dict[str, Any]:
    """Webhook body for an income lifecycle event"""
    payload: Dict[str, Any] = {
        "event": event,
        "record_id": str(record.record_id),
        "user_id": record.user_id,
        "income_type": record.income_type.value,
        "income_amount_paise": record.income_amount_paise,
        "status": record.status.value,
    }
    if isinstance(record, MatchingBonusIncome):
        payload["balanced_amount_paise"] = record.balanced_amount_paise
    if record.payment is not None:
        payload["paid_amount_paise"] = record.payment.paid_amount_paise
        payload["transaction_id"] = record.payment.transaction_id
    return payload
