"""Dependency injection for FastAPI endpoints"""

from datetime import datetime
from fastapi import Request
from matching_income.config import settings
from matching_income.domain.models import IncomeRules, MatchingMode
from matching_income.infrastructure.clients.income_events import IncomeEventClient
from matching_income.services.locks import MemberLocks
from matching_income.utils.date_utils import utcnow


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_now() -> datetime:
    """Clock used for eligibility checks and timestamps"""
    return utcnow()


def get_income_rules() -> IncomeRules:
    """Commission and lock parameters from configuration"""
    return IncomeRules(
        commission_percentage=settings.commission_percentage,
        eligibility_months=settings.eligibility_months,
        matching_mode=MatchingMode(settings.matching_mode),
    )


def get_member_locks(request: Request) -> MemberLocks:
    """Per-member locks owned by the running application"""
    return request.app.state.member_locks


def get_event_client() -> IncomeEventClient:
    """Provide income event webhook client instance"""
    return IncomeEventClient()
