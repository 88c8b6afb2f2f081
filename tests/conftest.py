"""Pytest fixtures for testing"""

import pytest
from datetime import datetime, timedelta, timezone
from typing import Dict, Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from matching_income.api.auth import create_access_token
from matching_income.api.dependencies import get_now
from matching_income.api.main import create_app
from matching_income.domain.models import IncomeRules, LegType, Member, Sale
from matching_income.infrastructure.database.models import Base
from matching_income.infrastructure.database.session import get_db
from matching_income.services.genealogy import register_member
from matching_income.services.locks import MemberLocks


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

FIXED_NOW = datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Controllable replacement for the request clock"""

    def __init__(self, now: datetime):
        self.now = now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def auth_header(user_id: str, role: str = "user") -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id, role)}"}


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(FIXED_NOW)


@pytest.fixture
def client(db: Session, clock: FrozenClock) -> TestClient:
    """Create FastAPI test client with test database and a frozen clock"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_now] = lambda: clock.now
    return TestClient(app)


@pytest.fixture
def admin_headers() -> Dict[str, str]:
    return auth_header("admin_1", role="admin")


@pytest.fixture
def rules() -> IncomeRules:
    return IncomeRules()


@pytest.fixture
def locks() -> MemberLocks:
    return MemberLocks()


@pytest.fixture
def tree(db: Session) -> Dict[str, Member]:
    """
    Placement tree used across tests:

        ROOT
        ├── L1 (left)
        │   └── L2 (left)
        └── R1 (right)
    """
    members = [
        Member(member_id="ROOT", name="Asha Rao"),
        Member(member_id="L1", name="Bala Iyer", parent_id="ROOT", position=LegType.LEFT, sponsor_id="ROOT"),
        Member(member_id="R1", name="Chitra Nair", parent_id="ROOT", position=LegType.RIGHT, sponsor_id="ROOT"),
        Member(member_id="L2", name="Dev Menon", parent_id="L1", position=LegType.LEFT, sponsor_id="L1"),
    ]
    return {m.member_id: register_member(db, m) for m in members}


def make_sale(
    sale_id: str,
    buyer_id: str,
    amount_paise: int,
    sale_date: datetime = FIXED_NOW,
    seller_id: str = "ROOT",
    plot_id: str = None,
) -> Sale:
    return Sale(
        sale_id=sale_id,
        buyer_id=buyer_id,
        seller_id=seller_id,
        plot_id=plot_id or f"PLOT-{sale_id}",
        sale_amount_paise=amount_paise,
        sale_date=sale_date,
    )
