"""Pytest fixtures for testing"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")

import pytest
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, Generator
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker, Session
from sacco_admin.api.main import create_app
from sacco_admin.api.dependencies import get_notification_dispatcher
from sacco_admin.infrastructure.database.models import Base, CreditRequest, Repayment, User
from sacco_admin.infrastructure.database.session import build_engine, get_db
from sacco_admin.services.auth import hash_password


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = build_engine(TEST_DATABASE_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

DEFAULT_PASSWORD = "Secret@123"


class RecordingDispatcher:
    """Stands in for the outbox dispatcher so API tests don't open a second connection"""

    def __init__(self):
        self.runs = 0

    async def dispatch_pending(self) -> int:
        self.runs += 1
        return 0


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
def session_factory() -> sessionmaker:
    return TestingSessionLocal


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def client(db: Session, dispatcher: RecordingDispatcher) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_dispatcher] = lambda: dispatcher
    return TestClient(app)


@pytest.fixture
def make_user(db: Session) -> Callable[..., User]:
    """Insert a user; email and phone number are derived from the first name"""
    counter = {"n": 0}

    def _make_user(
        first_name: str = "Member",
        role: str = "member",
        status: str = "active",
        password: str = DEFAULT_PASSWORD,
        **overrides,
    ) -> User:
        counter["n"] += 1
        values = dict(
            email=f"{first_name.lower()}{counter['n']}@example.com",
            password=hash_password(password),
            first_name=first_name,
            last_name="Tester",
            phone_number=f"+2547000000{counter['n']:02d}",
            role=role,
            status=status,
        )
        values.update(overrides)
        user = User(**values)
        db.add(user)
        db.commit()
        return user

    return _make_user


@pytest.fixture
def make_credit_request(db: Session) -> Callable[..., CreditRequest]:
    def _make_credit_request(
        user: User,
        amount: str = "1000.00",
        interest_rate: str = "10.00",
        status: str = "pending",
        created_at: datetime | None = None,
        **overrides,
    ) -> CreditRequest:
        values = dict(
            user_id=user.id,
            amount=Decimal(amount),
            interest_rate=Decimal(interest_rate),
            duration_months=12,
            purpose="Stock for shop",
            status=status,
        )
        if created_at is not None:
            values["created_at"] = created_at
        values.update(overrides)
        request = CreditRequest(**values)
        db.add(request)
        db.commit()
        return request

    return _make_credit_request


@pytest.fixture
def admin(make_user) -> User:
    return make_user("Admin", role="admin")


@pytest.fixture
def member(make_user) -> User:
    return make_user("Member")


def login(client: TestClient, email: str, password: str = DEFAULT_PASSWORD, path: str = "/api/admin/auth/login") -> Dict:
    response = client.post(path, json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response.json()["data"]


@pytest.fixture
def admin_headers(client: TestClient, admin: User) -> Dict[str, str]:
    tokens = login(client, admin.email)
    return {"Authorization": f"Bearer {tokens['accessToken']}"}


@pytest.fixture
def member_headers(client: TestClient, member: User) -> Dict[str, str]:
    tokens = login(client, member.email, path="/api/auth/login")
    return {"Authorization": f"Bearer {tokens['accessToken']}"}


@pytest.fixture
def make_repayment(db: Session) -> Callable[..., Repayment]:
    def _make_repayment(request: CreditRequest, amount: str, reference: str) -> Repayment:
        repayment = Repayment(credit_request_id=request.id, amount=Decimal(amount), reference_number=reference)
        db.add(repayment)
        db.commit()
        return repayment

    return _make_repayment
