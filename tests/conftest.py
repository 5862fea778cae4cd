"""Pytest fixtures for testing"""

import asyncio
import pytest
from datetime import datetime, timezone
from typing import Generator, Optional
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from referral_gateway.api.main import create_app
from referral_gateway.api.dependencies import get_identity_provider
from referral_gateway.infrastructure.database.models import Base, User
from referral_gateway.infrastructure.database.repositories import UserRepository
from referral_gateway.infrastructure.database.session import get_db
from referral_gateway.domain.exceptions import IdentityProviderError, StoreUnavailable
from referral_gateway.domain.models import CustomerIdentity, Referrer


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeIdentityProvider:
    """Identity provider double: verified unless listed, optional failures and latency"""

    def __init__(self, unverified=(), failing=(), delay: float = 0.0):
        self.unverified = set(unverified)
        self.failing = set(failing)
        self.delay = delay
        self.calls: list[str] = []

    async def is_primary_contact_verified(self, identity_id: str) -> bool:
        self.calls.append(identity_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if identity_id in self.failing:
            raise IdentityProviderError("identity provider returned 503")
        return identity_id not in self.unverified


class InMemoryStore:
    """Record store double backed by dicts"""

    def __init__(self):
        self.referrers: dict[str, Referrer] = {}
        self.customers: dict[str, CustomerIdentity] = {}
        self.purchases: list[tuple[str, datetime]] = []  # (origin ip, created_at)
        self.lookups = 0
        self.unavailable = False

    def add_referrer(self, referrer: Referrer) -> Referrer:
        self.referrers[referrer.referral_code] = referrer
        self.customers[referrer.user_id] = CustomerIdentity(
            user_id=referrer.user_id,
            identity_provider_id=referrer.identity_provider_id,
            email=referrer.email,
        )
        return referrer

    def add_customer(self, customer: CustomerIdentity) -> CustomerIdentity:
        self.customers[customer.user_id] = customer
        return customer

    def add_purchases(self, ip: str, count: int, created_at: Optional[datetime] = None) -> None:
        created_at = created_at or datetime.now(timezone.utc)
        self.purchases.extend((ip, created_at) for _ in range(count))

    def _read(self) -> None:
        self.lookups += 1
        if self.unavailable:
            raise StoreUnavailable("Record store read failed: OperationalError")

    def find_referrer_by_code(self, code):
        self._read()
        return self.referrers.get(code)

    def find_customer_by_id(self, user_id):
        self._read()
        return self.customers.get(user_id)

    def find_customer_by_email(self, email):
        self._read()
        wanted = email.strip().lower()
        return next((c for c in self.customers.values() if c.email.lower() == wanted), None)

    def count_purchases_by_origin_ip(self, ip, since=None):
        self._read()
        return sum(1 for p_ip, created_at in self.purchases if p_ip == ip and (since is None or created_at > since))


@pytest.fixture
def identity_provider_factory():
    """Build identity provider doubles with custom behaviour"""
    return FakeIdentityProvider


@pytest.fixture
def identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider(unverified={"idp_unverified"}, failing={"idp_down"})


@pytest.fixture
def store() -> InMemoryStore:
    """In-memory store with one referrer and a few customers"""
    store = InMemoryStore()
    store.add_referrer(
        Referrer(
            user_id="referrer-1",
            referral_code="QWERTY23",
            identity_provider_id="idp_referrer",
            email="referrer@example.com",
            phone="+15550100",
        )
    )
    store.add_customer(CustomerIdentity(user_id="customer-verified", identity_provider_id="idp_verified", email="verified@example.com"))
    store.add_customer(CustomerIdentity(user_id="customer-unverified", identity_provider_id="idp_unverified", email="unverified@example.com"))
    store.add_customer(CustomerIdentity(user_id="customer-down", identity_provider_id="idp_down", email="down@example.com"))
    return store


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
def referrer(db: Session) -> User:
    """Registered customer whose referral code is used in purchases"""
    user = UserRepository(db).create_customer(
        name="Rita Referrer",
        email="rita@example.com",
        phone="+15550101",
        identity_provider_id="idp_rita",
    )
    db.commit()
    return user


@pytest.fixture
def client(db: Session, identity_provider: FakeIdentityProvider) -> TestClient:
    """Create FastAPI test client with test database and fake identity provider"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_identity_provider] = lambda: identity_provider
    return TestClient(app)


@pytest.fixture
def admin(db: Session) -> User:
    """Admin who reviews purchases and rewards"""
    user = UserRepository(db).create_admin(name="Ada Admin", email="ada@example.com")
    db.commit()
    return user
