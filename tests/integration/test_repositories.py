"""Integration tests for the SQLAlchemy record store and repositories"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from referral_gateway.domain.exceptions import StoreUnavailable
from referral_gateway.domain.models import RejectionReason, ValidationResult
from referral_gateway.domain.referral_codes import is_valid_referral_code_format
from referral_gateway.infrastructure.database.models import Purchase, Reward, User
from referral_gateway.infrastructure.database.repositories import (
    FraudCheckRepository,
    PurchaseRepository,
    RewardRepository,
    SqlRecordStore,
    UserRepository,
)


def add_purchase(db: Session, referrer: User, ip: str | None, created_at: datetime) -> Purchase:
    purchase = Purchase(
        referrer_id=referrer.id,
        customer_id=referrer.id,
        amount=Decimal("80.00"),
        ip_address=ip,
        created_at=created_at,
    )
    db.add(purchase)
    db.flush()
    return purchase


def test_create_customer_assigns_unique_referral_code(db: Session):
    users = UserRepository(db)
    codes = {users.create_customer(name=f"User {i}", email=f"user{i}@example.com").referral_code for i in range(20)}

    assert len(codes) == 20
    assert all(is_valid_referral_code_format(code) for code in codes)


def test_find_referrer_by_code(db: Session, referrer: User):
    store = SqlRecordStore(db)

    found = store.find_referrer_by_code(referrer.referral_code)

    assert found.user_id == referrer.id
    assert found.identity_provider_id == "idp_rita"
    assert found.email == "rita@example.com"
    assert store.find_referrer_by_code("ZZZZZZZZ") is None


def test_find_customer_by_id_and_email(db: Session, referrer: User):
    store = SqlRecordStore(db)

    assert store.find_customer_by_id(referrer.id).email == "rita@example.com"
    assert store.find_customer_by_email("  RITA@example.com ").user_id == referrer.id
    assert store.find_customer_by_id("missing") is None
    assert store.find_customer_by_email("nobody@example.com") is None


def test_count_purchases_by_origin_ip(db: Session, referrer: User):
    now = datetime.now(timezone.utc)
    for _ in range(3):
        add_purchase(db, referrer, "198.51.100.4", now - timedelta(hours=1))
    for _ in range(2):
        add_purchase(db, referrer, "198.51.100.4", now - timedelta(days=2))
    add_purchase(db, referrer, "192.0.2.9", now)
    db.commit()

    store = SqlRecordStore(db)

    assert store.count_purchases_by_origin_ip("198.51.100.4") == 5
    assert store.count_purchases_by_origin_ip("198.51.100.4", since=now - timedelta(hours=24)) == 3
    assert store.count_purchases_by_origin_ip("203.0.113.250") == 0


def test_store_read_failure_raises_store_unavailable():
    session = MagicMock()
    session.query.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))

    with pytest.raises(StoreUnavailable):
        SqlRecordStore(session).count_purchases_by_origin_ip("198.51.100.4")


def test_get_or_create_guest_customer(db: Session, referrer: User):
    users = UserRepository(db)

    assert users.get_or_create_guest_customer("Rita", "Rita@Example.com").id == referrer.id

    guest = users.get_or_create_guest_customer("Anonymous", None)
    assert guest.email.startswith("guest-")
    assert guest.role == "customer"


def test_purchase_and_pending_reward(db: Session, referrer: User):
    customer = UserRepository(db).create_customer(name="Casey", email="casey@example.com")

    purchase = PurchaseRepository(db).create_purchase(
        referrer_id=referrer.id,
        customer_id=customer.id,
        amount=Decimal("120.00"),
        ip_address="198.51.100.4",
    )
    reward = RewardRepository(db).create_pending_reward(purchase, Decimal("25.00"))
    db.commit()

    assert purchase.status == "pending"
    assert purchase.description == "Purchase with referral code"
    assert reward.referrer_id == referrer.id
    assert reward.status == "pending"
    assert reward.reward_value == Decimal("25.00")
    assert PurchaseRepository(db).get_purchases_by_referrer(referrer.id)[0].id == purchase.id


def test_fraud_check_statistics(db: Session):
    checks = FraudCheckRepository(db)
    checks.record("QWERTY23", "198.51.100.4", Decimal("30.00"), ValidationResult(accepted=True, score=30))
    checks.record(
        "QWERTY23",
        None,
        Decimal("30.00"),
        ValidationResult(
            accepted=False,
            score=90,
            reason=RejectionReason.FRAUD_SUSPECTED,
            flags=("Purchase amount below minimum threshold", "Email not verified", "Missing IP address"),
        ),
    )
    checks.record(
        "ZZZZZZZZ",
        None,
        Decimal("10.00"),
        ValidationResult(accepted=False, reason=RejectionReason.INVALID_REFERRAL_CODE),
    )
    db.commit()

    assert checks.statistics() == {
        "flagged_transactions": 1,
        "total_reviewed": 3,
        "average_fraud_score": 60.0,
    }


def test_fraud_check_statistics_empty(db: Session):
    assert FraudCheckRepository(db).statistics() == {
        "flagged_transactions": 0,
        "total_reviewed": 0,
        "average_fraud_score": 0.0,
    }


def make_reward(db: Session, referrer: User, email: str, amount: str = "100.00") -> Reward:
    customer = UserRepository(db).create_customer(name="Buyer", email=email)
    purchase = PurchaseRepository(db).create_purchase(
        referrer_id=referrer.id,
        customer_id=customer.id,
        amount=Decimal(amount),
        ip_address="198.51.100.4",
    )
    return RewardRepository(db).create_pending_reward(purchase, Decimal("25.00"))


def test_review_records_reviewer_and_notes(db: Session, referrer: User):
    admin = UserRepository(db).create_admin(name="Ada", email="ADA@example.com")
    rewards = RewardRepository(db)
    reward = make_reward(db, referrer, "buyer@example.com")

    rewards.review(reward, "rejected", admin.id, "Duplicate household")
    db.commit()

    stored = rewards.get_reward(reward.id)
    assert stored.status == "rejected"
    assert stored.reviewed_by == admin.id
    assert stored.review_notes == "Duplicate household"
    assert stored.reviewed_at is not None
    assert admin.role == "admin"
    assert admin.email == "ada@example.com"
    assert admin.referral_code is None
    assert rewards.get_pending_rewards() == []


def test_rewards_by_referrer_and_pending_queue(db: Session, referrer: User):
    first = make_reward(db, referrer, "one@example.com")
    second = make_reward(db, referrer, "two@example.com")
    db.commit()
    rewards = RewardRepository(db)

    assert {r.id for r in rewards.get_rewards_by_referrer(referrer.id)} == {first.id, second.id}
    assert rewards.get_rewards_by_referrer("someone-else") == []
    assert [r.id for r in rewards.get_pending_rewards()] == [first.id, second.id]


def test_reward_statistics_by_status_and_type(db: Session, referrer: User):
    rewards = RewardRepository(db)
    admin = UserRepository(db).create_admin(name="Ada", email="ada@example.com")
    rewards.review(make_reward(db, referrer, "one@example.com"), "approved", admin.id)
    make_reward(db, referrer, "two@example.com")
    db.commit()

    stats = rewards.statistics()

    assert stats["total_rewards_amount"] == Decimal("50.00")
    assert stats["approved_rewards_amount"] == Decimal("25.00")
    assert stats["pending_rewards_amount"] == Decimal("25.00")
    assert stats["rejected_rewards_amount"] == Decimal("0")
    assert stats["approved_by_type"] == {"cash": Decimal("25.00")}


def test_reward_statistics_empty(db: Session):
    stats = RewardRepository(db).statistics()

    assert stats["total_rewards_amount"] == Decimal("0")
    assert stats["approved_by_type"] == {}


def test_purchase_status_and_statistics(db: Session, referrer: User):
    purchases = PurchaseRepository(db)
    make_reward(db, referrer, "one@example.com", amount="120.00")
    make_reward(db, referrer, "two@example.com", amount="60.00")
    completed = purchases.get_pending_purchases()[0]
    purchases.update_status(completed, "completed")
    db.commit()

    assert purchases.get_purchase(completed.id).status == "completed"
    assert len(purchases.get_pending_purchases()) == 1
    assert purchases.statistics() == {
        "total_purchases": 2,
        "completed_amount": Decimal("120.00"),
        "pending_purchases": 1,
        "conversion_rate": 66.67,
    }
