"""Data access layer for referral entities"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, List, Optional, TypeVar
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from referral_gateway.infrastructure.database.models import FraudCheck, Purchase, Reward, User
from referral_gateway.domain.exceptions import StoreUnavailable
from referral_gateway.domain.models import CustomerIdentity, Referrer, RejectionReason, ValidationResult
from referral_gateway.domain.referral_codes import generate_referral_code

T = TypeVar("T")

MAX_REFERRAL_CODE_ATTEMPTS = 5


def _read(operation: Callable[[], T]) -> T:
    """Run a read, translating database failures into StoreUnavailable"""
    try:
        return operation()
    except SQLAlchemyError as e:
        raise StoreUnavailable(f"Record store read failed: {e.__class__.__name__}") from e


class SqlRecordStore:
    """Read-only view of users and purchases used by purchase validation"""

    def __init__(self, db: Session):
        self.db = db

    def find_referrer_by_code(self, code: str) -> Optional[Referrer]:
        user = _read(lambda: self.db.query(User).filter(User.referral_code == code).first())
        if user is None:
            return None
        return Referrer(
            user_id=user.id,
            referral_code=user.referral_code,
            identity_provider_id=user.identity_provider_id,
            email=user.email,
            phone=user.phone,
        )

    def find_customer_by_id(self, user_id: str) -> Optional[CustomerIdentity]:
        return _to_customer(_read(lambda: self.db.get(User, user_id)))

    def find_customer_by_email(self, email: str) -> Optional[CustomerIdentity]:
        return _to_customer(
            _read(lambda: self.db.query(User).filter(func.lower(User.email) == email.strip().lower()).first())
        )

    def count_purchases_by_origin_ip(self, ip: str, since: Optional[datetime] = None) -> int:
        """Count purchases from an IP, optionally only those created after `since`"""

        def count() -> int:
            query = self.db.query(func.count(Purchase.id)).filter(Purchase.ip_address == ip)
            if since is not None:
                query = query.filter(Purchase.created_at > since)
            return query.scalar() or 0

        return _read(count)


def _to_customer(user: Optional[User]) -> Optional[CustomerIdentity]:
    if user is None:
        return None
    return CustomerIdentity(
        user_id=user.id,
        identity_provider_id=user.identity_provider_id,
        email=user.email,
    )


class UserRepository:
    """Repository for users"""

    def __init__(self, db: Session):
        self.db = db

    def create_customer(
        self,
        name: str,
        email: str,
        phone: str | None = None,
        identity_provider_id: str | None = None,
    ) -> User:
        """
        Create a customer with a freshly generated referral code.

        Retries with a new code if the generated one collides with an
        existing referral code.
        """
        for _ in range(MAX_REFERRAL_CODE_ATTEMPTS):
            code = generate_referral_code()
            if self.db.query(User.id).filter(User.referral_code == code).first() is not None:
                continue

            user = User(
                name=name,
                email=email.strip().lower(),
                phone=phone,
                identity_provider_id=identity_provider_id,
                role="customer",
                referral_code=code,
            )
            self.db.add(user)
            self.db.flush()
            return user

        raise RuntimeError("Could not allocate a unique referral code")

    def get_or_create_guest_customer(self, name: str, email: str | None) -> User:
        """Find the customer by email or create a guest record for the buyer"""
        if email:
            existing = self.db.query(User).filter(func.lower(User.email) == email.strip().lower()).first()
            if existing is not None:
                return existing
        else:
            email = f"guest-{generate_referral_code().lower()}@example.com"
        return self.create_customer(name=name, email=email)

    def create_admin(self, name: str, email: str) -> User:
        """Admins review purchases and rewards; they carry no referral code"""
        user = User(name=name, email=email.strip().lower(), role="admin")
        self.db.add(user)
        self.db.flush()
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        return self.db.get(User, user_id)


class PurchaseRepository:
    """Repository for purchases"""

    def __init__(self, db: Session):
        self.db = db

    def create_purchase(
        self,
        referrer_id: str,
        customer_id: str,
        amount: Decimal,
        ip_address: str | None,
        description: str | None = None,
    ) -> Purchase:
        """Persist a pending purchase awaiting admin review"""
        db_purchase = Purchase(
            referrer_id=referrer_id,
            customer_id=customer_id,
            amount=amount,
            ip_address=ip_address,
            status="pending",
            description=description or "Purchase with referral code",
        )
        self.db.add(db_purchase)
        self.db.flush()  # Get ID without committing
        return db_purchase

    def get_purchases_by_referrer(self, referrer_id: str, limit: int = 20) -> List[Purchase]:
        return (
            self.db.query(Purchase)
            .filter(Purchase.referrer_id == referrer_id)
            .order_by(Purchase.created_at.desc())
            .limit(limit)
            .all()
        )

    def get_purchase(self, purchase_id: str) -> Optional[Purchase]:
        return self.db.get(Purchase, purchase_id)

    def get_pending_purchases(self) -> List[Purchase]:
        """Review queue, oldest first"""
        return self.db.query(Purchase).filter(Purchase.status == "pending").order_by(Purchase.created_at.asc()).all()

    def update_status(self, purchase: Purchase, status: str) -> Purchase:
        purchase.status = status
        self.db.flush()
        return purchase

    def statistics(self) -> dict:
        """Purchase counts, completed amount and conversion rate over registered customers"""
        total_purchases = self.db.query(func.count(Purchase.id)).scalar() or 0
        completed_amount = (
            self.db.query(func.sum(Purchase.amount)).filter(Purchase.status == "completed").scalar() or Decimal("0")
        )
        pending_purchases = self.db.query(func.count(Purchase.id)).filter(Purchase.status == "pending").scalar() or 0
        total_customers = self.db.query(func.count(User.id)).filter(User.role == "customer").scalar() or 0

        conversion_rate = round(total_purchases / total_customers * 100, 2) if total_customers else 0.0
        return {
            "total_purchases": total_purchases,
            "completed_amount": completed_amount,
            "pending_purchases": pending_purchases,
            "conversion_rate": conversion_rate,
        }


class RewardRepository:
    """Repository for referral rewards"""

    def __init__(self, db: Session):
        self.db = db

    def create_pending_reward(self, purchase: Purchase, reward_value: Decimal, reward_type: str = "cash") -> Reward:
        """All rewards start pending until an admin approves them"""
        db_reward = Reward(
            purchase_id=purchase.id,
            referrer_id=purchase.referrer_id,
            reward_type=reward_type,
            reward_value=reward_value,
            status="pending",
        )
        self.db.add(db_reward)
        self.db.flush()
        return db_reward

    def get_reward(self, reward_id: str) -> Optional[Reward]:
        return self.db.get(Reward, reward_id)

    def get_pending_rewards(self) -> List[Reward]:
        """Review queue, oldest first"""
        return self.db.query(Reward).filter(Reward.status == "pending").order_by(Reward.created_at.asc()).all()

    def get_rewards_by_referrer(self, referrer_id: str) -> List[Reward]:
        return (
            self.db.query(Reward)
            .filter(Reward.referrer_id == referrer_id)
            .order_by(Reward.created_at.desc())
            .all()
        )

    def review(self, reward: Reward, status: str, reviewer_id: str, review_notes: str | None = None) -> Reward:
        """Record an admin's approve/reject decision on a reward"""
        reward.status = status
        reward.reviewed_by = reviewer_id
        reward.review_notes = review_notes
        reward.reviewed_at = datetime.now(timezone.utc)
        self.db.flush()
        return reward

    def statistics(self) -> dict:
        """Reward value by review status, and approved value by reward type"""
        totals = dict(self.db.query(Reward.status, func.sum(Reward.reward_value)).group_by(Reward.status).all())
        approved_by_type = dict(
            self.db.query(Reward.reward_type, func.sum(Reward.reward_value))
            .filter(Reward.status == "approved")
            .group_by(Reward.reward_type)
            .all()
        )
        return {
            "total_rewards_amount": sum(totals.values(), Decimal("0")),
            "approved_rewards_amount": totals.get("approved") or Decimal("0"),
            "pending_rewards_amount": totals.get("pending") or Decimal("0"),
            "rejected_rewards_amount": totals.get("rejected") or Decimal("0"),
            "approved_by_type": approved_by_type,
        }


class FraudCheckRepository:
    """Repository for fraud check outcomes"""

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        referral_code: str,
        ip_address: str | None,
        amount: Decimal,
        result: ValidationResult,
        purchase_id: str | None = None,
    ) -> FraudCheck:
        db_check = FraudCheck(
            referral_code=referral_code,
            ip_address=ip_address,
            amount=amount,
            score=result.score,
            accepted=result.accepted,
            reason=result.reason.value if result.reason else None,
            flags=list(result.flags),
            purchase_id=purchase_id,
        )
        self.db.add(db_check)
        self.db.flush()
        return db_check

    def statistics(self) -> dict:
        """Flagged transactions, total reviewed and average score of scored checks"""
        total_reviewed = self.db.query(func.count(FraudCheck.id)).scalar() or 0
        flagged = (
            self.db.query(func.count(FraudCheck.id))
            .filter(FraudCheck.reason == RejectionReason.FRAUD_SUSPECTED.value)
            .scalar()
            or 0
        )
        average = self.db.query(func.avg(FraudCheck.score)).filter(FraudCheck.score.isnot(None)).scalar()
        return {
            "flagged_transactions": flagged,
            "total_reviewed": total_reviewed,
            "average_fraud_score": round(float(average), 2) if average is not None else 0.0,
        }
