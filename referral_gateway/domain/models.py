"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple

from referral_gateway.domain.exceptions import MalformedReferralCode, ReferralCodeNotFound


@dataclass(frozen=True)
class FraudConfig:
    """Thresholds and weights used by the fraud engine"""

    min_purchase_amount: Decimal = Decimal("50.00")
    max_purchases_per_ip: int = 5
    max_purchases_per_ip_window: int = 10
    purchase_window_hours: int = 24
    fraud_threshold: int = 70  # score >= threshold rejects

    below_minimum_weight: int = 30
    unverified_identity_weight: int = 40
    identity_degraded_weight: int = 0
    self_referral_weight: int = 100
    excess_origin_weight: int = 50
    excess_origin_window_weight: int = 70
    missing_origin_weight: int = 20

    require_identity_verification: bool = True
    identity_lookup_timeout_seconds: float = 3.0

    @property
    def purchase_window(self) -> timedelta:
        return timedelta(hours=self.purchase_window_hours)


@dataclass
class Referrer:
    """Customer who owns a referral code"""

    user_id: str
    referral_code: str
    identity_provider_id: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


@dataclass
class CustomerIdentity:
    """Existing customer making a purchase"""

    user_id: str
    identity_provider_id: Optional[str] = None
    email: Optional[str] = None


@dataclass
class PurchaseAttempt:
    """
    Transient purchase being checked, not yet persisted.

    customer is None for a guest whose record has not been created yet.
    """

    amount: Decimal
    referral_code: str
    origin_ip: Optional[str] = None
    customer: Optional[CustomerIdentity] = None
    customer_email: Optional[str] = None


class ResolutionStatus(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class CodeResolution:
    """Outcome of looking up a referral code"""

    status: ResolutionStatus
    referrer: Optional[Referrer] = None

    @property
    def found(self) -> bool:
        return self.status == ResolutionStatus.FOUND

    def raise_for_status(self) -> Referrer:
        """Return the referrer, or raise if the code cannot be used"""
        if self.status == ResolutionStatus.MALFORMED:
            raise MalformedReferralCode("Invalid referral code format")
        if self.status == ResolutionStatus.NOT_FOUND or self.referrer is None:
            raise ReferralCodeNotFound("Referral code not found")
        return self.referrer


class IdentityStatus(str, Enum):
    VERIFIED = "verified"
    UNVERIFIED = "unverified"
    NOT_APPLICABLE = "not_applicable"  # guest, no provider record, or checks disabled
    DEGRADED = "degraded"  # provider lookup failed or timed out


@dataclass(frozen=True)
class RiskSignal:
    """Contribution of a single heuristic to the fraud score"""

    name: str
    weight: int
    triggered: bool
    explanation: str = ""


@dataclass(frozen=True)
class RiskDecision:
    """Aggregated fraud score for one purchase attempt"""

    score: int
    flags: Tuple[str, ...]
    accepted: bool


@dataclass
class EvaluationContext:
    """Everything the signal evaluators look at for one attempt"""

    attempt: PurchaseAttempt
    referrer: Referrer
    origin_purchase_count: int = 0
    origin_purchase_count_window: int = 0
    identity_status: IdentityStatus = IdentityStatus.NOT_APPLICABLE


class RejectionReason(str, Enum):
    INVALID_REFERRAL_CODE = "InvalidReferralCode"
    FRAUD_SUSPECTED = "FraudSuspected"
    FRAUD_CHECK_UNAVAILABLE = "FraudCheckUnavailable"


@dataclass(frozen=True)
class ValidationResult:
    """Output of purchase validation consumed by the purchase workflow"""

    accepted: bool
    score: Optional[int] = None
    reason: Optional[RejectionReason] = None
    flags: Tuple[str, ...] = field(default_factory=tuple)
    message: str = ""
    referrer: Optional[Referrer] = None
    customer: Optional[CustomerIdentity] = None
