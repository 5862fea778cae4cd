"""Domain-specific exceptions"""

from typing import Sequence


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class InvalidReferralCode(DomainException):
    """Referral code cannot be used for a purchase"""

    pass


class MalformedReferralCode(InvalidReferralCode):
    """Referral code does not have the 8-character format"""

    pass


class ReferralCodeNotFound(InvalidReferralCode):
    """Well-formed referral code with no matching referrer"""

    pass


class IdentityProviderError(DomainException):
    """Identity provider returned an error or is unavailable"""

    pass


class IdentityLookupDegraded(DomainException):
    """Identity verification could not be completed; recorded as a signal"""

    pass


class FraudSuspected(DomainException):
    """Purchase scored at or above the fraud threshold"""

    def __init__(self, flags: Sequence[str]):
        self.flags = list(flags)
        super().__init__(f"Purchase flagged as potentially fraudulent: {', '.join(self.flags)}")


class StoreUnavailable(DomainException):
    """Record store read failed; the validation must fail closed"""

    pass


class FraudCheckUnavailable(DomainException):
    """Fraud check did not finish within its deadline"""

    pass
