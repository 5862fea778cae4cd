"""Purchase validation - the single gate in front of purchase and reward creation"""

import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Protocol

from referral_gateway.domain.aggregator import aggregate
from referral_gateway.domain.exceptions import (
    FraudCheckUnavailable,
    FraudSuspected,
    IdentityLookupDegraded,
    IdentityProviderError,
    InvalidReferralCode,
)
from referral_gateway.domain.models import (
    CustomerIdentity,
    EvaluationContext,
    FraudConfig,
    IdentityStatus,
    PurchaseAttempt,
    Referrer,
    RejectionReason,
    ValidationResult,
)
from referral_gateway.domain.referral_codes import resolve_referral_code
from referral_gateway.domain.signals import evaluate_signals, is_origin_missing


class RecordStore(Protocol):
    """Read access to users and purchases. Implementations raise StoreUnavailable on read failure."""

    def find_referrer_by_code(self, code: str) -> Optional[Referrer]: ...

    def find_customer_by_id(self, user_id: str) -> Optional[CustomerIdentity]: ...

    def find_customer_by_email(self, email: str) -> Optional[CustomerIdentity]: ...

    def count_purchases_by_origin_ip(self, ip: str, since: Optional[datetime] = None) -> int: ...


class IdentityProvider(Protocol):
    """Hosted identity provider. May raise IdentityProviderError."""

    async def is_primary_contact_verified(self, identity_id: str) -> bool: ...


def meets_minimum_purchase_amount(amount: Decimal, config: FraudConfig | None = None) -> bool:
    """Check if a purchase amount reaches the minimum for referral credit"""
    config = config or FraudConfig()
    return amount >= config.min_purchase_amount


class PurchaseValidator:
    """
    Validates a purchase attempt made with a referral code.

    Flow (linear, no retries):
    1. Resolve the referral code; malformed or unknown codes fail fast
    2. Resolve the customer (by id, then email; otherwise a guest)
    3. Gather origin-IP counts and the identity verification status
    4. Run every risk signal evaluator and aggregate
    5. Reject with FraudSuspected at or above the threshold, otherwise accept

    Only reads are performed; persisting the purchase is the caller's job.
    """

    def __init__(self, store: RecordStore, identity_provider: IdentityProvider, config: FraudConfig | None = None):
        self.store = store
        self.identity_provider = identity_provider
        self.config = config or FraudConfig()
        self._pending_read: Optional[asyncio.Task] = None

    async def validate(
        self,
        amount: Decimal,
        origin_ip: Optional[str],
        referral_code: str,
        customer_email: Optional[str] = None,
        customer_id: Optional[str] = None,
    ) -> ValidationResult:
        resolution = await self._read_store(resolve_referral_code, referral_code, self.store)
        try:
            referrer = resolution.raise_for_status()
        except InvalidReferralCode as e:
            logging.info(f"Referral code rejected: {e}", extra={"referral_code": referral_code})
            return ValidationResult(
                accepted=False,
                reason=RejectionReason.INVALID_REFERRAL_CODE,
                message=str(e),
            )

        customer = await self._read_store(self._resolve_customer, customer_id, customer_email)
        attempt = PurchaseAttempt(
            amount=Decimal(amount),
            referral_code=referrer.referral_code,
            origin_ip=origin_ip,
            customer=customer,
            customer_email=customer_email,
        )

        ctx = await self._build_context(attempt, referrer)
        signals = evaluate_signals(ctx, self.config)
        decision = aggregate(signals, self.config)

        if not decision.accepted:
            return ValidationResult(
                accepted=False,
                score=decision.score,
                reason=RejectionReason.FRAUD_SUSPECTED,
                flags=decision.flags,
                message=str(FraudSuspected(decision.flags)),
                referrer=referrer,
                customer=customer,
            )

        return ValidationResult(
            accepted=True,
            score=decision.score,
            flags=decision.flags,
            message="Purchase validated successfully",
            referrer=referrer,
            customer=customer,
        )

    async def validate_within(
        self,
        timeout_seconds: float,
        fail_open: bool = False,
        **kwargs,
    ) -> ValidationResult:
        """
        Run validate() under an overall deadline.

        On timeout a fail-closed validator raises FraudCheckUnavailable; a
        fail-open one accepts without a score. A store read still running at
        the deadline is left to settle().
        """
        try:
            return await asyncio.wait_for(self.validate(**kwargs), timeout=timeout_seconds)
        except asyncio.TimeoutError as e:
            if not fail_open:
                raise FraudCheckUnavailable(f"Fraud check did not complete within {timeout_seconds}s") from e

            logging.warning("Fraud check timed out, accepting (fail-open)")
            return ValidationResult(
                accepted=True,
                flags=("Fraud check unavailable",),
                message="Fraud check unavailable",
            )

    async def settle(self) -> None:
        """
        Wait for a store read left running by a timed-out validation.

        Blocking reads cannot be interrupted; callers sharing the store's
        session must settle before using it again.
        """
        pending = self._pending_read
        if pending is None or pending.done():
            return
        await asyncio.wait([pending])
        if not pending.cancelled() and pending.exception() is not None:
            logging.warning(f"Store read finished after the deadline with an error: {pending.exception()}")

    async def _read_store(self, read, *args):
        """Run a blocking store read in a worker thread, one at a time"""
        self._pending_read = asyncio.ensure_future(asyncio.to_thread(read, *args))
        # A deadline cancels this wait; the read itself runs on until settle()
        return await asyncio.shield(self._pending_read)

    def _resolve_customer(self, customer_id: Optional[str], customer_email: Optional[str]) -> Optional[CustomerIdentity]:
        if customer_id:
            return self.store.find_customer_by_id(customer_id)
        if customer_email:
            return self.store.find_customer_by_email(customer_email)
        return None

    async def _build_context(self, attempt: PurchaseAttempt, referrer: Referrer) -> EvaluationContext:
        # The provider call runs on the loop while the counts run in a worker thread
        identity_task = asyncio.create_task(self._identity_status(attempt.customer))

        try:
            origin_count, origin_count_window = await self._read_store(self._origin_counts, attempt.origin_ip)
        except BaseException:
            # Includes cancellation by the overall deadline
            identity_task.cancel()
            raise

        return EvaluationContext(
            attempt=attempt,
            referrer=referrer,
            origin_purchase_count=origin_count,
            origin_purchase_count_window=origin_count_window,
            identity_status=await identity_task,
        )

    def _origin_counts(self, origin_ip: Optional[str]) -> tuple[int, int]:
        """All-time and in-window purchase counts for the origin, read one after the other"""
        if is_origin_missing(origin_ip):
            return 0, 0
        since = datetime.now(timezone.utc) - self.config.purchase_window
        return (
            self.store.count_purchases_by_origin_ip(origin_ip),
            self.store.count_purchases_by_origin_ip(origin_ip, since=since),
        )

    async def _identity_status(self, customer: Optional[CustomerIdentity]) -> IdentityStatus:
        if not self.config.require_identity_verification:
            return IdentityStatus.NOT_APPLICABLE
        if customer is None or not customer.identity_provider_id:
            return IdentityStatus.NOT_APPLICABLE

        try:
            verified = await self._lookup_identity(customer.identity_provider_id)
        except IdentityLookupDegraded as e:
            logging.warning(f"Identity lookup degraded: {e}", extra={"customer_id": customer.user_id})
            return IdentityStatus.DEGRADED

        return IdentityStatus.VERIFIED if verified else IdentityStatus.UNVERIFIED

    async def _lookup_identity(self, identity_id: str) -> bool:
        timeout = self.config.identity_lookup_timeout_seconds
        try:
            return await asyncio.wait_for(
                self.identity_provider.is_primary_contact_verified(identity_id),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise IdentityLookupDegraded(f"identity provider did not answer within {timeout}s") from e
        except IdentityProviderError as e:
            raise IdentityLookupDegraded(str(e)) from e
