"""
Risk signal evaluators.

Each evaluator is a pure function of the evaluation context and the fraud
configuration. A condition that does not hold yields an untriggered signal
with weight 0; evaluators never raise.

Scoring table (default weights, threshold 70):

    below_minimum_amount          amount < $50.00                          30
    unverified_identity           primary email not verified               40
                                  (provider lookup failed: flag only)       0
    self_referral                 customer is the referrer                100
    excess_origin_purchases       >= 5 purchases from the origin IP         50
    excess_origin_purchases_24h   >= 10 from the origin IP in 24 hours      70
    missing_origin                origin IP absent or unknown               20

Only self-referral and the 24h rate signal reach the threshold on their own.
"""

from typing import Callable, Tuple

from referral_gateway.domain.models import (
    EvaluationContext,
    FraudConfig,
    IdentityStatus,
    RiskSignal,
)

BELOW_MINIMUM_AMOUNT = "below_minimum_amount"
UNVERIFIED_IDENTITY = "unverified_identity"
SELF_REFERRAL = "self_referral"
EXCESS_ORIGIN_PURCHASES = "excess_origin_purchases"
EXCESS_ORIGIN_PURCHASES_WINDOW = "excess_origin_purchases_24h"
MISSING_ORIGIN = "missing_origin"

# Placeholder values some proxies and clients send instead of an address
_UNKNOWN_ORIGINS = {"", "unknown"}


def _not_triggered(name: str) -> RiskSignal:
    return RiskSignal(name=name, weight=0, triggered=False)


def is_origin_missing(origin_ip: str | None) -> bool:
    return origin_ip is None or origin_ip.strip().lower() in _UNKNOWN_ORIGINS


def check_below_minimum_amount(ctx: EvaluationContext, config: FraudConfig) -> RiskSignal:
    if ctx.attempt.amount < config.min_purchase_amount:
        return RiskSignal(
            name=BELOW_MINIMUM_AMOUNT,
            weight=config.below_minimum_weight,
            triggered=True,
            explanation="Purchase amount below minimum threshold",
        )
    return _not_triggered(BELOW_MINIMUM_AMOUNT)


def check_unverified_identity(ctx: EvaluationContext, config: FraudConfig) -> RiskSignal:
    if ctx.identity_status == IdentityStatus.UNVERIFIED:
        return RiskSignal(
            name=UNVERIFIED_IDENTITY,
            weight=config.unverified_identity_weight,
            triggered=True,
            explanation="Email not verified",
        )
    if ctx.identity_status == IdentityStatus.DEGRADED:
        return RiskSignal(
            name=UNVERIFIED_IDENTITY,
            weight=config.identity_degraded_weight,
            triggered=True,
            explanation="Unable to verify identity",
        )
    return _not_triggered(UNVERIFIED_IDENTITY)


def check_self_referral(ctx: EvaluationContext, config: FraudConfig) -> RiskSignal:
    customer = ctx.attempt.customer
    if customer is not None and customer.user_id == ctx.referrer.user_id:
        return RiskSignal(
            name=SELF_REFERRAL,
            weight=config.self_referral_weight,
            triggered=True,
            explanation="Self-referral detected",
        )
    return _not_triggered(SELF_REFERRAL)


def check_excess_origin_purchases(ctx: EvaluationContext, config: FraudConfig) -> RiskSignal:
    count = ctx.origin_purchase_count
    if not is_origin_missing(ctx.attempt.origin_ip) and count >= config.max_purchases_per_ip:
        return RiskSignal(
            name=EXCESS_ORIGIN_PURCHASES,
            weight=config.excess_origin_weight,
            triggered=True,
            explanation=f"Excessive purchases from IP address: {count}",
        )
    return _not_triggered(EXCESS_ORIGIN_PURCHASES)


def check_excess_origin_purchases_window(ctx: EvaluationContext, config: FraudConfig) -> RiskSignal:
    count = ctx.origin_purchase_count_window
    if not is_origin_missing(ctx.attempt.origin_ip) and count >= config.max_purchases_per_ip_window:
        return RiskSignal(
            name=EXCESS_ORIGIN_PURCHASES_WINDOW,
            weight=config.excess_origin_window_weight,
            triggered=True,
            explanation=f"Too many purchases from IP in {config.purchase_window_hours} hours: {count}",
        )
    return _not_triggered(EXCESS_ORIGIN_PURCHASES_WINDOW)


def check_missing_origin(ctx: EvaluationContext, config: FraudConfig) -> RiskSignal:
    if is_origin_missing(ctx.attempt.origin_ip):
        return RiskSignal(
            name=MISSING_ORIGIN,
            weight=config.missing_origin_weight,
            triggered=True,
            explanation="Missing IP address",
        )
    return _not_triggered(MISSING_ORIGIN)


Evaluator = Callable[[EvaluationContext, FraudConfig], RiskSignal]

# Canonical order: flags are always reported in this order
SIGNAL_EVALUATORS: Tuple[Evaluator, ...] = (
    check_below_minimum_amount,
    check_unverified_identity,
    check_self_referral,
    check_excess_origin_purchases,
    check_excess_origin_purchases_window,
    check_missing_origin,
)

SIGNAL_ORDER: Tuple[str, ...] = (
    BELOW_MINIMUM_AMOUNT,
    UNVERIFIED_IDENTITY,
    SELF_REFERRAL,
    EXCESS_ORIGIN_PURCHASES,
    EXCESS_ORIGIN_PURCHASES_WINDOW,
    MISSING_ORIGIN,
)


def evaluate_signals(ctx: EvaluationContext, config: FraudConfig) -> list[RiskSignal]:
    """Run every evaluator against the context, in canonical order"""
    return [evaluator(ctx, config) for evaluator in SIGNAL_EVALUATORS]
