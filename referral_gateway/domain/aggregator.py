"""Fold risk signals into a single fraud score and accept/reject decision"""

from typing import Iterable

from referral_gateway.domain.models import FraudConfig, RiskDecision, RiskSignal
from referral_gateway.domain.signals import SIGNAL_ORDER


def _canonical_position(signal: RiskSignal) -> int:
    try:
        return SIGNAL_ORDER.index(signal.name)
    except ValueError:
        # Unknown signals report after the built-in ones
        return len(SIGNAL_ORDER)


def aggregate(signals: Iterable[RiskSignal], config: FraudConfig | None = None) -> RiskDecision:
    """
    Combine signals into a RiskDecision.

    - score: sum of weights of triggered signals, no cap
    - flags: explanations of triggered signals in canonical evaluator order,
      whatever order the signals arrive in
    - accepted: score < threshold (70 by default); exactly 70 rejects
    """
    config = config or FraudConfig()
    triggered = sorted(
        (s for s in signals if s.triggered),
        key=_canonical_position,  # stable: ties keep arrival order
    )

    score = sum(s.weight for s in triggered)
    flags = tuple(s.explanation for s in triggered)

    return RiskDecision(
        score=score,
        flags=flags,
        accepted=score < config.fraud_threshold,
    )
