"""Prometheus metrics for monitoring fraud decisions, signals and dependency health"""

from prometheus_client import Counter, Histogram

from referral_gateway.domain.models import ValidationResult

# Fraud check metrics
fraud_check_counter = Counter(
    "referral_fraud_check_total",
    "Total purchase validations performed",
    ["outcome"],  # accepted | InvalidReferralCode | FraudSuspected | FraudCheckUnavailable
)

fraud_score_histogram = Histogram(
    "referral_fraud_score",
    "Fraud score of scored purchase attempts",
    buckets=[0, 20, 30, 40, 50, 60, 69, 70, 100, 150, 200, 300],
)

signal_triggered_counter = Counter(
    "referral_fraud_signal_triggered_total",
    "Risk signals raised, by flag",
    ["flag"],
)

# Purchase workflow metrics
purchase_created_counter = Counter(
    "referral_purchase_created_total",
    "Purchases persisted with a pending reward",
)

review_counter = Counter(
    "referral_review_total",
    "Admin review decisions",
    ["subject", "status"],  # subject: purchase | reward
)

# Dependency metrics
identity_lookup_failures_counter = Counter(
    "identity_lookup_failures_total",
    "Failed identity provider lookups",
    ["reason"],  # timeout | http_error | network | invalid_response
)

store_failures_counter = Counter(
    "record_store_failures_total",
    "Record store reads that aborted a validation",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_fraud_check(result: ValidationResult) -> None:
    """Record validation outcome, score distribution and raised flags"""
    outcome = "accepted" if result.accepted else result.reason.value
    fraud_check_counter.labels(outcome=outcome).inc()

    if result.score is not None:
        fraud_score_histogram.observe(result.score)

    for flag in result.flags:
        # Drop the trailing count so label cardinality stays bounded
        signal_triggered_counter.labels(flag=flag.split(":")[0]).inc()
