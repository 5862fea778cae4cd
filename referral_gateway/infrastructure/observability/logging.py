"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger

from referral_gateway.domain.models import RejectionReason, ValidationResult


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def __init__(self, *args, service_name: str = "referral-gateway", **kwargs):
        super().__init__(*args, **kwargs)
        self.service_name = service_name

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = self.service_name


def setup_logging(level: str = "INFO", service_name: str = "referral-gateway") -> None:
    """Configure structured JSON logging on the root logger"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s", service_name=service_name)
    )
    logger.addHandler(handler)


def log_fraud_check(
    request_id: str,
    referral_code: str,
    origin_ip: str | None,
    result: ValidationResult,
    duration_ms: float,
) -> None:
    """Log one structured record per purchase validation for later admin review"""
    extra = {
        "request_id": request_id,
        "referral_code": referral_code,
        "origin_ip": origin_ip,
        "step": "fraud_check_complete",
        "outcome": "accepted" if result.accepted else result.reason.value,
        "fraud_score": result.score,
        "flags": list(result.flags),
        "duration_ms": duration_ms,
    }
    if result.accepted:
        logging.info("Fraud check completed", extra=extra)
    elif result.reason == RejectionReason.INVALID_REFERRAL_CODE:
        # Input error, not a security incident
        logging.info("Purchase rejected: invalid referral code", extra=extra)
    else:
        logging.warning("Purchase rejected by fraud check", extra=extra)
