"""Purchase endpoints - fraud-checked purchase creation, history and admin review"""

import time
import logging
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from referral_gateway.api.v1.schemas import (
    PendingPurchasesResponse,
    PurchaseHistoryResponse,
    PurchaseItem,
    PurchaseRequest,
    PurchaseResponse,
    PurchaseStatisticsResponse,
    PurchaseStatusRequest,
    PurchaseValidationRequest,
    RewardSchema,
    ValidationResponse,
)
from referral_gateway.api.dependencies import get_origin_ip, get_purchase_validator, get_request_id, require_admin
from referral_gateway.config import settings
from referral_gateway.infrastructure.database.session import get_db
from referral_gateway.infrastructure.database.models import Purchase
from referral_gateway.infrastructure.database.repositories import (
    FraudCheckRepository,
    PurchaseRepository,
    RewardRepository,
    UserRepository,
)
from referral_gateway.domain.exceptions import FraudCheckUnavailable, InvalidReferralCode
from referral_gateway.domain.models import RejectionReason, ValidationResult
from referral_gateway.domain.referral_codes import resolve_referral_code
from referral_gateway.domain.validation import PurchaseValidator
from referral_gateway.infrastructure.observability.metrics import (
    purchase_created_counter,
    record_fraud_check,
    review_counter,
)
from referral_gateway.infrastructure.observability.logging import log_fraud_check

router = APIRouter()


def _to_purchase_item(purchase: Purchase) -> PurchaseItem:
    return PurchaseItem(
        purchase_id=purchase.id,
        referrer_id=purchase.referrer_id,
        customer_id=purchase.customer_id,
        amount=purchase.amount,
        status=purchase.status,
        created_at=purchase.created_at.isoformat(),
    )


def _to_validation_response(result: ValidationResult) -> ValidationResponse:
    return ValidationResponse(
        accepted=result.accepted,
        score=result.score,
        reason=result.reason.value if result.reason else None,
        flags=list(result.flags),
        message=result.message,
    )


async def _run_fraud_check(
    body: PurchaseValidationRequest,
    origin_ip: str | None,
    validator: PurchaseValidator,
    request_id: str,
) -> ValidationResult:
    """Validate under the configured deadline; unavailability fails closed unless configured otherwise"""
    start_time = time.time()
    try:
        result = await validator.validate_within(
            timeout_seconds=settings.fraud_check_timeout_seconds,
            fail_open=settings.fraud_check_fail_open,
            amount=body.amount,
            origin_ip=origin_ip,
            referral_code=body.referral_code,
            customer_email=body.customer_email,
            customer_id=body.customer_id,
        )
    except FraudCheckUnavailable as e:
        logging.error(f"Fraud check unavailable: {e}", extra={"request_id": request_id})
        result = ValidationResult(
            accepted=False,
            reason=RejectionReason.FRAUD_CHECK_UNAVAILABLE,
            message=str(e),
        )
    finally:
        # A timed-out check can leave a read running on the request session
        await validator.settle()

    duration_ms = (time.time() - start_time) * 1000
    record_fraud_check(result)
    log_fraud_check(request_id, body.referral_code, origin_ip, result, duration_ms)
    return result


@router.post("/purchases/validate", response_model=ValidationResponse)
async def validate_purchase(
    request_body: PurchaseValidationRequest,
    request: Request,
    validator: PurchaseValidator = Depends(get_purchase_validator),
):
    """
    Dry-run the fraud check for a purchase without persisting anything.

    Rejections are returned in the body with HTTP 200; an unavailable record
    store is answered with 503 by the application handler.
    """
    result = await _run_fraud_check(request_body, get_origin_ip(request), validator, get_request_id(request))
    return _to_validation_response(result)


@router.post("/purchases", response_model=PurchaseResponse)
async def create_purchase(
    request_body: PurchaseRequest,
    request: Request,
    db: Session = Depends(get_db),
    validator: PurchaseValidator = Depends(get_purchase_validator),
):
    """
    Create a purchase made with a referral code.

    Flow:
    1. Run the fraud check (origin IP taken from X-Forwarded-For)
    2. Record the fraud check outcome
    3. Reject invalid codes and suspected fraud with 400
    4. Find or create the customer, persist a pending purchase
    5. Create a pending cash reward for the referrer
    """
    request_id = get_request_id(request)
    origin_ip = get_origin_ip(request)
    users = UserRepository(db)
    fraud_checks = FraudCheckRepository(db)

    if request_body.customer_id and users.get_user(request_body.customer_id) is None:
        raise HTTPException(status_code=404, detail="Customer not found")

    result = await _run_fraud_check(request_body, origin_ip, validator, request_id)

    if not result.accepted:
        fraud_checks.record(request_body.referral_code, origin_ip, request_body.amount, result)
        db.commit()
        status_code = 503 if result.reason == RejectionReason.FRAUD_CHECK_UNAVAILABLE else 400
        raise HTTPException(
            status_code=status_code,
            detail={
                "reason": result.reason.value,
                "message": result.message,
                "flags": list(result.flags),
            },
        )

    referrer = result.referrer
    if referrer is None:
        # Fail-open acceptance after a timeout carries no resolved referrer
        try:
            referrer = resolve_referral_code(request_body.referral_code, validator.store).raise_for_status()
        except InvalidReferralCode as e:
            raise HTTPException(
                status_code=400,
                detail={"reason": RejectionReason.INVALID_REFERRAL_CODE.value, "message": str(e), "flags": []},
            )

    try:
        if result.customer is not None:
            customer_id = result.customer.user_id
        else:
            customer_id = users.get_or_create_guest_customer(
                name=request_body.customer_name,
                email=request_body.customer_email,
            ).id

        purchase = PurchaseRepository(db).create_purchase(
            referrer_id=referrer.user_id,
            customer_id=customer_id,
            amount=request_body.amount,
            ip_address=origin_ip,
            description=request_body.description,
        )
        reward = RewardRepository(db).create_pending_reward(purchase, settings.referral_reward_amount)
        fraud_checks.record(
            request_body.referral_code,
            origin_ip,
            request_body.amount,
            result,
            purchase_id=purchase.id,
        )
        db.commit()

    except Exception as e:
        db.rollback()
        logging.error(f"Failed to persist purchase: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    purchase_created_counter.inc()
    logging.info(
        "Purchase created",
        extra={
            "request_id": request_id,
            "purchase_id": purchase.id,
            "referrer_id": referrer.user_id,
            "reward_id": reward.id,
        },
    )

    return PurchaseResponse(
        purchase_id=purchase.id,
        referrer_id=purchase.referrer_id,
        customer_id=purchase.customer_id,
        amount=purchase.amount,
        status=purchase.status,
        fraud_score=result.score,
        reward=RewardSchema(
            reward_id=reward.id,
            reward_type=reward.reward_type,
            reward_value=reward.reward_value,
            status=reward.status,
        ),
    )


@router.get("/purchases", response_model=PurchaseHistoryResponse)
def get_purchase_history(
    referrer_id: str = Query(..., description="Referrer identifier"),
    db: Session = Depends(get_db),
):
    """Recent purchases made with a referrer's code, newest first"""
    purchases = PurchaseRepository(db).get_purchases_by_referrer(referrer_id, limit=20)

    return PurchaseHistoryResponse(
        referrer_id=referrer_id,
        purchases=[_to_purchase_item(p) for p in purchases],
    )


@router.get("/purchases/pending", response_model=PendingPurchasesResponse)
def get_pending_purchases(db: Session = Depends(get_db)):
    """Purchases awaiting admin review, oldest first"""
    purchases = PurchaseRepository(db).get_pending_purchases()
    return PendingPurchasesResponse(purchases=[_to_purchase_item(p) for p in purchases])


@router.get("/purchases/statistics", response_model=PurchaseStatisticsResponse)
def get_purchase_statistics(db: Session = Depends(get_db)):
    return PurchaseStatisticsResponse(**PurchaseRepository(db).statistics())


@router.patch("/purchases/{purchase_id}/status", response_model=PurchaseItem)
def update_purchase_status(
    purchase_id: str,
    request_body: PurchaseStatusRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    """Admin-only: move a purchase between pending, completed and cancelled"""
    reviewer = require_admin(db, request_body.reviewer_id)
    purchases = PurchaseRepository(db)

    purchase = purchases.get_purchase(purchase_id)
    if purchase is None:
        raise HTTPException(status_code=404, detail="Purchase not found")

    purchases.update_status(purchase, request_body.status)
    db.commit()

    review_counter.labels(subject="purchase", status=request_body.status).inc()
    logging.info(
        "Purchase status updated",
        extra={
            "request_id": get_request_id(request),
            "purchase_id": purchase.id,
            "status": purchase.status,
            "reviewer_id": reviewer.id,
        },
    )
    return _to_purchase_item(purchase)
