"""POST /v1/referral-codes/validate - check a referral code before checkout"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from referral_gateway.api.v1.schemas import ReferralCodeRequest, ReferralCodeResponse
from referral_gateway.infrastructure.database.session import get_db
from referral_gateway.infrastructure.database.repositories import SqlRecordStore
from referral_gateway.domain.referral_codes import format_referral_code, resolve_referral_code

router = APIRouter()


@router.post("/referral-codes/validate", response_model=ReferralCodeResponse)
def validate_referral_code(request_body: ReferralCodeRequest, db: Session = Depends(get_db)):
    """
    Resolve a referral code to its referrer.

    Unknown and malformed codes are normal outcomes reported with
    valid=false, not errors.
    """
    resolution = resolve_referral_code(request_body.referral_code, SqlRecordStore(db))

    if not resolution.found:
        return ReferralCodeResponse(valid=False, status=resolution.status.value)

    return ReferralCodeResponse(
        valid=True,
        status=resolution.status.value,
        referral_code=format_referral_code(resolution.referrer.referral_code),
        referrer_id=resolution.referrer.user_id,
    )
