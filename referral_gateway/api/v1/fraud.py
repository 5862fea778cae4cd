"""GET /v1/fraud/statistics - fraud check summary for the admin dashboard"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from referral_gateway.api.v1.schemas import FraudStatisticsResponse
from referral_gateway.infrastructure.database.session import get_db
from referral_gateway.infrastructure.database.repositories import FraudCheckRepository

router = APIRouter()


@router.get("/fraud/statistics", response_model=FraudStatisticsResponse)
def get_fraud_statistics(db: Session = Depends(get_db)):
    """Flagged transactions, total checks reviewed and average fraud score"""
    return FraudStatisticsResponse(**FraudCheckRepository(db).statistics())
