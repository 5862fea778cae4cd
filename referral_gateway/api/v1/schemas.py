"""Pydantic schemas for API request/response validation"""

from decimal import Decimal
from pydantic import BaseModel, Field
from typing import Dict, List, Literal, Optional


class ReferralCodeRequest(BaseModel):
    """Request body for POST /v1/referral-codes/validate"""

    referral_code: str = Field(..., description="Referral code, with or without the display hyphen")


class ReferralCodeResponse(BaseModel):
    """Response for POST /v1/referral-codes/validate"""

    valid: bool
    status: str  # found | not_found | malformed
    referral_code: Optional[str] = None  # display form, e.g. ABCD-EFGH
    referrer_id: Optional[str] = None


class PurchaseValidationRequest(BaseModel):
    """Request body for POST /v1/purchases/validate"""

    referral_code: str = Field(..., min_length=1, description="Referral code used for the purchase")
    amount: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2, description="Purchase amount in dollars")
    customer_email: Optional[str] = Field(None, description="Buyer email, used to find an existing customer")
    customer_id: Optional[str] = Field(None, description="Existing customer identifier")


class PurchaseRequest(PurchaseValidationRequest):
    """Request body for POST /v1/purchases"""

    customer_name: str = Field(..., min_length=1, description="Buyer name")
    description: Optional[str] = None


class ValidationResponse(BaseModel):
    """Outcome of a purchase validation"""

    accepted: bool
    score: Optional[int] = None
    reason: Optional[str] = None  # InvalidReferralCode | FraudSuspected | FraudCheckUnavailable
    flags: List[str] = []
    message: str = ""


class RewardSchema(BaseModel):
    """Pending reward created for the referrer"""

    reward_id: str
    reward_type: str
    reward_value: Decimal
    status: str


class PurchaseResponse(BaseModel):
    """Response for POST /v1/purchases"""

    purchase_id: str
    referrer_id: str
    customer_id: str
    amount: Decimal
    status: str
    fraud_score: Optional[int] = None
    reward: Optional[RewardSchema] = None


class PurchaseItem(BaseModel):
    """Single purchase in a history or review listing"""

    purchase_id: str
    referrer_id: str
    customer_id: str
    amount: Decimal
    status: str
    created_at: str


class PurchaseHistoryResponse(BaseModel):
    """Response for GET /v1/purchases"""

    referrer_id: str
    purchases: List[PurchaseItem]


class FraudStatisticsResponse(BaseModel):
    """Response for GET /v1/fraud/statistics"""

    flagged_transactions: int
    total_reviewed: int
    average_fraud_score: float


class PendingPurchasesResponse(BaseModel):
    """Response for GET /v1/purchases/pending"""

    purchases: List[PurchaseItem]


class PurchaseStatusRequest(BaseModel):
    """Request body for PATCH /v1/purchases/{purchase_id}/status"""

    reviewer_id: str = Field(..., min_length=1, description="Admin performing the update")
    status: Literal["pending", "completed", "cancelled"]


class PurchaseStatisticsResponse(BaseModel):
    """Response for GET /v1/purchases/statistics"""

    total_purchases: int
    completed_amount: Decimal
    pending_purchases: int
    conversion_rate: float  # purchases per registered customer, percent


class RewardItem(BaseModel):
    """Reward as seen by admins and referrers"""

    reward_id: str
    purchase_id: str
    referrer_id: str
    reward_type: str
    reward_value: Decimal
    status: str
    reviewed_by: Optional[str] = None
    review_notes: Optional[str] = None
    created_at: str


class RewardListResponse(BaseModel):
    rewards: List[RewardItem]


class RewardReviewRequest(BaseModel):
    """Request body for POST /v1/rewards/{reward_id}/review"""

    reviewer_id: str = Field(..., min_length=1, description="Admin performing the review")
    status: Literal["approved", "rejected"]
    review_notes: Optional[str] = Field(None, description="Why the reward was approved or rejected")


class RewardStatisticsResponse(BaseModel):
    """Response for GET /v1/rewards/statistics"""

    total_rewards_amount: Decimal
    approved_rewards_amount: Decimal
    pending_rewards_amount: Decimal
    rejected_rewards_amount: Decimal
    approved_by_type: Dict[str, Decimal] = {}
