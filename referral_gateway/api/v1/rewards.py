"""Reward endpoints - referrer listings and the admin approval workflow"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from referral_gateway.api.v1.schemas import (
    RewardItem,
    RewardListResponse,
    RewardReviewRequest,
    RewardStatisticsResponse,
)
from referral_gateway.api.dependencies import get_request_id, require_admin
from referral_gateway.infrastructure.database.models import Reward
from referral_gateway.infrastructure.database.repositories import RewardRepository
from referral_gateway.infrastructure.database.session import get_db
from referral_gateway.infrastructure.observability.metrics import review_counter

router = APIRouter()


def _to_reward_item(reward: Reward) -> RewardItem:
    return RewardItem(
        reward_id=reward.id,
        purchase_id=reward.purchase_id,
        referrer_id=reward.referrer_id,
        reward_type=reward.reward_type,
        reward_value=reward.reward_value,
        status=reward.status,
        reviewed_by=reward.reviewed_by,
        review_notes=reward.review_notes,
        created_at=reward.created_at.isoformat(),
    )


@router.get("/rewards", response_model=RewardListResponse)
def get_rewards_by_referrer(
    referrer_id: str = Query(..., description="Referrer identifier"),
    db: Session = Depends(get_db),
):
    """Rewards earned by a referrer, newest first"""
    rewards = RewardRepository(db).get_rewards_by_referrer(referrer_id)
    return RewardListResponse(rewards=[_to_reward_item(r) for r in rewards])


@router.get("/rewards/pending", response_model=RewardListResponse)
def get_pending_rewards(db: Session = Depends(get_db)):
    """Rewards awaiting admin review, oldest first"""
    rewards = RewardRepository(db).get_pending_rewards()
    return RewardListResponse(rewards=[_to_reward_item(r) for r in rewards])


@router.get("/rewards/statistics", response_model=RewardStatisticsResponse)
def get_reward_statistics(db: Session = Depends(get_db)):
    return RewardStatisticsResponse(**RewardRepository(db).statistics())


@router.post("/rewards/{reward_id}/review", response_model=RewardItem)
def review_reward(
    reward_id: str,
    request_body: RewardReviewRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    """
    Approve or reject a pending reward.

    Only admins may review, and a reward is reviewed once: approving or
    rejecting an already reviewed reward is a 409.
    """
    reviewer = require_admin(db, request_body.reviewer_id)
    rewards = RewardRepository(db)

    reward = rewards.get_reward(reward_id)
    if reward is None:
        raise HTTPException(status_code=404, detail="Reward not found")
    if reward.status != "pending":
        raise HTTPException(status_code=409, detail=f"Reward already {reward.status}")

    rewards.review(reward, request_body.status, reviewer.id, request_body.review_notes)
    db.commit()

    review_counter.labels(subject="reward", status=request_body.status).inc()
    logging.info(
        f"Reward {request_body.status}",
        extra={
            "request_id": get_request_id(request),
            "reward_id": reward.id,
            "referrer_id": reward.referrer_id,
            "reviewer_id": reviewer.id,
        },
    )
    return _to_reward_item(reward)
