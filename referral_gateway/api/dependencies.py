"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session
from referral_gateway.config import settings
from referral_gateway.domain.validation import PurchaseValidator
from referral_gateway.infrastructure.clients.identity import IdentityProviderClient
from referral_gateway.infrastructure.database.models import User
from referral_gateway.infrastructure.database.repositories import SqlRecordStore, UserRepository
from referral_gateway.infrastructure.database.session import get_db


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_origin_ip(request: Request) -> str | None:
    """Client IP from the first X-Forwarded-For hop; None when the proxy didn't send one"""
    forwarded = request.headers.get("x-forwarded-for")
    if not forwarded:
        return None
    return forwarded.split(",")[0].strip() or None


def get_identity_provider() -> IdentityProviderClient:
    """Provide identity provider client instance"""
    return IdentityProviderClient()


def get_purchase_validator(
    db: Session = Depends(get_db),
    identity_provider: IdentityProviderClient = Depends(get_identity_provider),
) -> PurchaseValidator:
    """Provide a validator reading from the request's database session"""
    return PurchaseValidator(
        store=SqlRecordStore(db),
        identity_provider=identity_provider,
        config=settings.fraud_config(),
    )


def require_admin(db: Session, reviewer_id: str) -> User:
    """Resolve the reviewer; only admins may change purchase or reward status"""
    reviewer = UserRepository(db).get_user(reviewer_id)
    if reviewer is None or reviewer.role != "admin":
        raise HTTPException(status_code=403, detail="Only admins can review purchases and rewards")
    return reviewer
