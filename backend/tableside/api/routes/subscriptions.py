"""Subscription status routes."""

from fastapi import APIRouter, HTTPException, Request

from tableside.core.rate_limit import limiter
from tableside.core.rbac import RequireStaff
from tableside.db.session import DbSession
from tableside.schemas.subscription import SubscriptionStatusResponse
from tableside.services.subscription_service import SubscriptionService

router = APIRouter()


@router.get("/{restaurant_id}/subscription-status", response_model=SubscriptionStatusResponse)
@limiter.limit("60/minute")
def subscription_status(
    request: Request,
    restaurant_id: int,
    current_user: RequireStaff,
    db: DbSession,
):
    """Whether the restaurant may log in and take orders right now"""
    if not current_user.can_access_restaurant(restaurant_id):
        raise HTTPException(status_code=403, detail="Not allowed to view this restaurant")
    return SubscriptionService(db).check_subscription_status(restaurant_id)
