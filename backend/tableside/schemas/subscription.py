"""Subscription status schema."""

from typing import Optional

from pydantic import BaseModel


class SubscriptionStatusResponse(BaseModel):
    status: str
    can_login: bool
    accepting_orders: bool
    message: str
    expires_at: Optional[str] = None
    days_remaining: int = 0
    in_grace_period: bool = False
