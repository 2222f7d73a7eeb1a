"""Subscription gating.

Decides whether a restaurant may log in and accept new table sessions:

- trial / active inside their period -> allowed
- past the period end but within the grace window -> allowed, with warning
- past grace, suspended, deactivated, or no subscription row -> blocked
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from tableside.core.config import settings
from tableside.core.exceptions import SubscriptionInactiveError
from tableside.core.timeutils import as_utc, utcnow
from tableside.models.restaurant import Restaurant, Subscription, SubscriptionStatus

logger = logging.getLogger(__name__)


class SubscriptionService:
    """Evaluates subscription state for a tenant."""

    def __init__(self, db: Session):
        self.db = db

    def check_subscription_status(
        self, restaurant_id: int, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        now = as_utc(now) or utcnow()
        restaurant = self.db.get(Restaurant, restaurant_id)
        subscription = self.db.query(Subscription).filter(
            Subscription.restaurant_id == restaurant_id
        ).first()

        if restaurant is None or subscription is None:
            return self._result(
                SubscriptionStatus.EXPIRED, False,
                "No subscription found for this restaurant",
            )

        if not restaurant.is_active or subscription.status == SubscriptionStatus.SUSPENDED:
            return self._result(
                SubscriptionStatus.SUSPENDED, False,
                "Restaurant account is suspended. Please contact support.",
            )

        if subscription.status == SubscriptionStatus.TRIAL:
            period_end = as_utc(subscription.trial_ends_at)
        else:
            period_end = as_utc(subscription.current_period_end)

        if period_end is None:
            return self._result(
                SubscriptionStatus.EXPIRED, False,
                "Subscription has no billing period",
            )

        if now <= period_end:
            status = (
                SubscriptionStatus.TRIAL
                if subscription.status == SubscriptionStatus.TRIAL
                else SubscriptionStatus.ACTIVE
            )
            days = _days_between(now, period_end)
            return self._result(
                status, True,
                f"Subscription valid for {days} more day(s)",
                expires_at=period_end, days_remaining=days,
                accepting_orders=restaurant.accepting_orders,
            )

        grace_days = subscription.grace_period_days
        if grace_days is None:
            grace_days = settings.subscription_grace_period_days
        grace_end = period_end + timedelta(days=grace_days)

        if now <= grace_end:
            days = _days_between(now, grace_end)
            logger.info(f"Restaurant {restaurant_id} is in grace period ({days} day(s) left)")
            return self._result(
                SubscriptionStatus.GRACE, True,
                f"Subscription expired. Renew within {days} day(s) to avoid suspension.",
                expires_at=grace_end, days_remaining=days, in_grace_period=True,
                accepting_orders=restaurant.accepting_orders,
            )

        return self._result(
            SubscriptionStatus.EXPIRED, False,
            "Subscription expired. Please renew to continue.",
            expires_at=grace_end,
        )

    def ensure_can_accept_orders(self, restaurant_id: int, now: Optional[datetime] = None) -> None:
        """Raise SubscriptionInactiveError unless the tenant may open new sessions."""
        result = self.check_subscription_status(restaurant_id, now=now)
        if not result["accepting_orders"]:
            raise SubscriptionInactiveError(restaurant_id, result["status"], result["message"])

    @staticmethod
    def _result(
        status: SubscriptionStatus,
        can_login: bool,
        message: str,
        expires_at: Optional[datetime] = None,
        days_remaining: int = 0,
        in_grace_period: bool = False,
        accepting_orders: bool = True,
    ) -> Dict[str, Any]:
        return {
            "status": status.value,
            "can_login": can_login,
            "accepting_orders": can_login and accepting_orders,
            "message": message,
            "expires_at": expires_at.isoformat() if expires_at else None,
            "days_remaining": days_remaining,
            "in_grace_period": in_grace_period,
        }


def _days_between(start: datetime, end: datetime) -> int:
    return max(0, math.ceil((end - start).total_seconds() / 86400))
