"""SQLAlchemy models."""

from tableside.models.restaurant import (
    Order,
    OrderStatus,
    PaymentStatus,
    Restaurant,
    Subscription,
    SubscriptionStatus,
    Table,
    TableStatus,
)
from tableside.models.table_session import (
    TERMINAL_SESSION_STATUSES,
    TableSession,
    TableSessionStatus,
)
from tableside.models.user import User
