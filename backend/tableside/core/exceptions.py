"""Domain exceptions raised by the service layer.

Routes translate these into HTTP errors; background jobs log them.
"""

from decimal import Decimal
from typing import List, Optional


class TablesideError(Exception):
    """Base class for all domain errors."""


class TableNotFoundError(TablesideError):
    def __init__(self, table_id: int):
        self.table_id = table_id
        super().__init__(f"Table {table_id} not found")


class SessionNotFoundError(TablesideError):
    def __init__(self, session_id: str, detail: Optional[str] = None):
        self.session_id = session_id
        super().__init__(detail or f"Session {session_id} not found")


class UnpaidOrdersError(TablesideError):
    """Raised when a table still has served orders awaiting payment."""

    def __init__(self, order_numbers: List[str], total_due: Decimal):
        self.order_numbers = order_numbers
        self.total_due = total_due
        numbers = ", ".join(f"#{n}" for n in order_numbers)
        super().__init__(
            f"Cannot release table. There are {len(order_numbers)} unpaid order(s): "
            f"{numbers}. Total due: {total_due:.2f}. "
            "Please collect payment before clearing the table."
        )


class SubscriptionInactiveError(TablesideError):
    def __init__(self, restaurant_id: int, status: str, message: str):
        self.restaurant_id = restaurant_id
        self.status = status
        super().__init__(message)
