"""Translate domain errors into HTTP errors."""

from fastapi import HTTPException, status

from tableside.core.exceptions import (
    SessionNotFoundError,
    SubscriptionInactiveError,
    TablesideError,
    TableNotFoundError,
    UnpaidOrdersError,
)


def http_error(exc: TablesideError) -> HTTPException:
    if isinstance(exc, (TableNotFoundError, SessionNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, UnpaidOrdersError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": str(exc),
                "unpaid_orders": exc.order_numbers,
                "total_due": float(exc.total_due),
            },
        )
    if isinstance(exc, SubscriptionInactiveError):
        return HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail={"message": str(exc), "subscription_status": exc.status},
        )
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
