"""Table Session Service.

Lifecycle of a customer's visit to a table:

    active --(end)--------> completed
    active --(release)----> cancelled
    active --(cleanup)----> expired

Terminal sessions never change again. Heartbeats only touch active
sessions, so a late heartbeat can't revive an expired one. Releasing a
table always leaves it ``available``.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from tableside.core.exceptions import (
    SessionNotFoundError,
    TableNotFoundError,
    UnpaidOrdersError,
)
from tableside.core.timeutils import as_utc, utcnow
from tableside.models.restaurant import (
    Order,
    OrderStatus,
    PaymentStatus,
    Table,
    TableStatus,
)
from tableside.models.table_session import (
    TERMINAL_SESSION_STATUSES,
    TableSession,
    TableSessionStatus,
)
from tableside.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

UNPAID_PAYMENT_STATUSES = (PaymentStatus.PENDING, PaymentStatus.FAILED)


class TableSessionService:
    """Service for table session lifecycle, heartbeats and the shared cart."""

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def get_or_create_active_session(
        self, table_id: int, now: Optional[datetime] = None
    ) -> Tuple[TableSession, bool]:
        """Return the table's active session, opening one if needed.

        Returns ``(session, created)``. New sessions are only opened for
        restaurants whose subscription allows taking orders.
        """
        now = as_utc(now) or utcnow()
        table = self._get_table(table_id)

        existing = self._active_session_for_table(table_id)
        if existing:
            return existing, False

        SubscriptionService(self.db).ensure_can_accept_orders(table.restaurant_id, now=now)

        session = TableSession(
            restaurant_id=table.restaurant_id,
            table_id=table.id,
            status=TableSessionStatus.ACTIVE,
            started_at=now,
            last_activity_at=now,
            cart_items=[],
        )
        self.db.add(session)

        table.status = TableStatus.OCCUPIED
        table.booked_at = now

        self.db.commit()
        self.db.refresh(session)
        logger.info(f"Opened session {session.id} on table {table.table_number} (id={table.id})")
        return session, True

    def update_session_activity(self, session_id: str, now: Optional[datetime] = None) -> bool:
        """Record a heartbeat. Returns False for unknown or terminal sessions."""
        session = self.db.get(TableSession, session_id)
        if session is None or session.status in TERMINAL_SESSION_STATUSES:
            logger.debug(f"Heartbeat ignored for inactive session {session_id}")
            return False

        session.last_activity_at = as_utc(now) or utcnow()
        self.db.commit()
        return True

    def get_session(self, session_id: str) -> TableSession:
        session = self.db.get(TableSession, session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def get_session_with_orders(self, session_id: str) -> Tuple[TableSession, List[Order]]:
        session = self.get_session(session_id)
        orders = self.db.query(Order).filter(
            Order.session_id == session_id
        ).order_by(Order.created_at.asc(), Order.id.asc()).all()
        return session, orders

    def end_session(self, session_id: str, now: Optional[datetime] = None) -> TableSession:
        """Close an active session normally and free its table."""
        now = as_utc(now) or utcnow()
        session = self.db.get(TableSession, session_id)
        if session is None or session.status in TERMINAL_SESSION_STATUSES:
            raise SessionNotFoundError(session_id, f"Active session {session_id} not found")

        self._finish(session, TableSessionStatus.COMPLETED, "ended", now)
        self._free_table(session.table_id)
        self.db.commit()
        logger.info(f"Session {session_id} completed")
        return session

    def release_table(
        self,
        table_id: int,
        session_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Customer-initiated release when leaving the table.

        Cancels ``session_id`` if it is still active on this table, then
        marks the table available whatever the session's state was.
        """
        now = as_utc(now) or utcnow()
        table = self._get_table(table_id)

        session_cancelled = False
        if session_id:
            session = self.db.get(TableSession, session_id)
            if session is None:
                logger.warning(f"Release of table {table_id}: session {session_id} not found")
            elif session.table_id != table_id:
                logger.warning(
                    f"Release of table {table_id}: session {session_id} belongs to table {session.table_id}"
                )
            elif session.status == TableSessionStatus.ACTIVE:
                self._finish(session, TableSessionStatus.CANCELLED, "released", now)
                session_cancelled = True

        table.status = TableStatus.AVAILABLE
        table.booked_at = None
        self.db.commit()
        logger.info(f"Table {table.table_number} (id={table_id}) released")
        return {
            "table_id": table_id,
            "session_id": session_id,
            "session_cancelled": session_cancelled,
            "table_status": table.status.value,
        }

    def force_release(
        self,
        session_id: Optional[str] = None,
        table_id: Optional[int] = None,
        restaurant_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Manager override: cancel the table's session and free the table.

        Refuses while served orders on the table are still unpaid.
        ``restaurant_id`` scopes the lookup to one tenant.
        """
        if not session_id and not table_id:
            raise ValueError("Either session_id or table_id is required")

        now = as_utc(now) or utcnow()
        session: Optional[TableSession] = None
        if session_id:
            session = self.db.get(TableSession, session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            if restaurant_id is not None and session.restaurant_id != restaurant_id:
                raise SessionNotFoundError(session_id)
            if table_id is None:
                table_id = session.table_id
            elif session.table_id != table_id:
                raise SessionNotFoundError(
                    session_id, f"Session {session_id} does not belong to table {table_id}"
                )

        table = self._get_table(table_id)
        if restaurant_id is not None and table.restaurant_id != restaurant_id:
            raise TableNotFoundError(table_id)

        self._ensure_no_unpaid_orders(table_id)

        if session is None:
            session = self._active_session_for_table(table_id)

        session_cancelled = False
        if session is not None and session.status == TableSessionStatus.ACTIVE:
            self._finish(session, TableSessionStatus.CANCELLED, "force_released", now)
            session_cancelled = True

        table.status = TableStatus.AVAILABLE
        table.booked_at = None
        self.db.commit()
        logger.info(
            f"Force-released table {table.table_number} (id={table_id}), "
            f"session={session.id if session else None}"
        )
        return {
            "table_id": table_id,
            "session_id": session.id if session else None,
            "session_cancelled": session_cancelled,
            "table_status": table.status.value,
        }

    # ------------------------------------------------------------------
    # Shared cart
    # ------------------------------------------------------------------

    def get_shared_cart(self, session_id: str) -> List[Dict[str, Any]]:
        session = self.db.get(TableSession, session_id)
        if session is None:
            return []
        return list(session.cart_items or [])

    def update_shared_cart(
        self,
        session_id: str,
        cart_items: List[Dict[str, Any]],
        now: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """Replace the cart of an active session; counts as activity."""
        session = self.db.get(TableSession, session_id)
        if session is None or session.status in TERMINAL_SESSION_STATUSES:
            raise SessionNotFoundError(session_id, f"Active session {session_id} not found")

        session.cart_items = list(cart_items)
        session.last_activity_at = as_utc(now) or utcnow()
        self.db.commit()
        logger.debug(f"Cart of session {session_id} now has {len(cart_items)} item(s)")
        return list(session.cart_items)

    def clear_shared_cart(self, session_id: str) -> bool:
        session = self.db.get(TableSession, session_id)
        if session is None:
            return False
        session.cart_items = []
        self.db.commit()
        return True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_table(self, table_id: int) -> Table:
        table = self.db.get(Table, table_id)
        if table is None:
            raise TableNotFoundError(table_id)
        return table

    def _active_session_for_table(self, table_id: int) -> Optional[TableSession]:
        return self.db.query(TableSession).filter(
            TableSession.table_id == table_id,
            TableSession.status == TableSessionStatus.ACTIVE,
        ).order_by(TableSession.started_at.desc()).first()

    def _ensure_no_unpaid_orders(self, table_id: int) -> None:
        unpaid = self.db.query(Order).filter(
            Order.table_id == table_id,
            Order.order_status == OrderStatus.SERVED,
            Order.payment_status.in_(UNPAID_PAYMENT_STATUSES),
        ).order_by(Order.id).all()
        if unpaid:
            total_due = sum((o.total or Decimal("0") for o in unpaid), Decimal("0"))
            raise UnpaidOrdersError([o.order_number for o in unpaid], total_due)

    def _free_table(self, table_id: int) -> None:
        table = self.db.get(Table, table_id)
        if table is not None:
            table.status = TableStatus.AVAILABLE
            table.booked_at = None

    @staticmethod
    def _finish(
        session: TableSession, status: TableSessionStatus, reason: str, now: datetime
    ) -> None:
        session.status = status
        session.ended_at = now
        session.end_reason = reason
