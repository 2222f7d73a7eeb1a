"""Tests for TableSessionService.

Covers the session lifecycle (open, heartbeat, end, release, force
release) and the shared cart.
"""

import pytest
from datetime import timedelta
from decimal import Decimal
from sqlalchemy.orm import Session

from tableside.core.exceptions import (
    SessionNotFoundError,
    SubscriptionInactiveError,
    TableNotFoundError,
    UnpaidOrdersError,
)
from tableside.core.timeutils import as_utc
from tableside.models import (
    TERMINAL_SESSION_STATUSES,
    OrderStatus,
    PaymentStatus,
    SubscriptionStatus,
    Table,
    TableSession,
    TableSessionStatus,
    TableStatus,
)
from tableside.services.table_session_service import TableSessionService


class TestOpenSession:
    """Tests for get_or_create_active_session."""

    def test_opens_session_and_occupies_table(self, db_session: Session, table, now):
        """A free table gets a fresh active session."""
        session, created = TableSessionService(db_session).get_or_create_active_session(table.id, now=now)

        assert created is True
        assert session.status == TableSessionStatus.ACTIVE
        assert session.restaurant_id == table.restaurant_id
        assert session.cart_items == []
        assert as_utc(session.last_activity_at) == now
        db_session.refresh(table)
        assert table.status == TableStatus.OCCUPIED
        assert as_utc(table.booked_at) == now

    def test_second_device_joins_existing_session(self, db_session: Session, table, now):
        """Scanning the QR code again returns the same session."""
        service = TableSessionService(db_session)
        first, _ = service.get_or_create_active_session(table.id, now=now)
        second, created = service.get_or_create_active_session(table.id, now=now + timedelta(minutes=1))

        assert created is False
        assert second.id == first.id
        assert db_session.query(TableSession).count() == 1

    def test_new_session_after_previous_expired(self, db_session: Session, table, make_session, now):
        """Terminal sessions are never reused."""
        old = make_session(table, now - timedelta(hours=1), status=TableSessionStatus.EXPIRED)
        session, created = TableSessionService(db_session).get_or_create_active_session(table.id, now=now)

        assert created is True
        assert session.id != old.id

    def test_unknown_table(self, db_session: Session, restaurant, now):
        with pytest.raises(TableNotFoundError):
            TableSessionService(db_session).get_or_create_active_session(9999, now=now)

    def test_expired_subscription_blocks_new_sessions(self, db_session: Session, restaurant, table, now):
        """Restaurants past their grace period can't take new guests."""
        sub = restaurant.subscription
        sub.status = SubscriptionStatus.ACTIVE
        sub.current_period_end = now - timedelta(days=30)
        db_session.commit()

        with pytest.raises(SubscriptionInactiveError) as exc_info:
            TableSessionService(db_session).get_or_create_active_session(table.id, now=now)

        assert exc_info.value.status == "expired"
        assert db_session.query(TableSession).count() == 0
        db_session.refresh(table)
        assert table.status == TableStatus.AVAILABLE


class TestHeartbeat:
    """Tests for update_session_activity."""

    def test_heartbeat_bumps_last_activity(self, db_session: Session, table, make_session, now):
        session = make_session(table, now)
        later = now + timedelta(seconds=45)

        assert TableSessionService(db_session).update_session_activity(session.id, now=later) is True
        db_session.refresh(session)
        assert as_utc(session.last_activity_at) == later

    @pytest.mark.parametrize("status", sorted(TERMINAL_SESSION_STATUSES, key=lambda s: s.value))
    def test_heartbeat_does_not_revive_closed_session(
        self, db_session: Session, table, make_session, now, status
    ):
        """A late heartbeat leaves a closed session closed."""
        session = make_session(table, now, status=status)

        assert TableSessionService(db_session).update_session_activity(
            session.id, now=now + timedelta(minutes=1)
        ) is False
        db_session.refresh(session)
        assert session.status == status
        assert as_utc(session.last_activity_at) == now

    def test_heartbeat_for_unknown_session(self, db_session: Session, now):
        assert TableSessionService(db_session).update_session_activity("missing", now=now) is False


class TestEndSession:
    """Tests for end_session."""

    def test_end_completes_session_and_frees_table(self, db_session: Session, table, make_session, now):
        session = make_session(table, now)
        ended = TableSessionService(db_session).end_session(session.id, now=now + timedelta(minutes=30))

        assert ended.status == TableSessionStatus.COMPLETED
        assert ended.end_reason == "ended"
        assert as_utc(ended.ended_at) == now + timedelta(minutes=30)
        db_session.refresh(table)
        assert table.status == TableStatus.AVAILABLE
        assert table.booked_at is None

    def test_end_twice_fails(self, db_session: Session, table, make_session, now):
        """Terminal sessions can't transition again."""
        service = TableSessionService(db_session)
        session = make_session(table, now)
        service.end_session(session.id, now=now)

        with pytest.raises(SessionNotFoundError):
            service.end_session(session.id, now=now)
        db_session.refresh(session)
        assert session.status == TableSessionStatus.COMPLETED


class TestReleaseTable:
    """Tests for release_table: the table always ends up available."""

    def test_release_cancels_session(self, db_session: Session, table, make_session, now):
        session = make_session(table, now)
        result = TableSessionService(db_session).release_table(table.id, session_id=session.id, now=now)

        assert result["session_cancelled"] is True
        assert result["table_status"] == "available"
        db_session.refresh(session)
        assert session.status == TableSessionStatus.CANCELLED
        assert session.end_reason == "released"

    def test_release_without_session(self, db_session: Session, table, now):
        table.status = TableStatus.OCCUPIED
        db_session.commit()

        result = TableSessionService(db_session).release_table(table.id, now=now)

        assert result["session_cancelled"] is False
        db_session.refresh(table)
        assert table.status == TableStatus.AVAILABLE

    def test_release_with_already_expired_session(self, db_session: Session, table, make_session, now):
        """The table is freed even when the session already timed out."""
        session = make_session(table, now, status=TableSessionStatus.EXPIRED)
        table.status = TableStatus.OCCUPIED
        db_session.commit()

        result = TableSessionService(db_session).release_table(table.id, session_id=session.id, now=now)

        assert result["session_cancelled"] is False
        db_session.refresh(table)
        db_session.refresh(session)
        assert table.status == TableStatus.AVAILABLE
        assert session.status == TableSessionStatus.EXPIRED

    def test_release_with_unknown_session(self, db_session: Session, table, now):
        result = TableSessionService(db_session).release_table(table.id, session_id="nope", now=now)

        assert result["session_cancelled"] is False
        assert result["table_status"] == "available"

    def test_release_ignores_session_of_another_table(
        self, db_session: Session, table, second_table, make_session, now
    ):
        """A session id from another table is not cancelled."""
        other = make_session(second_table, now)
        TableSessionService(db_session).release_table(table.id, session_id=other.id, now=now)

        db_session.refresh(other)
        db_session.refresh(second_table)
        assert other.status == TableSessionStatus.ACTIVE
        assert second_table.status == TableStatus.OCCUPIED

    def test_release_unknown_table(self, db_session: Session, now):
        with pytest.raises(TableNotFoundError):
            TableSessionService(db_session).release_table(424242, now=now)


class TestForceRelease:
    """Tests for the manager override."""

    def test_force_release_by_session(self, db_session: Session, table, make_session, now):
        session = make_session(table, now)
        result = TableSessionService(db_session).force_release(session_id=session.id, now=now)

        assert result["session_cancelled"] is True
        assert result["table_id"] == table.id
        db_session.refresh(session)
        assert session.status == TableSessionStatus.CANCELLED
        assert session.end_reason == "force_released"

    def test_force_release_by_table(self, db_session: Session, table, make_session, now):
        """Without a session id the table's active session is cancelled."""
        session = make_session(table, now)
        result = TableSessionService(db_session).force_release(table_id=table.id, now=now)

        assert result["session_id"] == session.id
        assert result["session_cancelled"] is True
        db_session.refresh(table)
        assert table.status == TableStatus.AVAILABLE

    def test_unpaid_served_orders_block_release(
        self, db_session: Session, table, make_session, make_order, now
    ):
        session = make_session(table, now)
        make_order(session, "1001", total="12.50")
        make_order(session, "1002", total="7.25", payment_status=PaymentStatus.FAILED)

        with pytest.raises(UnpaidOrdersError) as exc_info:
            TableSessionService(db_session).force_release(session_id=session.id, now=now)

        assert exc_info.value.order_numbers == ["1001", "1002"]
        assert exc_info.value.total_due == Decimal("19.75")
        assert "#1001" in str(exc_info.value)
        db_session.refresh(session)
        assert session.status == TableSessionStatus.ACTIVE

    def test_paid_or_unserved_orders_do_not_block(
        self, db_session: Session, table, make_session, make_order, now
    ):
        session = make_session(table, now)
        make_order(session, "2001", payment_status=PaymentStatus.PAID)
        make_order(session, "2002", order_status=OrderStatus.PREPARING)

        result = TableSessionService(db_session).force_release(session_id=session.id, now=now)

        assert result["session_cancelled"] is True

    def test_force_release_other_tenant_session(
        self, db_session: Session, table, other_restaurant, make_session, now
    ):
        """Managers can't reach sessions of another restaurant."""
        session = make_session(table, now)

        with pytest.raises(SessionNotFoundError):
            TableSessionService(db_session).force_release(
                session_id=session.id, restaurant_id=other_restaurant.id, now=now
            )
        db_session.refresh(session)
        assert session.status == TableSessionStatus.ACTIVE

    def test_force_release_other_tenant_table(
        self, db_session: Session, table, other_restaurant, make_session, now
    ):
        """Managers can't reach tables of another restaurant."""
        make_session(table, now)

        with pytest.raises(TableNotFoundError):
            TableSessionService(db_session).force_release(
                table_id=table.id, restaurant_id=other_restaurant.id, now=now
            )

    def test_session_and_table_must_match(
        self, db_session: Session, table, second_table, make_session, make_order, now
    ):
        """Pairing a session with another table can't skip the unpaid check."""
        session = make_session(table, now)
        make_order(session, "9001")

        with pytest.raises(SessionNotFoundError):
            TableSessionService(db_session).force_release(
                session_id=session.id, table_id=second_table.id, now=now
            )
        db_session.refresh(session)
        db_session.refresh(table)
        assert session.status == TableSessionStatus.ACTIVE
        assert table.status == TableStatus.OCCUPIED

    def test_cross_tenant_session_with_own_table(
        self, db_session: Session, table, other_restaurant, make_session, now
    ):
        own_table = Table(restaurant_id=other_restaurant.id, table_number="O1")
        db_session.add(own_table)
        db_session.commit()
        victim = make_session(table, now)

        with pytest.raises(SessionNotFoundError):
            TableSessionService(db_session).force_release(
                session_id=victim.id, table_id=own_table.id,
                restaurant_id=other_restaurant.id, now=now,
            )
        db_session.refresh(victim)
        assert victim.status == TableSessionStatus.ACTIVE

    def test_force_release_needs_an_identifier(self, db_session: Session):
        with pytest.raises(ValueError):
            TableSessionService(db_session).force_release()

    def test_force_release_unknown_session(self, db_session: Session, now):
        with pytest.raises(SessionNotFoundError):
            TableSessionService(db_session).force_release(session_id="missing", now=now)


class TestSessionOrders:
    def test_orders_listed_oldest_first(self, db_session: Session, table, make_session, make_order, now):
        session = make_session(table, now)
        make_order(session, "A1")
        make_order(session, "A2")

        found, orders = TableSessionService(db_session).get_session_with_orders(session.id)

        assert found.id == session.id
        assert [o.order_number for o in orders] == ["A1", "A2"]

    def test_unknown_session(self, db_session: Session):
        with pytest.raises(SessionNotFoundError):
            TableSessionService(db_session).get_session_with_orders("missing")


class TestSharedCart:
    """Tests for the session-scoped cart."""

    def test_update_cart_counts_as_activity(self, db_session: Session, table, make_session, now):
        session = make_session(table, now)
        items = [{"id": 1, "name": "Fries", "price": 4.5, "quantity": 2}]
        later = now + timedelta(minutes=2)

        stored = TableSessionService(db_session).update_shared_cart(session.id, items, now=later)

        assert stored == items
        db_session.refresh(session)
        assert session.cart_items == items
        assert as_utc(session.last_activity_at) == later

    def test_cart_of_closed_session_is_read_only(self, db_session: Session, table, make_session, now):
        session = make_session(table, now, status=TableSessionStatus.COMPLETED)

        with pytest.raises(SessionNotFoundError):
            TableSessionService(db_session).update_shared_cart(session.id, [], now=now)

    def test_get_cart_of_unknown_session_is_empty(self, db_session: Session):
        assert TableSessionService(db_session).get_shared_cart("missing") == []

    def test_clear_cart(self, db_session: Session, table, make_session, now):
        service = TableSessionService(db_session)
        session = make_session(table, now)
        service.update_shared_cart(session.id, [{"id": 1, "name": "Soup", "price": 3, "quantity": 1}], now=now)

        assert service.clear_shared_cart(session.id) is True
        assert service.get_shared_cart(session.id) == []
        assert service.clear_shared_cart("missing") is False
