"""Pytest configuration and fixtures."""

import os

# Settings are read at import time; point them at a throwaway database first
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SECRET_KEY", "test-secret-key-with-at-least-32-characters")

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Generator

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import tableside.main as main_module
from tableside.core.rbac import UserRole
from tableside.core.security import create_access_token, get_password_hash
from tableside.db.base import Base
from tableside.db.session import get_db
from tableside.main import app
# Import all models to ensure they're registered with Base.metadata
from tableside.models import *
from tableside.models.user import User

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    """Create a test database session."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(db_session: Session, session_factory, monkeypatch) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    # The websocket endpoint and readiness probe open their own sessions
    monkeypatch.setattr(main_module, "SessionLocal", session_factory)
    # Disable rate limiters during tests to avoid flaky failures
    from tableside.core.rate_limit import limiter as global_limiter
    global_limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    global_limiter.enabled = True
    app.dependency_overrides.clear()


@pytest.fixture
def now() -> datetime:
    """Fixed clock for service tests."""
    return NOW


@pytest.fixture
def restaurant(db_session: Session) -> Restaurant:
    """Create a restaurant with a subscription valid for another month."""
    restaurant = Restaurant(name="Test Bistro", slug="test-bistro")
    db_session.add(restaurant)
    db_session.flush()
    db_session.add(Subscription(
        restaurant_id=restaurant.id,
        plan_name="pro",
        status=SubscriptionStatus.ACTIVE,
        current_period_end=datetime.now(timezone.utc) + timedelta(days=30),
    ))
    db_session.commit()
    db_session.refresh(restaurant)
    return restaurant


@pytest.fixture
def other_restaurant(db_session: Session) -> Restaurant:
    """A second tenant for isolation tests."""
    restaurant = Restaurant(name="Other Place", slug="other-place")
    db_session.add(restaurant)
    db_session.flush()
    db_session.add(Subscription(
        restaurant_id=restaurant.id,
        status=SubscriptionStatus.ACTIVE,
        current_period_end=datetime.now(timezone.utc) + timedelta(days=30),
    ))
    db_session.commit()
    db_session.refresh(restaurant)
    return restaurant


@pytest.fixture
def table(db_session: Session, restaurant: Restaurant) -> Table:
    """Create a free table."""
    table = Table(restaurant_id=restaurant.id, table_number="T1", capacity=4, qr_token="qr-t1")
    db_session.add(table)
    db_session.commit()
    db_session.refresh(table)
    return table


@pytest.fixture
def second_table(db_session: Session, restaurant: Restaurant) -> Table:
    table = Table(restaurant_id=restaurant.id, table_number="T2", capacity=2, qr_token="qr-t2")
    db_session.add(table)
    db_session.commit()
    db_session.refresh(table)
    return table


@pytest.fixture
def make_session(db_session: Session) -> Callable[..., TableSession]:
    """Insert a session directly, bypassing the service."""
    def _make(table: Table, last_activity_at: datetime = NOW,
              status: TableSessionStatus = TableSessionStatus.ACTIVE) -> TableSession:
        session = TableSession(
            restaurant_id=table.restaurant_id,
            table_id=table.id,
            status=status,
            started_at=last_activity_at,
            last_activity_at=last_activity_at,
            cart_items=[],
        )
        db_session.add(session)
        if status == TableSessionStatus.ACTIVE:
            table.status = TableStatus.OCCUPIED
        db_session.commit()
        db_session.refresh(session)
        return session
    return _make


@pytest.fixture
def make_order(db_session: Session) -> Callable[..., Order]:
    def _make(session: TableSession, order_number: str, total: str = "10.00",
              order_status: OrderStatus = OrderStatus.SERVED,
              payment_status: PaymentStatus = PaymentStatus.PENDING) -> Order:
        order = Order(
            restaurant_id=session.restaurant_id,
            table_id=session.table_id,
            session_id=session.id,
            order_number=order_number,
            order_status=order_status,
            payment_status=payment_status,
            total=Decimal(total),
            items=[{"id": 1, "name": "Burger", "quantity": 1}],
        )
        db_session.add(order)
        db_session.commit()
        db_session.refresh(order)
        return order
    return _make


def _create_user(db_session: Session, email: str, role: UserRole, restaurant_id) -> User:
    user = User(
        email=email,
        password_hash=get_password_hash("testpass123"),
        role=role,
        name=email.split("@")[0].title(),
        restaurant_id=restaurant_id,
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


def _headers_for(user: User) -> dict:
    token = create_access_token(
        data={
            "sub": str(user.id),
            "email": user.email,
            "role": user.role.value,
            "restaurant_id": user.restaurant_id,
        }
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def manager_user(db_session: Session, restaurant: Restaurant) -> User:
    """Create a manager of the test restaurant."""
    return _create_user(db_session, "manager@example.com", UserRole.MANAGER, restaurant.id)


@pytest.fixture
def waiter_user(db_session: Session, restaurant: Restaurant) -> User:
    return _create_user(db_session, "waiter@example.com", UserRole.WAITER, restaurant.id)


@pytest.fixture
def owner_user(db_session: Session) -> User:
    """Platform owner, not tied to a restaurant."""
    return _create_user(db_session, "owner@example.com", UserRole.OWNER, None)


@pytest.fixture
def manager_headers(manager_user: User) -> dict:
    return _headers_for(manager_user)


@pytest.fixture
def waiter_headers(waiter_user: User) -> dict:
    return _headers_for(waiter_user)


@pytest.fixture
def owner_headers(owner_user: User) -> dict:
    return _headers_for(owner_user)


@pytest.fixture
def outsider_headers(db_session: Session, other_restaurant: Restaurant) -> dict:
    """Manager of another restaurant."""
    return _headers_for(
        _create_user(db_session, "outsider@example.com", UserRole.MANAGER, other_restaurant.id)
    )
