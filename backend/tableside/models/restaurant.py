"""Tenant models - restaurants, tables, orders and subscriptions."""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tableside.db.base import Base, TimestampMixin, UTCDateTime


class TableStatus(str, enum.Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    RESERVED = "reserved"
    CLEANING = "cleaning"


class OrderStatus(str, enum.Enum):
    RECEIVED = "received"
    PREPARING = "preparing"
    READY = "ready"
    SERVED = "served"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class SubscriptionStatus(str, enum.Enum):
    TRIAL = "trial"
    ACTIVE = "active"
    GRACE = "grace"
    EXPIRED = "expired"
    SUSPENDED = "suspended"


class Restaurant(Base, TimestampMixin):
    """A tenant of the platform."""

    __tablename__ = "restaurants"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, index=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    accepting_orders: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    tables: Mapped[List["Table"]] = relationship(back_populates="restaurant")
    subscription: Mapped[Optional["Subscription"]] = relationship(
        back_populates="restaurant", uselist=False
    )


class Subscription(Base, TimestampMixin):
    """Billing plan of a restaurant; one row per tenant."""

    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(
        ForeignKey("restaurants.id"), unique=True, nullable=False
    )
    plan_name: Mapped[str] = mapped_column(String(50), default="trial", nullable=False)
    status: Mapped[SubscriptionStatus] = mapped_column(
        Enum(SubscriptionStatus), default=SubscriptionStatus.TRIAL, nullable=False
    )
    trial_ends_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    current_period_end: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    grace_period_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    restaurant: Mapped[Restaurant] = relationship(back_populates="subscription")


class Table(Base, TimestampMixin):
    """Physical table; customers reach it through its QR token."""

    __tablename__ = "tables"

    id: Mapped[int] = mapped_column(primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(ForeignKey("restaurants.id"), index=True, nullable=False)
    table_number: Mapped[str] = mapped_column(String(50), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, default=4)
    status: Mapped[TableStatus] = mapped_column(
        Enum(TableStatus), default=TableStatus.AVAILABLE, nullable=False
    )
    qr_token: Mapped[Optional[str]] = mapped_column(String(100), unique=True, nullable=True)
    booked_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    restaurant: Mapped[Restaurant] = relationship(back_populates="tables")


class Order(Base, TimestampMixin):
    """Customer order placed within a table session."""

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(ForeignKey("restaurants.id"), index=True, nullable=False)
    table_id: Mapped[Optional[int]] = mapped_column(ForeignKey("tables.id"), index=True, nullable=True)
    session_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("table_sessions.id"), index=True, nullable=True
    )
    order_number: Mapped[str] = mapped_column(String(30), nullable=False)
    order_status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus), default=OrderStatus.RECEIVED, nullable=False
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False
    )
    total: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    items: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
