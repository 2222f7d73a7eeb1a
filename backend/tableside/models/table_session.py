"""Table session model - one customer visit to a physical table."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Enum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tableside.core.timeutils import utcnow
from tableside.db.base import Base, TimestampMixin, UTCDateTime


class TableSessionStatus(str, enum.Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


TERMINAL_SESSION_STATUSES = frozenset({
    TableSessionStatus.COMPLETED,
    TableSessionStatus.CANCELLED,
    TableSessionStatus.EXPIRED,
})


class TableSession(Base, TimestampMixin):
    """Scopes the shared cart and orders of a table visit.

    ``last_activity_at`` is bumped by heartbeats and cart writes; the
    cleanup job expires active sessions once it falls behind the timeout.
    """

    __tablename__ = "table_sessions"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    restaurant_id: Mapped[int] = mapped_column(ForeignKey("restaurants.id"), index=True, nullable=False)
    table_id: Mapped[int] = mapped_column(ForeignKey("tables.id"), index=True, nullable=False)
    status: Mapped[TableSessionStatus] = mapped_column(
        Enum(TableSessionStatus), default=TableSessionStatus.ACTIVE, index=True, nullable=False
    )
    started_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    ended_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    last_activity_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, index=True, nullable=False
    )
    end_reason: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    cart_items: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    table: Mapped["Table"] = relationship()

    @property
    def is_active(self) -> bool:
        return self.status == TableSessionStatus.ACTIVE
