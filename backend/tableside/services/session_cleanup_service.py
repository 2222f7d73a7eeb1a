"""Inactive Session Cleanup Service.

Expires table sessions whose customers stopped sending heartbeats.
Runs as a periodic background task.

Inactive sessions:
- Status is still 'active'
- last_activity_at is older than the timeout (default 5 minutes)

Cleanup actions:
1. Mark the session 'expired' and stamp ended_at
2. Release the table if no other active session holds it
3. Log each expiry for the audit trail

Only active sessions are scanned, so a second run over the same data
finds nothing to do.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from tableside.core.config import settings
from tableside.core.timeutils import as_utc, utcnow
from tableside.models.restaurant import Table, TableStatus
from tableside.models.table_session import TableSession, TableSessionStatus

logger = logging.getLogger(__name__)


class SessionCleanupService:
    """Service for expiring idle table sessions."""

    def __init__(self, db: Session):
        self.db = db

    def cleanup_inactive_sessions(
        self,
        timeout_minutes: Optional[int] = None,
        now: Optional[datetime] = None,
        batch_size: Optional[int] = None,
        restaurant_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Find and expire inactive sessions.

        Returns a summary with one entry per expired session.
        ``restaurant_id`` limits the run to one tenant.
        """
        now = as_utc(now) or utcnow()
        cutoff = _cutoff(now, timeout_minutes)
        results: Dict[str, Any] = {
            "cleaned_up": 0,
            "tables_freed": 0,
            "sessions": [],
            "errors": [],
        }

        try:
            query = self.db.query(TableSession).filter(
                TableSession.status == TableSessionStatus.ACTIVE,
                TableSession.last_activity_at < cutoff,
            )
            if restaurant_id is not None:
                query = query.filter(TableSession.restaurant_id == restaurant_id)
            stale = query.order_by(TableSession.last_activity_at.asc()).limit(
                batch_size or settings.cleanup_batch_size
            ).all()

            if not stale:
                logger.debug("No inactive table sessions found")
                return results

            logger.info(f"Found {len(stale)} inactive table sessions to expire")

            for session in stale:
                try:
                    entry = self._expire_session(session, now)
                    results["sessions"].append(entry)
                    results["cleaned_up"] += 1
                    if entry["table_freed"]:
                        results["tables_freed"] += 1
                except Exception as e:
                    results["errors"].append({
                        "session_id": session.id,
                        "error": str(e),
                    })
                    logger.warning(f"Failed to expire session {session.id}: {e}")

            self.db.commit()
            logger.info(
                f"Session cleanup: {results['cleaned_up']} expired, "
                f"{results['tables_freed']} tables freed, {len(results['errors'])} errors"
            )

        except Exception as e:
            self.db.rollback()
            results["cleaned_up"] = 0
            results["tables_freed"] = 0
            results["sessions"] = []
            results["errors"].append({"error": f"Cleanup batch failed: {str(e)}"})
            logger.error(f"Session cleanup failed: {e}", exc_info=True)

        return results

    def _expire_session(self, session: TableSession, now: datetime) -> Dict[str, Any]:
        """Mark a single session expired and release its table."""
        last_activity = as_utc(session.last_activity_at)
        session.status = TableSessionStatus.EXPIRED
        session.ended_at = now
        session.end_reason = "inactive"
        self.db.flush()

        table = self.db.get(Table, session.table_id)
        table_freed = self._release_table_if_idle(table)

        inactive_seconds = int((now - last_activity).total_seconds())
        logger.info(
            f"Expired session {session.id} (table {table.table_number if table else '?'}, "
            f"inactive {inactive_seconds}s)"
        )
        return {
            "session_id": session.id,
            "table_id": session.table_id,
            "table_number": table.table_number if table else None,
            "inactive_seconds": inactive_seconds,
            "table_freed": table_freed,
        }

    def _release_table_if_idle(self, table: Optional[Table]) -> bool:
        """Free a table unless another active session still holds it."""
        if table is None:
            return False
        remaining = self.db.query(func.count(TableSession.id)).filter(
            TableSession.table_id == table.id,
            TableSession.status == TableSessionStatus.ACTIVE,
        ).scalar()
        if remaining:
            logger.debug(f"Table {table.id} kept: {remaining} active session(s) remain")
            return False
        table.status = TableStatus.AVAILABLE
        table.booked_at = None
        return True

    def count_inactive_sessions(
        self, timeout_minutes: Optional[int] = None, now: Optional[datetime] = None
    ) -> int:
        """Count sessions the next cleanup run would expire (for monitoring)."""
        cutoff = _cutoff(as_utc(now) or utcnow(), timeout_minutes)
        return self.db.query(func.count(TableSession.id)).filter(
            TableSession.status == TableSessionStatus.ACTIVE,
            TableSession.last_activity_at < cutoff,
        ).scalar() or 0

    def get_active_sessions(self, restaurant_id: Optional[int] = None) -> List[TableSession]:
        query = self.db.query(TableSession).filter(TableSession.status == TableSessionStatus.ACTIVE)
        if restaurant_id is not None:
            query = query.filter(TableSession.restaurant_id == restaurant_id)
        return query.order_by(TableSession.last_activity_at.asc()).all()


def _cutoff(now: datetime, timeout_minutes: Optional[int]) -> datetime:
    if timeout_minutes is None:
        return now - timedelta(seconds=settings.session_timeout_seconds)
    return now - timedelta(minutes=timeout_minutes)


def run_session_cleanup() -> Dict[str, Any]:
    """Standalone function to run cleanup (called from the background scheduler)."""
    from tableside.db.session import SessionLocal
    db = SessionLocal()
    try:
        service = SessionCleanupService(db)
        return service.cleanup_inactive_sessions()
    finally:
        db.close()
