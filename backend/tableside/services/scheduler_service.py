"""Background task scheduler for periodic jobs (session cleanup)."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class TaskScheduler:
    """Lightweight asyncio-based task scheduler.

    Runs registered tasks at fixed intervals. State is ephemeral and does
    not survive restarts; a failing task is logged and rescheduled.
    """

    def __init__(self, tick_seconds: float = 5.0):
        self._tasks: Dict[str, Dict[str, Any]] = {}
        self._running = False
        self._tick_seconds = tick_seconds

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self):
        """Start the scheduler loop."""
        self._running = True
        logger.info("Task scheduler started")

        while self._running:
            await self.run_pending()
            await asyncio.sleep(self._tick_seconds)

    async def run_pending(self, now: Optional[datetime] = None) -> int:
        """Run every task that is due. Returns how many ran."""
        now = now or datetime.now(timezone.utc)
        ran = 0
        for name, task in list(self._tasks.items()):
            if now < task["next_run"]:
                continue
            try:
                if asyncio.iscoroutinefunction(task["func"]):
                    await task["func"]()
                else:
                    # Sync jobs hit the database; keep them off the event loop
                    await asyncio.to_thread(task["func"])
                task["last_run"] = now
                task["run_count"] = task.get("run_count", 0) + 1
                task["last_error"] = None
                logger.debug(f"Scheduled task '{name}' completed")
            except Exception as e:
                task["last_error"] = str(e)
                logger.error(f"Scheduled task '{name}' failed: {e}")
            task["next_run"] = now + task["interval"]
            ran += 1
        return ran

    def stop(self):
        self._running = False

    def add_task(
        self,
        name: str,
        func: Callable,
        interval_seconds: int,
        initial_delay_seconds: int = 10,
    ):
        self._tasks[name] = {
            "func": func,
            "interval": timedelta(seconds=interval_seconds),
            "next_run": datetime.now(timezone.utc) + timedelta(seconds=initial_delay_seconds),
            "last_run": None,
            "run_count": 0,
            "last_error": None,
        }
        logger.info(f"Scheduled task '{name}' every {interval_seconds}s")

    def remove_task(self, name: str):
        self._tasks.pop(name, None)

    def get_status(self) -> Dict[str, Any]:
        return {
            name: {
                "last_run": t["last_run"].isoformat() if t["last_run"] else None,
                "next_run": t["next_run"].isoformat(),
                "interval_seconds": int(t["interval"].total_seconds()),
                "run_count": t.get("run_count", 0),
                "last_error": t.get("last_error"),
            }
            for name, t in self._tasks.items()
        }


scheduler = TaskScheduler()
