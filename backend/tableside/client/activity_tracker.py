"""Session Activity Tracker.

Customer-side heartbeat that keeps a table session alive while the guest
is using the ordering page:

- an immediate update on start, then one every ``heartbeat_interval``
- an update on user interaction, at most once per ``throttle_seconds``
- a fire-and-forget beacon on teardown that never blocks the caller

Delivery is best effort. A failed heartbeat is logged and dropped; the
next tick or interaction retries naturally, and only silence for the
whole server timeout lets the session expire.
"""

import asyncio
import logging
import time
from typing import Callable, Optional, Protocol, Set

import httpx

from tableside.core.config import settings

logger = logging.getLogger(__name__)

ACTIVITY_EVENTS = frozenset({
    "click",
    "scroll",
    "keypress",
    "touchstart",
    "pointermove",
    "visibilitychange",
})


class ActivityTransport(Protocol):
    async def send_activity(self, session_id: str) -> bool:
        ...


class HttpActivityTransport:
    """Posts heartbeats to the session activity endpoint."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 5.0,
    ):
        self._base_url = (base_url or settings.public_api_url).rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def activity_url(self, session_id: str) -> str:
        return f"{self._base_url}{settings.api_v1_prefix}/table-sessions/{session_id}/activity"

    async def send_activity(self, session_id: str) -> bool:
        response = await self._client.post(self.activity_url(session_id))
        response.raise_for_status()
        return bool(response.json().get("active", False))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class SessionActivityTracker:
    """Periodic and interaction-driven heartbeats for one table session."""

    def __init__(
        self,
        transport: ActivityTransport,
        heartbeat_interval: Optional[float] = None,
        throttle_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.transport = transport
        self.heartbeat_interval = (
            heartbeat_interval if heartbeat_interval is not None
            else settings.heartbeat_interval_seconds
        )
        self.throttle_seconds = (
            throttle_seconds if throttle_seconds is not None
            else settings.activity_throttle_seconds
        )
        self._clock = clock
        self.session_id: Optional[str] = None
        self._active = False
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._last_interaction_sent: Optional[float] = None
        self._pending: Set[asyncio.Task] = set()

    @property
    def is_tracking(self) -> bool:
        return self._active and self.session_id is not None

    async def start(self, session_id: str) -> None:
        """Start tracking ``session_id``, replacing any previous session."""
        if not session_id:
            logger.warning("SessionActivityTracker: no session ID provided")
            return

        self.stop()

        self.session_id = session_id
        self._active = True
        self._last_interaction_sent = None
        logger.info(f"Started session activity tracker for {session_id}")

        await self.send_activity_update()
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

    def stop(self, final_ping: bool = False) -> None:
        """Stop tracking. ``final_ping`` fires the teardown beacon first."""
        if final_ping:
            self.send_beacon()

        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            self._heartbeat_task = None

        self._active = False
        if self.session_id:
            logger.info(f"Stopped session activity tracker for {self.session_id}")
            self.session_id = None

    async def aclose(self, timeout: float = 2.0) -> None:
        """Stop and give in-flight beacons up to ``timeout`` seconds to land."""
        self.stop()
        if self._pending:
            done, not_done = await asyncio.wait(set(self._pending), timeout=timeout)
            for task in not_done:
                task.cancel()

    def notify_interaction(self, event: str) -> bool:
        """Report a user interaction. Returns True if an update was sent."""
        if event not in ACTIVITY_EVENTS or not self.is_tracking:
            return False

        now = self._clock()
        if (
            self._last_interaction_sent is not None
            and now - self._last_interaction_sent < self.throttle_seconds
        ):
            return False

        self._last_interaction_sent = now
        self._spawn(self.send_activity_update())
        return True

    def send_beacon(self) -> bool:
        """Fire a last update without waiting for it (page teardown)."""
        if not self.is_tracking:
            return False
        self._spawn(self._deliver(self.session_id))
        return True

    async def send_activity_update(self) -> bool:
        if not self.is_tracking:
            return False
        return await self._deliver(self.session_id)

    async def _deliver(self, session_id: str) -> bool:
        try:
            active = await self.transport.send_activity(session_id)
        except Exception as e:
            logger.warning(f"Failed to update session activity for {session_id}: {e}")
            return False
        if active:
            logger.debug(f"Session activity updated for {session_id}")
        else:
            logger.info(f"Server reports session {session_id} is no longer active")
        return active

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            if self.is_tracking:
                await self.send_activity_update()

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task
