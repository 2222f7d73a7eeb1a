"""Customer-side helpers that talk to the HTTP API."""

from tableside.client.activity_tracker import (
    ACTIVITY_EVENTS,
    HttpActivityTransport,
    SessionActivityTracker,
)
