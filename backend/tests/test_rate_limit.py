"""Tests for rate limit keys."""

from starlette.requests import Request

from tableside.core.rate_limit import get_session_or_ip


def _request(path_params: dict) -> Request:
    return Request({
        "type": "http",
        "method": "POST",
        "path": "/",
        "headers": [],
        "client": ("203.0.113.7", 50000),
        "path_params": path_params,
    })


class TestSessionKey:
    def test_tables_behind_one_ip_get_separate_buckets(self):
        first = get_session_or_ip(_request({"session_id": "a"}))
        second = get_session_or_ip(_request({"session_id": "b"}))
        assert first != second
        assert first == "session:a:203.0.113.7"

    def test_falls_back_to_ip(self):
        assert get_session_or_ip(_request({})) == "203.0.113.7"
