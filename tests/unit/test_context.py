"""Request context and logging configuration tests."""

import structlog

from laro.config import Settings
from laro.context import RequestContext
from laro.logging import setup_logging


class TestRequestContext:
    def test_request_ids_are_unique(self):
        assert RequestContext(user_id=1).request_id != RequestContext(user_id=1).request_id

    def test_bind_sets_contextvars(self):
        structlog.contextvars.clear_contextvars()
        ctx = RequestContext(user_id=42, request_id="abc")
        ctx.bind()

        bound = structlog.contextvars.get_contextvars()
        assert bound["user_id"] == 42
        assert bound["request_id"] == "abc"
        structlog.contextvars.clear_contextvars()


class TestSetupLogging:
    def test_console_and_json_renderers(self):
        for fmt in ("console", "json"):
            setup_logging(Settings(log_format=fmt, log_level="debug"))
            assert structlog.is_configured()
        structlog.reset_defaults()
