"""Tests for logging configuration and the token cleanup loop."""

import asyncio
import json
import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from taskauth.core.logging import JSONFormatter, get_logger, setup_logging
from taskauth.main import _token_cleanup_loop


class TestLogging:
    def test_get_logger_prefix(self):
        assert get_logger("auth").name == "taskauth.auth"

    def test_json_formatter_escapes_message(self):
        record = logging.LogRecord(
            name="taskauth.test",
            level=logging.WARNING,
            pathname=__file__,
            lineno=1,
            msg='quote " and\nnewline',
            args=(),
            exc_info=None,
        )
        entry = json.loads(JSONFormatter().format(record))

        assert entry["level"] == "WARNING"
        assert entry["logger"] == "taskauth.test"
        assert entry["message"] == 'quote " and\nnewline'
        assert "user_id" not in entry

    def test_json_formatter_includes_session_context(self):
        record = logging.LogRecord(
            name="taskauth.services.auth",
            level=logging.WARNING,
            pathname=__file__,
            lineno=1,
            msg="Forced logout",
            args=(),
            exc_info=None,
        )
        record.user_id = "4b1f0c1e-0000-4000-8000-000000000001"
        record.reason = "security_breach"
        record.sessions_revoked = 2
        entry = json.loads(JSONFormatter().format(record))

        assert entry["user_id"] == "4b1f0c1e-0000-4000-8000-000000000001"
        assert entry["reason"] == "security_breach"
        assert entry["sessions_revoked"] == 2

    def test_setup_structured_logging(self):
        original_handlers = logging.root.handlers[:]
        original_level = logging.root.level
        try:
            setup_logging(level="warning", format_type="structured")
            assert logging.root.level == logging.WARNING
            assert isinstance(logging.root.handlers[0].formatter, JSONFormatter)
        finally:
            logging.root.handlers = original_handlers
            logging.root.setLevel(original_level)


class TestTokenCleanupLoop:
    @pytest.mark.asyncio
    async def test_cleanup_runs_and_survives_errors(self):
        manager = MagicMock()
        manager.cleanup_expired = AsyncMock(
            side_effect=[RuntimeError("boom"), (3, 1), asyncio.CancelledError()]
        )

        with patch("taskauth.main.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(asyncio.CancelledError):
                await _token_cleanup_loop(manager, 60)

        assert manager.cleanup_expired.await_count == 3
