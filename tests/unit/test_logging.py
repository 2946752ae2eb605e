"""Tests for logging configuration."""

import os
import time

import structlog

from ideaverse.core.logging import (
    _cull_old_logs,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)


class TestLoggingConfiguration:
    """Tests for logging setup."""

    def test_configure_logging_sets_up_structlog(self):
        """configure_logging() sets up structlog properly."""
        configure_logging(log_to_file=False)
        logger = structlog.get_logger("test")
        assert logger is not None

    def test_get_logger_returns_bound_logger(self):
        """get_logger() returns a BoundLogger (or proxy)."""
        logger = get_logger("test_module")
        assert hasattr(logger, "info")
        assert hasattr(logger, "error")
        assert hasattr(logger, "debug")

    def test_logger_can_bind_context(self):
        """Logger can bind context variables."""
        logger = get_logger("test")
        bound_logger = logger.bind(session_id="test-123", operation="questions")
        bound_logger.info("test_message")


def test_context_binding():
    """Context variables can be bound and cleared."""
    configure_logging(log_to_file=False)

    bind_context(session_id="abc")
    assert structlog.contextvars.get_contextvars()["session_id"] == "abc"

    clear_context()
    assert "session_id" not in structlog.contextvars.get_contextvars()


def test_cull_old_logs_keeps_most_recent(tmp_path):
    for i in range(5):
        path = tmp_path / f"ideaverse_2026010{i}_000000.log"
        path.write_text("x")
        mtime = time.time() - (5 - i) * 60
        os.utime(path, (mtime, mtime))
    (tmp_path / "unrelated.txt").write_text("keep")

    _cull_old_logs(tmp_path, keep=2)

    remaining = sorted(p.name for p in tmp_path.glob("ideaverse_*.log"))
    assert remaining == ["ideaverse_20260103_000000.log", "ideaverse_20260104_000000.log"]
    assert (tmp_path / "unrelated.txt").exists()
