"""Tests for the logging service wrapper."""
from __future__ import annotations

import logging

from big_clock.core.logging_service import LoggingService, get_logger


def test_trace_maps_to_debug() -> None:
    service = LoggingService("big-clock-trace", "trace")
    assert logging.getLogger("big-clock-trace").level == logging.DEBUG
    assert len(logging.getLogger("big-clock-trace").handlers) == 1
    service.debug("tick")


def test_unknown_level_defaults_to_info() -> None:
    LoggingService("big-clock-odd", "LOUD")
    assert logging.getLogger("big-clock-odd").level == logging.INFO


def test_get_logger_is_singleton() -> None:
    assert get_logger() is get_logger("ignored", "DEBUG")


def test_banners_are_logged(caplog) -> None:
    service = LoggingService("big-clock-banner", "INFO")
    logging.getLogger("big-clock-banner").propagate = True

    with caplog.at_level(logging.INFO, logger="big-clock-banner"):
        service.log_startup("1.0.0", {"blink_policy": "even-second-parity"})
        service.log_shutdown()

    assert "Big Clock plugin v1.0.0 starting up" in caplog.text
    assert "Blink policy: even-second-parity" in caplog.text
    assert "shutting down" in caplog.text
