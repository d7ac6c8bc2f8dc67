"""Tests for library logging setup."""

from __future__ import annotations

import logging
from collections.abc import Iterator

import pytest

from firecracker_control._logging import (
    LIBRARY_LOGGER_NAME,
    ContextFormatter,
    _QueueingHandler,
    configure_logging,
    get_logger,
)


@pytest.fixture
def library_logger() -> Iterator[logging.Logger]:
    """Library logger restored to its original handlers and level afterwards."""
    lib_logger = logging.getLogger(LIBRARY_LOGGER_NAME)
    handlers = list(lib_logger.handlers)
    level = lib_logger.level
    yield lib_logger
    for handler in lib_logger.handlers:
        if handler not in handlers:
            lib_logger.removeHandler(handler)
            handler.close()
    lib_logger.setLevel(level)


def _record(**extra: object) -> logging.LogRecord:
    record = logging.LogRecord("firecracker_control.vm", logging.INFO, __file__, 1, "VM state transition", None, None)
    record.__dict__.update(extra)
    return record


class TestContextFormatter:
    def test_appends_extra_fields(self) -> None:
        line = ContextFormatter().format(_record(vm_name="web-1", to_state="running"))
        assert line.endswith("VM state transition vm_name=web-1 to_state=running")
        assert line.startswith("INFO [")

    def test_no_extra(self) -> None:
        assert ContextFormatter().format(_record()).endswith(" - VM state transition")

    def test_context_disabled(self) -> None:
        assert ContextFormatter(show_context=False).format(_record(vm_name="x")).endswith("VM state transition")


class TestConfigureLogging:
    def test_library_has_null_handler(self) -> None:
        assert any(isinstance(h, logging.NullHandler) for h in logging.getLogger(LIBRARY_LOGGER_NAME).handlers)

    def test_idempotent(self, library_logger: logging.Logger) -> None:
        configure_logging(level="DEBUG")
        configure_logging(level="INFO", show_context=False)

        queueing = [h for h in library_logger.handlers if isinstance(h, _QueueingHandler)]
        assert len(queueing) == 1
        assert queueing[0].context_formatter.show_context is False
        assert library_logger.level == logging.INFO

    def test_quiet_wins(self, library_logger: logging.Logger) -> None:
        configure_logging(level=logging.DEBUG, quiet=True)
        assert library_logger.level == logging.ERROR

    def test_get_logger_in_hierarchy(self) -> None:
        assert get_logger("firecracker_control.client").parent is logging.getLogger(LIBRARY_LOGGER_NAME)
