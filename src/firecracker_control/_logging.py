"""Logging setup for firecracker-control.

The library only ever attaches a NullHandler to the ``firecracker_control``
logger. Applications that want output call configure_logging(), which installs
a queue-backed handler writing to stderr through click.

Log calls in this package pass structured context through ``extra`` (vm_name,
from_state, to_state, socket_path, ...). The console formatter appends those
fields to the message:

    DEBUG [2026-02-25 10:02:54] firecracker_control.virtual_machine - VM state transition vm_name=web-1 to_state=running

Level can also be set with FIRECRACKER_CONTROL_LOG_LEVEL (e.g. "DEBUG").
"""

import contextlib
import logging
import logging.handlers
import os
import queue

import click

LIBRARY_LOGGER_NAME: str = "firecracker_control"

logging.getLogger(LIBRARY_LOGGER_NAME).addHandler(logging.NullHandler())

_env_level = logging.getLevelNamesMapping().get(os.environ.get("FIRECRACKER_CONTROL_LOG_LEVEL", "").strip().upper())
if _env_level:
    logging.getLogger(LIBRARY_LOGGER_NAME).setLevel(_env_level)

_FMT = "%(levelname)s [%(asctime)s] %(name)s - %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"
_QUEUE_CAPACITY = 4096

# Attributes every LogRecord has; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}

_LEVEL_COLORS = {
    logging.DEBUG: "bright_black",
    logging.WARNING: "yellow",
    logging.ERROR: "red",
    logging.CRITICAL: "red",
}


class ContextFormatter(logging.Formatter):
    """Formatter that appends ``extra`` fields as key=value pairs."""

    def __init__(self, *, show_context: bool = True) -> None:
        super().__init__(fmt=_FMT, datefmt=_DATEFMT)
        self.show_context = show_context

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        if not self.show_context:
            return line
        context = " ".join(f"{k}={v}" for k, v in record.__dict__.items() if k not in _RECORD_ATTRS)
        return f"{line} {context}" if context else line


class _ClickHandler(logging.Handler):
    """Writes formatted records to stderr, colored by level.

    Runs on the QueueListener thread. click.echo strips styling when stderr
    is not a terminal.
    """

    def __init__(self, formatter: ContextFormatter) -> None:
        super().__init__()
        self.setFormatter(formatter)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            text = self.format(record)
            click.echo(click.style(text, fg=_LEVEL_COLORS.get(record.levelno)), err=True)
        except BlockingIOError:
            pass  # stderr full
        except Exception:  # noqa: BLE001
            self.handleError(record)


class _QueueingHandler(logging.handlers.QueueHandler):
    """Hands records to a listener thread; drops them when the queue is full."""

    def __init__(self, formatter: ContextFormatter) -> None:
        q: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=_QUEUE_CAPACITY)
        super().__init__(q)
        self.context_formatter = formatter
        self._listener = logging.handlers.QueueListener(q, _ClickHandler(formatter))
        self._listener.start()

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        # Same process: the target handler formats, so keep the record intact
        return record

    def enqueue(self, record: logging.LogRecord) -> None:
        with contextlib.suppress(queue.Full):
            self.queue.put_nowait(record)

    def close(self) -> None:
        self._listener.stop()
        super().close()


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``firecracker_control`` hierarchy."""
    return logging.getLogger(name)


def configure_logging(
    *,
    level: int | str | None = None,
    quiet: bool = False,
    show_context: bool = True,
) -> None:
    """Send library logs to stderr.

    Calling it again only updates the level and context setting; a second
    handler is never added.

    Args:
        level: Log level (e.g. logging.DEBUG, "INFO"). Overrides the env var.
        quiet: Only show errors. Takes precedence over level.
        show_context: Append structured ``extra`` fields to each line.
    """
    lib_logger = logging.getLogger(LIBRARY_LOGGER_NAME)

    existing = next((h for h in lib_logger.handlers if isinstance(h, _QueueingHandler)), None)
    if existing is None:
        lib_logger.addHandler(_QueueingHandler(ContextFormatter(show_context=show_context)))
    else:
        existing.context_formatter.show_context = show_context

    if quiet:
        lib_logger.setLevel(logging.ERROR)
    elif level is not None:
        lib_logger.setLevel(level)
