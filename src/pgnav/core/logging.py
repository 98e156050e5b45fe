"""structlog setup for the language server.

Every log line goes through the stdlib ``logging`` tree so that pygls and
pglast records share the same handlers as pgnav's own events. Each
configured output gets its own handler, level and renderer.

The default output is stderr. Under the stdio transport stdout is the
JSON-RPC channel.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog

if TYPE_CHECKING:
    from pgnav.config.models import LoggingConfig, LogOutputConfig

_request_id: ContextVar[str | None] = ContextVar("pgnav_request_id", default=None)

# Third-party loggers capped regardless of the configured root level.
# pygls traces every JSON-RPC message at DEBUG.
_QUIET_LOGGERS = {"pygls": logging.WARNING}

_CONSOLE_DESTINATIONS = ("stderr", "stdout")


def get_request_id() -> str | None:
    return _request_id.get()


def set_request_id(request_id: str | None = None) -> str:
    """Bind a correlation ID to the current request, generating one if needed."""
    value = request_id or uuid4().hex[:12]
    _request_id.set(value)
    return value


def clear_request_id() -> None:
    _request_id.set(None)


@contextmanager
def request_scope(request_id: str | None = None) -> Iterator[str]:
    """Tag every event logged inside the block with one request ID."""
    value = set_request_id(request_id)
    try:
        yield value
    finally:
        clear_request_id()


def _attach_request_id(
    _logger: structlog.types.WrappedLogger,
    _method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    request_id = _request_id.get()
    if request_id is not None:
        event_dict.setdefault("request_id", request_id)
    return event_dict


def _console_stream(destination: str) -> Any:
    """Current ``sys.stderr``/``sys.stdout`` for a console destination, else None."""
    if destination in _CONSOLE_DESTINATIONS:
        return getattr(sys, destination)
    return None


def _level_number(name: str | None, fallback: int = logging.INFO) -> int:
    if not name:
        return fallback
    number = logging.getLevelName(name.upper())
    return number if isinstance(number, int) else fallback


def _renderer(output: LogOutputConfig) -> structlog.types.Processor:
    if output.format == "json":
        return structlog.processors.JSONRenderer()
    stream = _console_stream(output.destination)
    return structlog.dev.ConsoleRenderer(
        colors=stream is not None and stream.isatty(),
        pad_event_to=0,
        pad_level=False,
    )


def _open_handler(output: LogOutputConfig) -> logging.Handler:
    stream = _console_stream(output.destination)
    if stream is not None:
        return logging.StreamHandler(stream)
    path = Path(output.destination)
    path.parent.mkdir(parents=True, exist_ok=True)
    return logging.FileHandler(path, mode="a", encoding="utf-8")


def configure_logging(
    *,
    config: LoggingConfig | None = None,
    json_format: bool = False,
    level: str = "INFO",
) -> None:
    """(Re)build the logging pipeline.

    A full ``config`` wins over ``json_format``/``level``, which only shape
    the single stderr output used when no config is given.
    """
    from pgnav.config.models import LoggingConfig, LogOutputConfig

    if config is None:
        config = LoggingConfig(
            level=level.upper(),  # type: ignore[arg-type]
            outputs=[LogOutputConfig(format="json" if json_format else "console")],
        )
    root_level = _level_number(config.level)

    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", key="timestamp"),
        _attach_request_id,  # type: ignore[list-item]
    ]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(root_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Reconfiguration (tests, `pgnav -v`) must reach loggers created earlier.
        cache_logger_on_first_use=False,
    )

    root = logging.getLogger()
    for stale in list(root.handlers):
        root.removeHandler(stale)
        if isinstance(stale, logging.FileHandler):
            stale.close()
    root.setLevel(root_level)
    for name, cap in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(cap)

    for output in config.outputs:
        handler = _open_handler(output)
        handler.setLevel(_level_number(output.level, root_level))
        handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processor=_renderer(output),
                foreign_pre_chain=pre_chain,
            )
        )
        root.addHandler(handler)
