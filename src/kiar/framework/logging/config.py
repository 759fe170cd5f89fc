"""
Process-wide logging setup.

``configure_logging`` is called once by the CLI entry points (``kiar
serve``, ``kiar jobs run``); library modules only call ``get_logger``.
Level and format default to the ``log_level`` and ``log_format`` settings
(``KIAR_LOG_LEVEL``, ``KIAR_LOG_FORMAT``).

Entries are rendered by structlog and written by one stdlib handler on the
root logger; reconfiguring replaces that handler.
"""

from __future__ import annotations

import logging
import sys

import structlog
from structlog.types import Processor

from kiar.framework.logging.context import merge_job_context

_configured = False
_handler: logging.Handler | None = None


def _renderer_chain(format: str) -> list[Processor]:
    if format == "json":
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer(sort_keys=True)]
    # ConsoleRenderer formats exc_info itself
    return [structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty(), exception_formatter=structlog.dev.plain_traceback)]


def configure_logging(level: str | None = None, format: str | None = None, force: bool = False) -> None:
    """Configure structlog and a stderr handler on the stdlib root logger.

    Repeated calls are no-ops unless ``force`` is set.
    """
    global _configured, _handler
    if _configured and not force:
        return

    if level is None or format is None:
        from kiar.core.settings import get_settings

        settings = get_settings()
        level = level or settings.log_level
        format = format or settings.log_format

    numeric_level = getattr(logging, level.upper())

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            merge_job_context,
            *_renderer_chain(format.lower()),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    if _handler is not None:
        root.removeHandler(_handler)
    _handler = logging.StreamHandler(sys.stderr)
    _handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(_handler)
    root.setLevel(numeric_level)

    _configured = True


def is_configured() -> bool:
    return _configured
