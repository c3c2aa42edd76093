"""structlog setup for writepipe.

Records from library modules (stdlib ``logging.getLogger(__name__)``) and
from structlog loggers pass through one ``ProcessorFormatter`` on a single
stderr handler. Output is either a console rendering or JSON lines
(``log_json``). Values bound with :func:`log_context` appear on every line.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Generator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from writepipe.config.settings import WritepipeSettings

PACKAGE_LOGGER = "writepipe"
SQL_LOGGER = "sqlalchemy.engine"


def _pre_chain() -> list[structlog.types.Processor]:
    # Applied to both structlog events and foreign stdlib records.
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(log_json: bool) -> structlog.types.Processor:
    if log_json:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def _stderr_handler(formatter: logging.Formatter) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    return handler


def configure_logging(
    *,
    verbose: bool = False,
    log_json: bool = False,
    echo_sql: bool = False,
) -> None:
    """Route writepipe, SQLAlchemy and structlog output to stderr.

    Args:
        verbose: Let ``writepipe`` DEBUG records through; otherwise WARNING+.
        log_json: Render JSON lines rather than console text.
        echo_sql: Raise ``sqlalchemy.engine`` to INFO so statements are logged.
    """
    pre_chain = _pre_chain()

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(log_json),
        ],
    )

    root = logging.getLogger()
    root.handlers[:] = [_stderr_handler(formatter)]
    root.setLevel(logging.WARNING)

    logging.getLogger(PACKAGE_LOGGER).setLevel(logging.DEBUG if verbose else logging.WARNING)
    logging.getLogger(SQL_LOGGER).setLevel(logging.INFO if echo_sql else logging.WARNING)


def configure_from_settings(settings: WritepipeSettings) -> None:
    """Apply the logging flags of *settings*."""
    configure_logging(
        verbose=settings.verbose,
        log_json=settings.log_json,
        echo_sql=settings.echo,
    )


@contextmanager
def log_context(**values: Any) -> Generator[None]:
    """Bind *values* to every log line emitted inside the block."""
    with structlog.contextvars.bound_contextvars(**values):
        yield
