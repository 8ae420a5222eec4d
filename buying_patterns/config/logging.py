"""
Logging for Analytics Runs

structlog routed through the stdlib root logger, so polars-side messages,
Prefect task logs and our own key/value events share one stream. Each run
binds a run id into the context; every event logged inside the run
carries it.
"""

import logging
import sys
import uuid
from contextlib import contextmanager
from typing import Iterator, Optional

import structlog
from structlog.processors import JSONRenderer, TimeStamper
from structlog.stdlib import ProcessorFormatter, add_log_level

from buying_patterns.config.settings import Settings, get_settings

# Third-party loggers never shown below INFO
QUIET_LOGGERS = ("prefect", "httpx", "httpcore", "urllib3")

PRE_CHAIN = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    add_log_level,
    TimeStamper(fmt="iso", utc=True),
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
]


def _renderer(log_format: str):
    if log_format == "json":
        return JSONRenderer(sort_keys=True)
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def configure_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> None:
    """
    Route structlog through the root logger.

    Args:
        log_level: overrides LOG_LEVEL
        log_format: "json" or "text", overrides the monitoring settings
        settings: settings to fall back on, get_settings() by default
    """
    settings = settings or get_settings()
    level_name = (log_level or settings.monitoring.log_level).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO
    log_format = log_format or settings.monitoring.log_format

    structlog.configure(
        processors=PRE_CHAIN + [ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ProcessorFormatter(
        processor=_renderer(log_format),
        foreign_pre_chain=PRE_CHAIN,
    ))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.INFO))

    structlog.get_logger(__name__).debug(
        "Logging configured",
        level=level_name,
        format=log_format,
        environment=settings.app_env,
    )


@contextmanager
def run_context(run_id: Optional[str] = None, **values) -> Iterator[str]:
    """
    Bind a run id (and any extra values) to every event logged in the block.

    Yields:
        The bound run id
    """
    run_id = run_id or uuid.uuid4().hex[:12]
    with structlog.contextvars.bound_contextvars(run_id=run_id, **values):
        yield run_id
