"""Structured logging configuration for dependency forests using structlog.

The library only ever calls ``structlog.get_logger(__name__)``; nothing is
configured on import. Applications call configure_logging() once, either
directly or from a loaded DepForestConfig.

Example:
    >>> from depforest.log_config import configure_logging, get_logger
    >>> configure_logging(level="DEBUG", json_logs=False)
    >>> logger = get_logger(__name__)
    >>> logger.info("forest_loaded", node_count=12)
"""

import logging
import sys
from typing import IO, TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from depforest.config import DepForestConfig


def configure_logging(
    level: str = "INFO",
    json_logs: bool = True,
    stream: IO[str] | None = None,
) -> None:
    """Configure structlog on top of the standard library logging module.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: If True, render JSON lines; if False, use the colored
            console renderer for development
        stream: Output stream, stdout by default

    Raises:
        ValueError: If an invalid log level is provided
    """
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        msg = f"Invalid log level: {level}"
        raise ValueError(msg)

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.MODULE,
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            ],
        ),
        structlog.processors.StackInfoRenderer(),
    ]

    # Exceptions are rendered into the event itself, never appended as raw text
    if json_logs:
        renderers: list[Any] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        renderers = [
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            ),
        ]

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *renderers],
    )
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(formatter)

    logging.basicConfig(handlers=[handler], level=numeric_level, force=True)

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def configure_logging_from(config: "DepForestConfig") -> None:
    """Configure logging from the logging settings of a loaded configuration."""
    configure_logging(level=config.logging_level, json_logs=config.json_logs)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger, typically with ``__name__`` as the name."""
    return structlog.get_logger(name)


def bind_forest_id(forest_id: str) -> None:
    """Tag every subsequent log entry in this context with a forest identifier.

    Useful when one process maintains several forests and their node keys
    overlap.
    """
    structlog.contextvars.bind_contextvars(forest_id=forest_id)


def unbind_forest_id() -> None:
    structlog.contextvars.unbind_contextvars("forest_id")


def bind_context(**kwargs: Any) -> None:
    """Bind arbitrary context variables to the logging context.

    Example:
        >>> bind_context(source="build.json")
        >>> logger.info("payload_decoded")  # Will include source
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
