"""
Fleet Score Structured Logging
==============================

structlog configuration shared by the worker stages.

Every record carries ISO timestamp, level, logger name and service name.
While a broker message is being handled, its coordinates are bound to
the logging context:

    correlation_id = "<topic>:<partition>:<offset>"
    message_key    = broker key (driver or truck id)

Standard library loggers (``logging.getLogger(__name__)``) render through
the same processor chain as structlog loggers.

Author: Fleet Platform Team
Version: 1.0.0
"""

import logging
import sys
from typing import Any, Dict, List, Optional

import structlog


SERVICE_NAME = "fleetscore"

# Loggers that are chatty at INFO in a busy worker
NOISY_LOGGERS = ("aiokafka", "kafka", "sqlalchemy.engine", "alembic.runtime")


def bind_message_context(
    topic: str,
    partition: int,
    offset: int,
    key: Optional[bytes] = None,
) -> str:
    """
    Bind the coordinates of the broker message being handled.

    Returns:
        The correlation id bound for this message
    """
    correlation_id = f"{topic}:{partition}:{offset}"
    context: Dict[str, Any] = {"correlation_id": correlation_id}
    if key is not None:
        context["message_key"] = (
            key.decode("utf-8", errors="replace") if isinstance(key, bytes) else str(key)
        )
    structlog.contextvars.bind_contextvars(**context)
    return correlation_id


def clear_message_context() -> None:
    """Unbind the message coordinates once a message is settled."""
    structlog.contextvars.unbind_contextvars("correlation_id", "message_key")


def get_correlation_id() -> Optional[str]:
    """Correlation id of the message being handled, if any."""
    return structlog.contextvars.get_contextvars().get("correlation_id")


def _add_service_info(logger: Any, method_name: str, event_dict: Dict) -> Dict:
    event_dict["service"] = SERVICE_NAME
    return event_dict


def _shared_processors() -> List[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        _add_service_info,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def setup_logging(
    level: str = "INFO",
    json_output: bool = True,
    log_file: Optional[str] = None,
) -> None:
    """
    Configure structured logging for a worker process.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: JSON lines when True, colored console output otherwise
        log_file: Optional path that receives the same records
    """
    processors = _shared_processors()

    structlog.configure(
        processors=processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )
    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=processors,
    )

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    root = logging.getLogger()
    root.handlers.clear()
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> Any:
    """Structured logger for a module (typically ``__name__``)."""
    return structlog.get_logger(name)
