"""
Structured logging configuration using structlog.
"""
import logging
import sys
from typing import Any, Dict

import structlog


def _stderr_logger(*args: Any) -> structlog.PrintLogger:
    # Resolved per logger so a replaced sys.stderr is picked up.
    return structlog.PrintLogger(file=sys.stderr)


def setup_logging(debug: bool = False, json_logs: bool = False) -> None:
    """
    Configure structured logging for command-line and standalone use.

    Args:
        debug: Emit debug events
        json_logs: Render JSON lines instead of the console renderer
    """
    level = logging.DEBUG if debug else logging.INFO

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=level,
    )

    dev_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(colors=False),
    ]

    prod_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.dict_tracebacks,
        structlog.processors.JSONRenderer(),
    ]

    structlog.configure(
        processors=prod_processors if json_logs else dev_processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=_stderr_logger,
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (usually __name__ of the module)

    Returns:
        Configured logger instance
    """
    return structlog.get_logger(name)


def _drop_event(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    raise structlog.DropEvent


def build_logger(mode: str, name: str | None = None) -> Any:
    """
    Logger for an access control instance honouring its ``logging`` option.

    ``"console"`` returns the regular structlog logger; ``"disabled"`` returns
    a logger whose every event is dropped before rendering.
    """
    if mode == "console":
        return get_logger(name)
    return structlog.wrap_logger(None, processors=[_drop_event])


def log_decision_details(
    method: str,
    path: str,
    user_id: Any = None,
    **kwargs: Any,
) -> Dict[str, Any]:
    """
    Create a context dict for authorization decision logging.

    Args:
        method: HTTP method
        path: Request path
        user_id: Authenticated user ID
        **kwargs: Additional context

    Returns:
        Context dictionary for logging
    """
    context = {
        "method": method,
        "path": path,
        **kwargs,
    }

    if user_id is not None:
        context["user_id"] = user_id

    return context
