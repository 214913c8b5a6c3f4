"""
Structured logging for the helpdesk portal.

Every event carries the component that emitted it (``portal.<component>``
logger names), the signed-in user when there is one, and, inside a gateway
call, a request id shared by all of that call's attempts.
"""

import logging
import sys
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Iterator, Optional, Union

import structlog

request_id_var: ContextVar[Optional[str]] = ContextVar("portal_request_id", default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar("portal_user_id", default=None)


def configure_logging(service_name: str = "portal", log_level: str = "info", json_logs: bool = True) -> None:
    """Configure structlog on top of stdlib logging; call once per process."""
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            add_component,
            add_portal_context,
            add_monotonic_ms,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )
    get_logger(f"{service_name}.logging").debug("Logging configured", log_level=log_level)


def add_component(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """``portal.cache`` -> ``component=cache``; ``portal.retry.http_request`` -> ``component=retry``."""
    parts = event_dict.get("logger", "").split(".")
    if len(parts) > 1:
        event_dict.setdefault("component", parts[1])
    return event_dict


def add_portal_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    request_id = request_id_var.get()
    if request_id:
        event_dict.setdefault("request_id", request_id)

    user_id = user_id_var.get()
    if user_id:
        event_dict.setdefault("user_id", user_id)

    return event_dict


def add_monotonic_ms(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Monotonic clock reading for ordering events within one process."""
    event_dict["monotonic_ms"] = int(time.monotonic() * 1000)
    return event_dict


@contextmanager
def request_context(request_id: Optional[str] = None) -> Iterator[str]:
    """Tag every event logged inside the block with one request id."""
    request_id = request_id or uuid.uuid4().hex[:12]
    token = request_id_var.set(request_id)
    try:
        yield request_id
    finally:
        request_id_var.reset(token)


def set_user_context(user_id: Optional[Union[int, str]]) -> None:
    """Bind the signed-in user to subsequent events; ``None`` unbinds."""
    user_id_var.set(str(user_id) if user_id is not None else None)


def clear_context() -> None:
    request_id_var.set(None)
    user_id_var.set(None)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
