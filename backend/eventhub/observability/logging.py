from __future__ import annotations

import logging
import os
from typing import Any, Dict

import structlog

DEFAULT_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Chatty third-party loggers that would otherwise log every upstream request.
_QUIET_LOGGERS = ("httpx", "httpcore", "apscheduler.executors.default")


def configure_logging(level: str | None = None) -> None:
    """Configure stdlib + structlog to emit JSON logs to stdout."""
    log_level = level or DEFAULT_LEVEL

    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        handlers=[logging.StreamHandler()],
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            _rename_event_key,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
        wrapper_class=structlog.stdlib.BoundLogger,
    )


def _rename_event_key(logger: Any, name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    if "event" in event_dict:
        return event_dict
    msg = event_dict.pop("msg", None)
    if msg is not None:
        event_dict["event"] = msg
    return event_dict
