from __future__ import annotations

import functools
import inspect
import time
from typing import Any, Callable, Dict, TypeVar

import structlog

F = TypeVar("F", bound=Callable[..., Any])

logger = structlog.get_logger("job")


def _result_fields(res: Any) -> Dict[str, Any]:
    """Summarize a job's return value for the completion log line."""
    if isinstance(res, (list, tuple, set, dict)):
        fields: Dict[str, Any] = {"result_size": len(res)}
        failed = [r for r in res if getattr(r, "error", None)] if isinstance(res, (list, tuple)) else []
        if failed:
            fields["failed"] = len(failed)
        return fields
    return {"result_size": None}


def log_job(name: str) -> Callable[[F], F]:
    """Decorator to measure job duration and emit structured logs."""

    def decorator(func: F) -> F:
        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any):
                start = time.perf_counter()
                logger.info("job.start", job=name)
                try:
                    result = await func(*args, **kwargs)
                except Exception:
                    logger.exception("job.error", job=name, duration_ms=_elapsed_ms(start))
                    raise
                logger.info("job.completed", job=name, duration_ms=_elapsed_ms(start), **_result_fields(result))
                return result

            return async_wrapper  # type: ignore[return-value]

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any):
            start = time.perf_counter()
            logger.info("job.start", job=name)
            try:
                result = func(*args, **kwargs)
            except Exception:
                logger.exception("job.error", job=name, duration_ms=_elapsed_ms(start))
                raise
            logger.info("job.completed", job=name, duration_ms=_elapsed_ms(start), **_result_fields(result))
            return result

        return sync_wrapper  # type: ignore[return-value]

    return decorator


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)
