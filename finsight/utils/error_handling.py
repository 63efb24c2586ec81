"""
Recoverable-failure helpers.

- ``log_and_continue``: one record of a batch is bad, skip it and keep going
- ``log_and_return_default``: a collaborator failed, hand back the local fallback
- ``with_retry``: retry transient failures with doubling backoff (sync or async)

Usage::

    from finsight.utils.error_handling import log_and_return_default

    try:
        text = await client.complete(prompt)
    except InsightClientError as e:
        return log_and_return_default(logger, e, {"insight": "health"}, fallback, "Health insight generation")
"""

import asyncio
import functools
import inspect
import logging
import time
from collections.abc import Callable, Iterator
from typing import Any, TypeVar

T = TypeVar("T")

DEFAULT_PREVIEW_CHARS = 200


def _failure_fields(error: Exception, context: dict[str, Any], error_type: str) -> dict[str, Any]:
    return {"error_type": error_type, "exception_class": type(error).__name__, "context": context}


def log_and_continue(
    logger: logging.Logger,
    error: Exception,
    context: dict[str, Any],
    error_type: str = "Operation",
) -> None:
    """
    Log a skipped item at WARNING.

    Example:
        except (KeyError, ValueError) as e:
            log_and_continue(logger, e, {"index": index}, "Account parsing")
    """
    logger.warning(f"{error_type} failed: {error}", extra=_failure_fields(error, context, error_type))


def log_and_return_default(
    logger: logging.Logger,
    error: Exception,
    context: dict[str, Any],
    default_value: Any = None,
    error_type: str = "Operation",
) -> Any:
    """
    Log a collaborator failure at WARNING and return ``default_value``.

    The logged preview of the default is cut to ``DEFAULT_PREVIEW_CHARS``.
    """
    fields = _failure_fields(error, context, error_type)
    fields["default_value"] = str(default_value)[:DEFAULT_PREVIEW_CHARS]
    logger.warning(f"{error_type} failed, returning default value: {error}", extra=fields)
    return default_value


def backoff_delays(max_attempts: int, backoff_seconds: float) -> Iterator[float]:
    """Waits between attempts: ``backoff_seconds``, doubled after each retry."""
    for retry in range(max_attempts - 1):
        yield backoff_seconds * 2**retry


def with_retry(
    max_attempts: int = 3,
    backoff_seconds: float = 1.0,
    exceptions: tuple[type[Exception], ...] = (Exception,),
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Retry a function on ``exceptions``; the last failure is re-raised.

    Coroutine functions wait with ``asyncio.sleep`` so other tasks keep running.

    Example:
        @with_retry(max_attempts=3, backoff_seconds=0.5, exceptions=(httpx.TransportError,))
        async def _post(self, payload): ...
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        logger = logging.getLogger(func.__module__)

        def note_retry(attempt: int, delay: float, error: Exception) -> None:
            logger.warning(
                f"{func.__name__} attempt {attempt}/{max_attempts} failed, retrying in {delay:.1f}s: {error}",
                extra={"function": func.__name__, "attempt": attempt, "wait_time": delay},
            )

        def give_up(error: Exception) -> None:
            logger.error(
                f"{func.__name__} failed after {max_attempts} attempts",
                extra={"function": func.__name__, "final_exception": type(error).__name__},
            )

        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                delays = backoff_delays(max_attempts, backoff_seconds)
                attempt = 1
                while True:
                    try:
                        return await func(*args, **kwargs)
                    except exceptions as e:
                        delay = next(delays, None)
                        if delay is None:
                            give_up(e)
                            raise
                        note_retry(attempt, delay, e)
                        await asyncio.sleep(delay)
                        attempt += 1

            return async_wrapper  # type: ignore[return-value]

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            delays = backoff_delays(max_attempts, backoff_seconds)
            attempt = 1
            while True:
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    delay = next(delays, None)
                    if delay is None:
                        give_up(e)
                        raise
                    note_retry(attempt, delay, e)
                    time.sleep(delay)
                    attempt += 1

        return wrapper

    return decorator
