"""Async exponential backoff retry for mesh API calls."""

from __future__ import annotations

import asyncio
import functools
import random
from typing import Any, Callable, TypeVar

import httpx

from meshview.utils.logging import get_logger

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

RETRYABLE_HTTP_ERRORS: tuple[type[Exception], ...] = (
    httpx.TransportError,
    httpx.HTTPStatusError,
)


def _status_of(exc: Exception) -> int | None:
    response = getattr(exc, "response", None)
    return getattr(response, "status_code", None)


def _is_client_error(status: int | None) -> bool:
    return status is not None and 400 <= status < 500 and status != 429


def async_retry(
    max_attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 10.0,
    retryable_exceptions: tuple[type[Exception], ...] = RETRYABLE_HTTP_ERRORS,
) -> Callable[[F], F]:
    """Decorator for async functions with exponential backoff + jitter.

    Client errors (4xx except 429) are raised immediately.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            attempts = max(1, max_attempts)
            for attempt in range(1, attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except retryable_exceptions as exc:
                    status = _status_of(exc)
                    if _is_client_error(status):
                        logger.warning(
                            "retry_skipped_client_error",
                            func=func.__name__,
                            status=status,
                        )
                        raise

                    if attempt == attempts:
                        raise

                    delay = min(base_delay * (2 ** (attempt - 1)), max_delay)
                    total_delay = delay + random.uniform(0, delay * 0.5)
                    logger.warning(
                        "retry_attempt",
                        func=func.__name__,
                        attempt=attempt,
                        delay=round(total_delay, 2),
                        status=status,
                        error=str(exc),
                    )
                    await asyncio.sleep(total_delay)

            raise RuntimeError(f"Exhausted retries for {func.__name__}")

        return wrapper  # type: ignore[return-value]

    return decorator
