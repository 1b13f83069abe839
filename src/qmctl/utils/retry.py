"""Retry utilities with exponential backoff.

Only read-only control-plane calls are wrapped with this decorator. A
mutating call (stop, destroy, clone, resize) whose first attempt timed
out may still have taken effect on the node, so it is never repeated.
"""

from __future__ import annotations

import functools
import random
import time
from collections.abc import Callable
from typing import ParamSpec, TypeVar

from qmctl.utils.logging import get_logger

logger = get_logger("retry")

P = ParamSpec("P")
T = TypeVar("T")


def retry_with_backoff(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    exceptions: tuple[type[Exception], ...] = (Exception,),
    on_retry: Callable[[Exception, int], None] | None = None,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Decorator for retrying functions with exponential backoff.

    Args:
        max_attempts: Maximum number of attempts (including first try).
        base_delay: Initial delay in seconds between retries.
        max_delay: Maximum delay in seconds (caps exponential growth).
        exponential_base: Base for exponential calculation (default 2).
        jitter: Add up to 50% random jitter to each delay.
        exceptions: Tuple of exception types to catch and retry.
        on_retry: Optional callback called on each retry with (exception, attempt).

    Returns:
        Decorated function with retry logic.

    Example:
        >>> @retry_with_backoff(max_attempts=3, exceptions=(SSHConnectionError,))
        ... def list_objects():
        ...     ...
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_attempts:
                        logger.error(f"All {max_attempts} attempts failed for {func.__name__}: {e}")
                        raise

                    delay = min(
                        base_delay * (exponential_base ** (attempt - 1)),
                        max_delay,
                    )
                    if jitter:
                        delay = delay * (1 + random.random() * 0.5)

                    logger.warning(
                        f"Attempt {attempt}/{max_attempts} failed for "
                        f"{func.__name__}: {e}. Retrying in {delay:.2f}s..."
                    )

                    if on_retry:
                        on_retry(e, attempt)

                    time.sleep(delay)

            raise RuntimeError("Unexpected retry loop exit")

        return wrapper

    return decorator
