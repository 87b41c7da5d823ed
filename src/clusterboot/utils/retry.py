# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

import time
import functools
from typing import Callable, Iterator

class RetryError(RuntimeError):
    pass


def backoff_delays(base: float, cap: float, attempts: int) -> Iterator[float]:
    """
    Delays to sleep between *attempts* tries: base, 2*base, 4*base, ...
    capped at *cap*. Yields attempts - 1 values.
    """
    delay = base
    for _ in range(max(attempts - 1, 0)):
        yield min(delay, cap)
        delay *= 2


def retry(
    *,
    retries: int,
    delay: float,
    retry_on: tuple[type[Exception], ...] = (Exception,),
    on_retry: Callable[[int, Exception], None] | None = None,
    max_delay: float | None = None,
):
    """
    Retry decorator for idempotent operations.

    retries: number of attempts
    delay: seconds before the second attempt, doubled after each failure
    retry_on: exception types to retry
    on_retry: callback(attempt, exception)
    max_delay: cap for the doubled delay (defaults to delay, i.e. fixed)
    """

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            last_exc = None
            delays = backoff_delays(delay, delay if max_delay is None else max_delay, retries)
            for attempt in range(1, retries + 1):
                try:
                    return fn(*args, **kwargs)
                except retry_on as exc:
                    last_exc = exc
                    if on_retry:
                        on_retry(attempt, exc)
                    if attempt == retries:
                        break
                    time.sleep(next(delays))
            raise RetryError(f"{fn.__name__} failed after {retries} retries") from last_exc
        return wrapper
    return decorator
