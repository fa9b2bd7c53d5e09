# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

import functools
import time
from dataclasses import dataclass
from typing import Callable, Iterator

from ..errors import HostupError


class RetryError(HostupError):
    pass


@dataclass(frozen=True)
class Backoff:
    """
    Delay policy between attempts: interval, multiplied by factor after
    each failure, never above max_interval. factor=1.0 is a fixed interval.
    """

    interval: float
    factor: float = 1.0
    max_interval: float = 60.0

    def delays(self) -> Iterator[float]:
        delay = self.interval
        while True:
            yield min(delay, self.max_interval)
            delay = min(delay * self.factor, self.max_interval)


def retry(
    *,
    retries: int,
    backoff: Backoff,
    retry_on: tuple[type[Exception], ...] = (Exception,),
    on_retry: Callable[[int, Exception], None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
):
    """
    Retry decorator for idempotent operations.

    retries: number of attempts
    backoff: delay policy between attempts
    retry_on: exception types to retry
    on_retry: callback(attempt, exception)
    """

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            last_exc = None
            delays = backoff.delays()
            for attempt in range(1, retries + 1):
                try:
                    return fn(*args, **kwargs)
                except retry_on as exc:
                    last_exc = exc
                    if on_retry:
                        on_retry(attempt, exc)
                    if attempt == retries:
                        break
                    sleep(next(delays))
            raise RetryError(f"{fn.__name__} failed after {retries} attempts: {last_exc}") from last_exc
        return wrapper
    return decorator
