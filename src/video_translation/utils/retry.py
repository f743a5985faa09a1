from __future__ import annotations

import random
import time
from collections.abc import Callable
from typing import Any


def backoff_delay(attempt: int, *, base: float, cap: float, jitter: bool) -> float:
    """Seconds to wait before retry number `attempt` (0-based)."""
    delay = min(float(cap), float(base) * (2 ** max(0, attempt)))
    if jitter:
        delay *= 0.5 + random.random()
    return max(0.0, delay)


def retry_call(
    fn: Callable[[], Any],
    *,
    retries: int = 3,
    base: float = 0.5,
    cap: float = 8.0,
    jitter: bool = True,
    giveup: Callable[[Exception], bool] | None = None,
    on_retry: Callable[[int, float, Exception], None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Any:
    """
    Call fn() up to 1 + `retries` times with capped exponential backoff.

    The last error propagates, as does any error `giveup` accepts.
    """
    retries = max(0, int(retries))
    for attempt in range(retries + 1):
        try:
            return fn()
        except Exception as ex:
            if attempt == retries or (giveup is not None and giveup(ex)):
                raise
            delay = backoff_delay(attempt, base=base, cap=cap, jitter=jitter)
            if on_retry is not None:
                on_retry(attempt + 1, delay, ex)
            sleep(delay)
