from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from video_translation.ops import metrics
from video_translation.utils.log import logger

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Strategy(Generic[T]):
    """
    One rung of a fallback ladder.

    `run` receives the strategy's own timeout so each rung can hand it to the
    tool invoker; a rung signals failure by raising.
    """

    name: str
    run: Callable[[float], T]
    timeout_s: float = 30.0


@dataclass(frozen=True, slots=True)
class Attempt:
    strategy: str
    ok: bool
    elapsed_s: float
    error: str | None = None


@dataclass(slots=True)
class LadderOutcome(Generic[T]):
    operation: str
    value: T
    strategy: str
    index: int
    attempts: list[Attempt] = field(default_factory=list)

    @property
    def fell_back(self) -> bool:
        return self.index > 0


class LadderExhausted(RuntimeError):
    def __init__(self, operation: str, attempts: list[Attempt]) -> None:
        tried = ", ".join(f"{a.strategy}: {a.error}" for a in attempts) or "no strategies"
        super().__init__(f"{operation}: all strategies failed ({tried})")
        self.operation = operation
        self.attempts = attempts


def run_ladder(
    operation: str,
    strategies: Sequence[Strategy[T]],
    *,
    verify: Callable[[T], None] | None = None,
) -> LadderOutcome[T]:
    """
    Try each strategy in order until one succeeds (and passes `verify`).

    A failed strategy is never retried verbatim; the next rung runs instead.
    """
    attempts: list[Attempt] = []
    for i, st in enumerate(strategies):
        t0 = time.perf_counter()
        try:
            value = st.run(float(st.timeout_s))
            if verify is not None:
                verify(value)
        except Exception as ex:
            attempts.append(
                Attempt(
                    strategy=st.name,
                    ok=False,
                    elapsed_s=time.perf_counter() - t0,
                    error=str(ex).splitlines()[0][:300] if str(ex) else type(ex).__name__,
                )
            )
            logger.warning(
                "ladder_step_failed",
                operation=operation,
                strategy=st.name,
                step=i + 1,
                of=len(strategies),
                error=attempts[-1].error,
            )
            continue

        attempts.append(Attempt(strategy=st.name, ok=True, elapsed_s=time.perf_counter() - t0))
        if i > 0:
            metrics.ladder_fallbacks.labels(operation=operation, strategy=st.name).inc()
            logger.info("ladder_fallback_used", operation=operation, strategy=st.name, step=i + 1)
        return LadderOutcome(
            operation=operation, value=value, strategy=st.name, index=i, attempts=attempts
        )

    metrics.ladder_exhausted.labels(operation=operation).inc()
    logger.error("ladder_exhausted", operation=operation, attempts=len(attempts))
    raise LadderExhausted(operation, attempts)
