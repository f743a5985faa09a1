from __future__ import annotations

import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from prometheus_client import CollectorRegistry, Counter, Histogram

REGISTRY = CollectorRegistry()

# Seconds; a chunk takes seconds, a whole language can take most of an hour.
PIPELINE_BUCKETS = (0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 900.0, 1800.0, 3600.0)

# Jobs
jobs_created = Counter("video_translation_jobs_created_total", "Jobs created", registry=REGISTRY)
jobs_finished = Counter(
    "video_translation_jobs_finished_total",
    "Jobs finished by final state",
    labelnames=("state",),
    registry=REGISTRY,
)
language_results = Counter(
    "video_translation_language_results_total",
    "Per-language results by final status",
    labelnames=("status",),
    registry=REGISTRY,
)
degraded_results = Counter(
    "video_translation_degraded_results_total",
    "Per-language results produced through a degraded path",
    registry=REGISTRY,
)
chunk_failures = Counter(
    "video_translation_chunk_failures_total",
    "Chunks replaced by silence after a collaborator failure",
    registry=REGISTRY,
)

# Fallback ladders
ladder_fallbacks = Counter(
    "video_translation_ladder_fallbacks_total",
    "Ladder operations that succeeded on a non-first strategy",
    labelnames=("operation", "strategy"),
    registry=REGISTRY,
)
ladder_exhausted = Counter(
    "video_translation_ladder_exhausted_total",
    "Ladder operations where every strategy failed",
    labelnames=("operation",),
    registry=REGISTRY,
)

# Stage durations
chunk_seconds = Histogram(
    "video_translation_chunk_seconds",
    "Per-chunk recognize/translate/synthesize seconds",
    registry=REGISTRY,
    buckets=PIPELINE_BUCKETS,
)
mux_seconds = Histogram(
    "video_translation_mux_seconds",
    "Mux stage seconds",
    registry=REGISTRY,
    buckets=PIPELINE_BUCKETS,
)
language_seconds = Histogram(
    "video_translation_language_seconds",
    "End-to-end seconds per target language",
    registry=REGISTRY,
    buckets=PIPELINE_BUCKETS,
)


@contextmanager
def time_hist(h: Histogram) -> Iterator[Callable[[], float]]:
    """
    Observe the block's wall time into `h`.

    Yields a callable returning seconds so far (frozen once the block exits).
    """
    t0 = time.perf_counter()
    frozen: list[float] = []

    def elapsed() -> float:
        return frozen[0] if frozen else time.perf_counter() - t0

    try:
        yield elapsed
    finally:
        frozen.append(time.perf_counter() - t0)
        h.observe(frozen[0])
