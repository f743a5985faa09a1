from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Notification:
    event: str
    title: str
    message: str
    url: str | None = None
    tags: Sequence[str] | None = None
    priority: int | None = None  # 1..5 (ntfy convention)
    job_id: str | None = None


# Returns True when delivered; must never raise.
Notifier = Callable[[Notification], bool]
