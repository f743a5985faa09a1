from __future__ import annotations

import threading
from pathlib import Path
from typing import Any

from sqlitedict import SqliteDict  # type: ignore

from video_translation.jobs.models import JobStatus, TranslationJob, now_utc


class JobStore:
    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _jobs(self) -> SqliteDict:
        # Open/close per operation (avoids cross-thread SQLite handle issues)
        return SqliteDict(str(self.db_path), tablename="jobs", autocommit=True)

    def put(self, job: TranslationJob) -> None:
        with self._lock, self._jobs() as db:
            db[job.id] = job.to_dict()

    def get(self, id: str) -> TranslationJob | None:
        with self._lock, self._jobs() as db:
            raw = db.get(id)
        return TranslationJob.from_dict(raw) if raw else None

    def update(self, id: str, **fields: Any) -> TranslationJob | None:
        with self._lock, self._jobs() as db:
            raw = db.get(id)
            if raw is None:
                return None
            job = TranslationJob.from_dict(raw)
            for k, v in fields.items():
                setattr(job, k, v)
            job.updated_at = now_utc()
            db[id] = job.to_dict()
        return job

    def list(self, *, status: JobStatus | None = None, limit: int = 100) -> list[TranslationJob]:
        with self._lock, self._jobs() as db:
            rows = list(db.values())
        jobs = [TranslationJob.from_dict(r) for r in rows]
        if status is not None:
            jobs = [j for j in jobs if j.status is status]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs[: max(0, int(limit))]

    def delete(self, id: str) -> None:
        with self._lock, self._jobs() as db:
            if id in db:
                del db[id]
