from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from video_translation.jobs.language_run import P_STORED, LanguageRun, RunContext
from video_translation.jobs.models import (
    JobStatus,
    ResultStatus,
    TranslationJob,
    TranslationResult,
    new_id,
)
from video_translation.jobs.store import JobStore
from video_translation.notify.base import Notification, Notifier
from video_translation.ops import metrics
from video_translation.services.base import SpeechRecognizer
from video_translation.stages.audio_extractor import SourceInfo, validate_video
from video_translation.stages.transcription import RecognitionSettings
from video_translation.stages.translation import ChunkTranslator
from video_translation.stages.tts import ChunkSynthesizer
from video_translation.storage import StorageFacade, keys
from video_translation.text.languages import normalize_language
from video_translation.utils.ffmpeg import MediaTools
from video_translation.utils.io import ensure_dir, remove_tree
from video_translation.utils.log import bind_job_context, logger

# Job-level progress floor once processing starts.
P_STARTED = 10


@dataclass(frozen=True, slots=True)
class PipelineOptions:
    chunk_duration_s: int = 60
    max_concurrent_jobs: int = 5
    supported_formats: tuple[str, ...] = ("mp4", "avi", "mov", "mkv", "wmv")
    max_duration_s: float = 3600.0
    substitute_silence_on_chunk_failure: bool = True
    require_successful_language: bool = True
    recognition: RecognitionSettings = field(default_factory=RecognitionSettings)

    @classmethod
    def from_settings(cls, s: Any) -> PipelineOptions:
        return cls(
            chunk_duration_s=int(s.chunk_duration_s),
            max_concurrent_jobs=int(s.max_concurrent_jobs),
            supported_formats=tuple(s.public.video_format_list()),
            max_duration_s=float(s.max_duration_s),
            substitute_silence_on_chunk_failure=bool(s.substitute_silence_on_chunk_failure),
            require_successful_language=bool(s.require_successful_language),
            recognition=RecognitionSettings(
                poll_interval_s=float(s.recognition_poll_interval_s),
                poll_attempts=int(s.recognition_poll_attempts),
                max_alternatives=int(s.recognition_max_alternatives),
            ),
        )


class _Progress:
    """
    Job progress as the mean of per-language progress.

    Each language only moves forward, so the mean does too.
    """

    def __init__(self, languages: Sequence[str], floor: int) -> None:
        self._by_lang = {lang: float(floor) for lang in languages}

    def advance(self, language: str, pct: float) -> int:
        cur = self._by_lang.get(language, 0.0)
        self._by_lang[language] = max(cur, min(100.0, float(pct)))
        return int(sum(self._by_lang.values()) / max(1, len(self._by_lang)))


class JobOrchestrator:
    def __init__(
        self,
        *,
        store: JobStore,
        storage: StorageFacade,
        tools: MediaTools,
        recognizer: SpeechRecognizer,
        translator: ChunkTranslator,
        synthesizer: ChunkSynthesizer,
        work_root: Path,
        options: PipelineOptions | None = None,
        notifier: Notifier | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.store = store
        self.storage = storage
        self.tools = tools
        self.recognizer = recognizer
        self.translator = translator
        self.synthesizer = synthesizer
        self.work_root = Path(work_root)
        self.options = options or PipelineOptions()
        self.notifier = notifier
        self._sleep = sleep

    # --- job lifecycle ---

    def create_job(
        self,
        *,
        original_filename: str,
        source_language: str,
        target_languages: Sequence[str],
        source_key: str,
    ) -> TranslationJob:
        src = normalize_language(source_language)
        targets: list[str] = []
        for t in target_languages:
            code = normalize_language(t)
            if code not in targets:
                targets.append(code)
        if not targets:
            raise ValueError("at least one target language is required")
        if not str(source_key or "").strip():
            raise ValueError("source_key is required")

        job = TranslationJob(
            id=new_id(),
            original_filename=str(original_filename),
            source_language=src,
            target_languages=targets,
            source_key=str(source_key),
        )
        self.store.put(job)
        metrics.jobs_created.inc()
        logger.info("job_created", job_id=job.id, source_language=src, targets=targets)
        return job

    def submit_video(
        self, video: Path, *, source_language: str, target_languages: Sequence[str]
    ) -> TranslationJob:
        """Upload a local video through the storage facade and create its job."""
        video = Path(video)
        key = keys.upload_key(video.name)
        self.storage.put(key, video)
        return self.create_job(
            original_filename=video.name,
            source_language=source_language,
            target_languages=target_languages,
            source_key=key,
        )

    def get_job(self, job_id: str) -> TranslationJob | None:
        return self.store.get(job_id)

    def get_progress(self, job_id: str) -> int:
        job = self.store.get(job_id)
        if job is None:
            raise KeyError(job_id)
        return job.progress

    def cleanup_job_files(self, job_id: str) -> None:
        remove_tree(self.work_root / job_id)

    def retry_job(self, job_id: str) -> TranslationJob:
        """
        Re-queue a FAILED job; earlier results stay on the record as history.
        """
        job = self.store.get(job_id)
        if job is None:
            raise KeyError(job_id)
        if job.status is not JobStatus.FAILED:
            raise ValueError(f"only FAILED jobs can be retried (job is {job.status.value})")
        job.status = JobStatus.QUEUED
        job.progress = 0
        job.attempt += 1
        job.error_message = None
        job.completed_at = None
        job.touch()
        self.store.put(job)
        logger.info("job_requeued", job_id=job.id, attempt=job.attempt)
        return job

    def cancel_job(self, job_id: str) -> TranslationJob:
        """
        Fail a QUEUED or PROCESSING job as "cancelled" and drop its work files.

        A cancelled job can be re-queued with retry_job.
        """
        job = self.store.get(job_id)
        if job is None:
            raise KeyError(job_id)
        if job.status not in (JobStatus.QUEUED, JobStatus.PROCESSING):
            raise ValueError(f"only QUEUED or PROCESSING jobs can be cancelled (job is {job.status.value})")
        job.mark_failed("cancelled")
        self.store.put(job)
        self.cleanup_job_files(job.id)
        logger.info("job_cancelled", job_id=job.id)
        return job

    def recover_interrupted(self) -> list[str]:
        """
        Jobs left PROCESSING by a crashed process stall at their last
        persisted progress; put them back in the queue.
        """
        ids: list[str] = []
        for job in self.store.list(status=JobStatus.PROCESSING, limit=10_000):
            job.status = JobStatus.QUEUED
            job.progress = 0
            job.touch()
            self.store.put(job)
            self.cleanup_job_files(job.id)
            ids.append(job.id)
        if ids:
            logger.warning("jobs_recovered", count=len(ids))
        return ids

    def process(self, job_id: str) -> TranslationJob:
        return asyncio.run(self.run_job(job_id))

    # --- execution ---

    def _fetch_source(self, job: TranslationJob, job_dir: Path) -> Path:
        local = Path(job.source_key)
        if local.is_absolute() and local.is_file():
            return local
        dest = ensure_dir(job_dir) / f"source{Path(job.original_filename).suffix.lower()}"
        return self.storage.get(job.source_key, dest)

    async def run_job(self, job_id: str) -> TranslationJob:
        job = self.store.get(job_id)
        if job is None:
            raise KeyError(job_id)
        if job.status is not JobStatus.QUEUED:
            raise ValueError(f"job {job_id} is {job.status.value}, not QUEUED")

        lock = threading.Lock()
        progress = _Progress(job.target_languages, P_STARTED)
        job_dir = self.work_root / job.id

        def persist() -> None:
            self.store.put(job)

        with bind_job_context(job.id):
            job.mark_processing()
            job.advance_progress(P_STARTED)
            persist()
            logger.info("job_started", targets=job.target_languages, attempt=job.attempt)
            try:
                source_path = await asyncio.to_thread(self._fetch_source, job, job_dir)
                source = await asyncio.to_thread(
                    validate_video,
                    self.tools,
                    source_path,
                    supported_formats=self.options.supported_formats,
                    max_duration_s=self.options.max_duration_s,
                )
                with lock:
                    job.duration_s = source.duration_s
                    job.file_size_bytes = source.size_bytes
                    persist()

                sem = asyncio.Semaphore(max(1, int(self.options.max_concurrent_jobs)))

                async def _bounded(language: str) -> TranslationResult:
                    async with sem:
                        return await self._run_language(job, language, source, job_dir, lock, progress)

                results = await asyncio.gather(*(_bounded(lang) for lang in job.target_languages))
                self._finish(job, list(results), lock)
            except Exception as ex:
                logger.exception("job_failed", error=str(ex))
                with lock:
                    job.mark_failed(str(ex))
                    persist()
                metrics.jobs_finished.labels(state=JobStatus.FAILED.value).inc()
                self._notify_failure(job)
            finally:
                self.cleanup_job_files(job.id)
        return job

    async def _run_language(
        self,
        job: TranslationJob,
        language: str,
        source: SourceInfo,
        job_dir: Path,
        lock: threading.Lock,
        progress: _Progress,
    ) -> TranslationResult:
        result = TranslationResult(language=language)
        with lock:
            job.results.append(result)
            self.store.put(job)

        def report(pct: float) -> None:
            with lock:
                job.advance_progress(progress.advance(language, pct))
                self.store.put(job)

        run = LanguageRun(
            RunContext(
                job_id=job.id,
                original_filename=job.original_filename,
                source_language=job.source_language,
                language=language,
                source=source,
                work_dir=job_dir / language,
            ),
            result,
            tools=self.tools,
            storage=self.storage,
            recognizer=self.recognizer,
            translator=self.translator,
            synthesizer=self.synthesizer,
            chunk_duration_s=self.options.chunk_duration_s,
            recognition=self.options.recognition,
            substitute_silence=self.options.substitute_silence_on_chunk_failure,
            lock=lock,
            report=report,
            sleep=self._sleep,
        )
        await asyncio.to_thread(run.execute)

        # a failed language still counts as finished for job progress
        report(P_STORED)
        metrics.language_results.labels(status=result.status.value).inc()
        if result.degraded:
            metrics.degraded_results.inc()
        return result

    def _finish(self, job: TranslationJob, results: list[TranslationResult], lock: threading.Lock) -> None:
        completed = [r for r in results if r.status is ResultStatus.COMPLETED]
        failed = [r for r in results if r.status is ResultStatus.FAILED]
        with lock:
            if completed or not self.options.require_successful_language:
                job.mark_completed()
            else:
                detail = "; ".join(f"{r.language}: {r.error_message}" for r in failed)
                job.mark_failed(f"no target language completed ({detail or 'no results'})")
            self.store.put(job)
        metrics.jobs_finished.labels(state=job.status.value).inc()
        logger.info(
            "job_finished",
            status=job.status.value,
            completed=[r.language for r in completed],
            failed=[r.language for r in failed],
        )
        if job.status is JobStatus.FAILED:
            self._notify_failure(job)

    def _notify_failure(self, job: TranslationJob) -> None:
        if self.notifier is None:
            return
        payload = Notification(
            event="job.failed",
            title=f"Translation failed: {job.original_filename}",
            message=f"Job {job.id} failed: {job.error_message}",
            tags=["warning"],
            priority=4,
            job_id=job.id,
        )
        try:
            self.notifier(payload)
        except Exception as ex:
            logger.warning("job_failure_notify_failed", error=str(ex))


def build_orchestrator(settings: Any = None, *, local_only: bool = False) -> JobOrchestrator:
    """Wire the orchestrator from settings with the Google Cloud collaborators."""
    if settings is None:
        from video_translation.config import get_settings

        settings = get_settings()

    from video_translation.notify.ntfy import notify
    from video_translation.services.factory import build_services
    from video_translation.stages.tts import VoiceTable
    from video_translation.storage import build_storage
    from video_translation.utils.ffmpeg import build_tool_config

    services = build_services(settings)
    tools = MediaTools(build_tool_config(settings))
    pub = settings.public
    return JobOrchestrator(
        store=JobStore(pub.resolved_state_dir() / str(settings.jobs_db_name)),
        storage=build_storage(settings, local_only=local_only),
        tools=tools,
        recognizer=services.recognizer,
        translator=ChunkTranslator(
            services.translator,
            direct_pairs=pub.direct_pair_set(),
            pivot=str(settings.translation_pivot_language),
            max_chars=int(settings.translation_max_chars),
            retries=int(settings.retry_attempts),
            retry_delay_s=float(settings.retry_delay_s),
        ),
        synthesizer=ChunkSynthesizer(
            services.synthesizer,
            tools,
            voices=VoiceTable(pub.voice_map(), str(settings.default_voice)),
            max_chars=int(settings.synthesis_max_chars),
            audio_format=str(settings.synthesis_audio_format),
            gender_selection=bool(settings.gender_voice_selection),
            retries=int(settings.retry_attempts),
            retry_delay_s=float(settings.retry_delay_s),
        ),
        work_root=Path(settings.work_dir),
        options=PipelineOptions.from_settings(settings),
        notifier=lambda n: notify(n, settings=settings),
    )
