from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from video_translation.jobs.models import AudioChunk, ChunkKind, TranslationResult
from video_translation.ops import metrics
from video_translation.services.base import SpeechRecognizer, StorageError
from video_translation.stages.audio_extractor import SourceInfo, extract_audio
from video_translation.stages.chunking import chunk_audio, make_silence
from video_translation.stages.reassembly import classify_sync, concat_audio, mux_video
from video_translation.stages.transcription import (
    RecognitionSettings,
    looks_like_placeholder,
    prepare_for_recognition,
    transcribe_chunk,
)
from video_translation.stages.translation import ChunkTranslator
from video_translation.stages.tts import ChunkSynthesizer
from video_translation.storage import StorageFacade, keys
from video_translation.text.languages import recognition_locale
from video_translation.utils.ffmpeg import MediaTools
from video_translation.utils.ffmpeg_safe import ToolError
from video_translation.utils.io import ensure_dir, remove_tree
from video_translation.utils.log import bind_job_context, logger

# Per-language progress checkpoints.
P_AUDIO = 40
P_CHUNKS = 50
P_SEGMENTS_DONE = 70
P_MERGED = 80
P_MUXED = 90
P_STORED = 95


class PipelineError(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class RunContext:
    job_id: str
    original_filename: str
    source_language: str
    language: str
    source: SourceInfo
    work_dir: Path


class LanguageRun:
    """
    The blocking pipeline for one target language of one job.

    Everything here runs on a worker thread; the result object is shared with
    the orchestrator, so mutations go through `lock`.
    """

    def __init__(
        self,
        ctx: RunContext,
        result: TranslationResult,
        *,
        tools: MediaTools,
        storage: StorageFacade,
        recognizer: SpeechRecognizer,
        translator: ChunkTranslator,
        synthesizer: ChunkSynthesizer,
        chunk_duration_s: float,
        recognition: RecognitionSettings,
        substitute_silence: bool,
        lock: threading.Lock,
        report: Callable[[float], None],
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.ctx = ctx
        self.result = result
        self.tools = tools
        self.storage = storage
        self.recognizer = recognizer
        self.translator = translator
        self.synthesizer = synthesizer
        self.chunk_duration_s = float(chunk_duration_s)
        self.recognition = recognition
        self.substitute_silence = bool(substitute_silence)
        self._lock = lock
        self._report = report
        self._sleep = sleep

    def _degrade(self, reason: str) -> None:
        with self._lock:
            self.result.mark_degraded(reason)

    def execute(self) -> TranslationResult:
        ctx = self.ctx
        t0 = time.perf_counter()
        with bind_job_context(ctx.job_id, ctx.language):
            try:
                self._run()
            except Exception as ex:
                logger.error("language_failed", error=str(ex), exc_type=type(ex).__name__)
                with self._lock:
                    self.result.mark_failed(str(ex), processing_seconds=time.perf_counter() - t0)
            else:
                logger.info(
                    "language_completed",
                    output_key=self.result.output_key,
                    degraded=self.result.degraded,
                    failed_chunks=len(self.result.failed_chunks),
                )
            finally:
                remove_tree(ctx.work_dir)
                metrics.language_seconds.observe(time.perf_counter() - t0)
        return self.result

    def _run(self) -> None:
        ctx = self.ctx
        t0 = time.perf_counter()
        work = ensure_dir(ctx.work_dir)

        audio = extract_audio(self.tools, ctx.source.path, work / "extract")
        self._report(P_AUDIO)

        chunking = chunk_audio(
            self.tools, audio, work / "chunks", chunk_duration_s=self.chunk_duration_s
        )
        chunks = chunking.chunks
        with self._lock:
            self.result.chunk_count = len(chunks)
        for c in chunks:
            if c.kind is ChunkKind.WHOLE_FILE:
                self._degrade("whole_file_chunk")
            elif c.kind is ChunkKind.SILENT:
                self._degrade("silent_placeholder_chunk")
        self._report(P_CHUNKS)

        parts: list[Path] = []
        for i, chunk in enumerate(chunks):
            parts.append(self._process_chunk(chunk, work / "segments"))
            self._report(P_CHUNKS + (i + 1) * (P_SEGMENTS_DONE - P_CHUNKS) / len(chunks))
        if self.result.failed_chunks and len(self.result.failed_chunks) == len(chunks):
            raise PipelineError(f"all {len(chunks)} chunks failed")

        merged = concat_audio(self.tools, parts, work / f"translated_{ctx.language}.mp3")
        audio_key = keys.audio_key(ctx.job_id, ctx.original_filename, ctx.language)
        self.storage.put(audio_key, merged)
        self._report(P_MERGED)

        out = work / f"output_{ctx.language}{keys.output_suffix(ctx.original_filename)}"
        with metrics.time_hist(metrics.mux_seconds):
            mux = mux_video(
                self.tools,
                ctx.source.path,
                merged,
                out,
                source_duration_s=ctx.source.duration_s,
                width=ctx.source.width,
                height=ctx.source.height,
            )
        with self._lock:
            self.result.mux_strategy = mux.strategy
        if mux.passthrough:
            raise PipelineError(
                "could not attach the translated audio; only the untranslated original was produced"
            )
        if mux.degraded:
            self._degrade("silent_canvas")

        try:
            actual = self.tools.probe_duration(out)
        except ToolError:
            actual = 0.0
        sync = classify_sync(ctx.source.duration_s, actual)
        with self._lock:
            self.result.sync_quality = sync
        logger.info("sync_check", expected_s=ctx.source.duration_s, actual_s=actual, quality=sync)
        self._report(P_MUXED)

        output_key = keys.output_key(ctx.job_id, ctx.original_filename, ctx.language)
        stored = self.storage.put(output_key, out)
        self._report(P_STORED)

        with self._lock:
            self.result.mark_completed(
                output_key=output_key,
                audio_key=audio_key,
                output_size_bytes=stored.size_bytes,
                processing_seconds=time.perf_counter() - t0,
            )

    def _silence_for(self, chunk: AudioChunk, out_dir: Path) -> Path:
        return make_silence(self.tools, out_dir / f"silence_{chunk.index:03d}", chunk.duration_s)

    def _transcribe(self, chunk: AudioChunk, out_dir: Path) -> str:
        ctx = self.ctx
        rec_audio = prepare_for_recognition(self.tools, chunk.path, out_dir)
        uri = None
        if self.storage.primary is not None:
            key = keys.transcription_key(ctx.job_id, ctx.language, chunk.index, rec_audio.suffix)
            try:
                self.storage.put(key, rec_audio)
                uri = self.storage.remote_uri(key)
            except StorageError as ex:
                logger.warning("recognition_upload_failed", chunk=chunk.index, error=str(ex))
        selection = transcribe_chunk(
            self.recognizer,
            rec_audio,
            recognition_locale(ctx.source_language),
            audio_uri=uri,
            settings=self.recognition,
            sleep=self._sleep,
        )
        return selection.text

    def _process_chunk(self, chunk: AudioChunk, out_dir: Path) -> Path:
        """
        Recognize, translate and synthesize one chunk.

        Returns the chunk's translated audio, or silence of the same length
        when the chunk carries no speech or (with substitution on) failed.
        """
        ensure_dir(out_dir)
        if chunk.kind is ChunkKind.SILENT:
            return self._silence_for(chunk, out_dir)
        ctx = self.ctx
        try:
            with metrics.time_hist(metrics.chunk_seconds):
                text = self._transcribe(chunk, out_dir)
                if not text:
                    logger.info("chunk_no_speech", chunk=chunk.index)
                    return self._silence_for(chunk, out_dir)
                if looks_like_placeholder(text):
                    logger.warning("chunk_transcript_suspicious", chunk=chunk.index)
                    self._degrade("suspicious_transcript")
                translated = self.translator.translate(text, ctx.source_language, ctx.language)
                out = out_dir / f"tts_{chunk.index:03d}.mp3"
                return self.synthesizer.synthesize(translated, ctx.language, out, source_chunk=chunk)
        except Exception as ex:
            if not self.substitute_silence:
                raise
            logger.warning(
                "chunk_failed_substituting_silence",
                chunk=chunk.index,
                error=str(ex),
                exc_type=type(ex).__name__,
            )
            with self._lock:
                self.result.failed_chunks.append(chunk.index)
                self.result.mark_degraded("chunk_failures")
            metrics.chunk_failures.inc()
            return self._silence_for(chunk, out_dir)
