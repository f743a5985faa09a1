from __future__ import annotations

import json
from pathlib import Path

import click

from video_translation.config import ConfigError, get_safe_config_report, get_settings
from video_translation.jobs.models import JobStatus
from video_translation.services.base import ServiceError
from video_translation.utils.log import logger, set_log_level


def _print_job(job) -> None:
    click.echo(f"job {job.id}: {job.status.value} ({job.progress}%)")
    if job.error_message:
        click.echo(f"  error: {job.error_message}")
    for r in job.results:
        line = f"  [{r.language}] {r.status.value}"
        if r.output_key:
            line += f" -> {r.output_key}"
        if r.degraded:
            line += f" (degraded: {', '.join(r.degraded_reasons)})"
        if r.error_message:
            line += f" error={r.error_message}"
        click.echo(line)


@click.group()
@click.option("--log-level", default=None, help="Override LOG_LEVEL for this run")
def cli(log_level: str | None) -> None:
    """Translate the narration of videos into other languages."""
    if log_level:
        set_log_level(log_level)


@cli.command()
@click.argument("video", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--src-lang", required=True, help="Source language name or code (e.g. english, hi)")
@click.option(
    "--tgt-lang",
    "tgt_langs",
    multiple=True,
    required=True,
    help="Target language; repeat for several",
)
@click.option("--local-only", is_flag=True, default=False, help="Store outputs on local disk only")
def run(video: Path, src_lang: str, tgt_langs: tuple[str, ...], local_only: bool) -> None:
    """
    Translate VIDEO end to end.

    Example:
      video-translate run talk.mp4 --src-lang english --tgt-lang hindi --tgt-lang tamil
    """
    if not video.exists():
        raise click.ClickException(f"Video not found: {video}")
    try:
        from video_translation.jobs.orchestrator import build_orchestrator

        orch = build_orchestrator(get_settings(), local_only=local_only)
        job = orch.submit_video(video, source_language=src_lang, target_languages=list(tgt_langs))
    except (ConfigError, ValueError, ServiceError) as ex:
        raise click.ClickException(str(ex)) from ex

    logger.info("cli_job_submitted", job_id=job.id)
    job = orch.process(job.id)
    _print_job(job)
    if job.status is not JobStatus.COMPLETED:
        raise SystemExit(1)


@cli.command()
@click.argument("job_id")
def status(job_id: str) -> None:
    """Show the stored state of JOB_ID."""
    from video_translation.jobs.store import JobStore

    s = get_settings()
    store = JobStore(s.public.resolved_state_dir() / str(s.jobs_db_name))
    job = store.get(job_id)
    if job is None:
        raise click.ClickException(f"Unknown job: {job_id}")
    _print_job(job)


@cli.command()
@click.argument("language")
def voices(language: str) -> None:
    """List the Text-to-Speech voices available for LANGUAGE."""
    from video_translation.services.factory import build_services
    from video_translation.text.languages import normalize_language, recognition_locale

    try:
        locale = recognition_locale(normalize_language(language))
        names = build_services(get_settings()).synthesizer.list_voices(locale)
    except (ConfigError, ValueError, ServiceError) as ex:
        raise click.ClickException(str(ex)) from ex
    for name in names:
        click.echo(name)


@cli.command("config")
def show_config() -> None:
    """Print the effective configuration (secrets masked)."""
    click.echo(json.dumps(get_safe_config_report(), indent=2, sort_keys=True, default=str))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
