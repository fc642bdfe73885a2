import typer
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from wavbatch.config.loader import load_config
from wavbatch.config.models import AppConfig
from wavbatch.domain.errors import DirectoryUnavailable
from wavbatch.domain.events import DiscoveryFinished
from wavbatch.domain.models import RunSummary
from wavbatch.infrastructure.logging import setup_logging
from wavbatch.infrastructure.event_bus import EventBus
from wavbatch.infrastructure.file_scanner import FileScanner
from wavbatch.infrastructure.encoder import Encoder, FFmpegMp3Encoder
from wavbatch.pipeline.transcoder import StreamingTranscoder
from wavbatch.pipeline.dispatcher import JobDispatcher
from wavbatch.ui.reporter import ConsoleReporter

app = typer.Typer(help="wavbatch - encode every WAV file in a directory to MP3, one thread per file")


def run_batch(directory: Path, config: AppConfig, bus: EventBus, encoder: Encoder) -> RunSummary:
    """Scans `directory` and transcodes every matching file.

    Raises DirectoryUnavailable before any job starts if the directory cannot
    be listed. Per-job failures only show up in the returned summary.
    """
    scanner = FileScanner(
        source_extension=config.general.source_extension,
        target_extension=config.general.target_extension,
    )
    jobs = list(scanner.scan(directory))
    bus.publish(DiscoveryFinished(directory=directory, jobs_found=len(jobs)))

    transcoder = StreamingTranscoder(config=config, encoder=encoder, event_bus=bus)
    dispatcher = JobDispatcher(
        worker=transcoder.run,
        event_bus=bus,
        max_workers=config.general.max_workers,
        poll_interval_s=config.general.poll_interval_s,
    )
    return dispatcher.run(jobs)


@app.command()
def encode(
    directory: Path = typer.Argument(..., help="Directory containing the WAV files to encode"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config (defaults are used when omitted)"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", help="Cap concurrent workers (default: one per file)"),
    source_ext: Optional[str] = typer.Option(None, "--source-ext", help="Extension of input files (case-sensitive)"),
    target_ext: Optional[str] = typer.Option(None, "--target-ext", help="Extension given to encoded files"),
    log_path: Optional[Path] = typer.Option(None, "--log-path", help="Path to log file (default: <directory>/wavbatch.log)"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Encode every WAV file in DIRECTORY to MP3."""
    try:
        config = load_config(config_path)
        # Apply CLI overrides
        if workers is not None: config.general.max_workers = workers
        if source_ext is not None: config.general.source_extension = source_ext
        if target_ext is not None: config.general.target_extension = target_ext
        if log_path is not None: config.general.log_path = str(log_path)
        if debug: config.general.debug = True
        # Re-validate so CLI overrides go through the same checks as the YAML file
        config = AppConfig.model_validate(config.model_dump())
    except (FileNotFoundError, ValidationError, ValueError) as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    if not directory.is_dir():
        typer.secho(f"ERROR opening directory: {directory}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    log_path_value = Path(config.general.log_path) if config.general.log_path else None
    logger = setup_logging(directory, debug=config.general.debug, log_path=log_path_value)
    logger.info(f"wavbatch started: directory={directory}")
    logger.info(
        f"Config: workers={config.general.max_workers or 'per-job'}, "
        f"{config.general.source_extension} -> {config.general.target_extension}, "
        f"encoder={config.encoder.model_dump()}"
    )

    bus = EventBus()
    ConsoleReporter(bus)
    encoder = FFmpegMp3Encoder(binary=config.general.ffmpeg_binary)

    try:
        summary = run_batch(directory, config, bus, encoder)
    except DirectoryUnavailable as exc:
        logger.error(str(exc))
        typer.secho(f"ERROR opening directory: {directory}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    logger.info(f"wavbatch finished: {summary.model_dump()}")


if __name__ == "__main__":
    app()
