import signal
import time
import typer
import yaml
from pathlib import Path
from typing import Optional, Tuple
from pydantic import ValidationError

from mbc.config.loader import load_config
from mbc.config.models import AppConfig, QuarantineConfig
from mbc.infrastructure.logging import log_run_config, setup_logging
from mbc.infrastructure.event_bus import EventBus
from mbc.infrastructure.file_scanner import FileScanner
from mbc.infrastructure.housekeeping import HousekeepingService
from mbc.infrastructure.imagemagick import ImageMagickAdapter
from mbc.infrastructure.ffmpeg import FFmpegAdapter
from mbc.infrastructure.probe import MediaProbe
from mbc.infrastructure.dependencies import (
    INSTALL_HINTS, MissingDependencyError, check_dependencies
)
from mbc.domain.models import CandidateSet
from mbc.domain.events import CandidateUnreadable, DiscoveryFinished
from mbc.pipeline.job import TranscodeJobRunner
from mbc.pipeline.orchestrator import Orchestrator
from mbc.pipeline.progress import ProgressEstimator
from mbc.pipeline.quarantine import (
    QuarantineError, QuarantineManager, finalize_quarantine, resolve_finalize_target
)
from mbc.pipeline.stats import StatisticsAggregator
from mbc.ui.reporter import ConsoleReporter

app = typer.Typer(help="MBC (Media Batch Compression) - recompress images and videos in a directory")


def probe_candidates(candidates: CandidateSet, probe: MediaProbe, bus: EventBus) -> Tuple[CandidateSet, int]:
    """Drops candidates the external tools cannot read."""
    readable = CandidateSet()
    unreadable = 0
    for candidate in candidates.all():
        if probe.is_readable(candidate):
            readable.add(candidate)
        else:
            unreadable += 1
            bus.publish(CandidateUnreadable(path=candidate.path, kind=candidate.kind))
    return readable, unreadable


def _finalize(directory: Path, name: str, prefix: str, yes: bool):
    try:
        target = resolve_finalize_target(name, directory, prefix)
    except QuarantineError as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    if not yes and not typer.confirm(f"Permanently delete {target} and everything in it?"):
        typer.secho("Aborted, nothing deleted.", fg=typer.colors.YELLOW)
        raise typer.Exit(code=1)

    try:
        removed = finalize_quarantine(name, directory, prefix)
    except QuarantineError as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    typer.secho(f"Deleted {removed}", fg=typer.colors.GREEN)


@app.command()
def compress(
    directory: Path = typer.Argument(Path("."), help="Directory with images and videos to compress"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    jobs: Optional[int] = typer.Option(None, "--jobs", "-j", help="Number of parallel jobs (default: CPU count)"),
    dry_run: bool = typer.Option(False, "--dry-run", "-d", help="Show what would be processed without modifying files"),
    recursive: bool = typer.Option(False, "--recursive", "-r", help="Recurse into subdirectories"),
    force: bool = typer.Option(False, "--force", "-f", help="Recompress even if *_compressed output already exists"),
    interleaved: bool = typer.Option(False, "--interleaved", help="Process images and videos in one queue"),
    delete_originals: bool = typer.Option(
        False, "--delete-originals", help="Delete originals instead of moving them to a quarantine directory"
    ),
    quarantine_prefix: Optional[str] = typer.Option(
        None, "--quarantine-prefix", help="Prefix of the quarantine directory (default: to-be-deleted)"
    ),
    no_skip_messages: bool = typer.Option(False, "--no-skip-messages", help="Hide SKIP lines"),
    terse: bool = typer.Option(False, "--terse", help="Hide START lines and the processed file list"),
    no_quiet_ffmpeg: bool = typer.Option(False, "--no-quiet-ffmpeg", help="Show ffmpeg output"),
    eta_always: bool = typer.Option(
        False, "--eta-always", help="Show ETA immediately and on every DONE line"
    ),
    color: Optional[bool] = typer.Option(None, "--color/--no-color", help="Force colored output on or off"),
    no_probe: bool = typer.Option(False, "--no-probe", help="Do not check that files are readable before scheduling"),
    finalize: Optional[str] = typer.Option(
        None, "--finalize", metavar="NAME", help="Permanently delete quarantine directory NAME and exit"
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation with --finalize"),
    log_path: Optional[Path] = typer.Option(None, "--log-path", help="Path to log file (overrides config)"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Compress images (ImageMagick) and videos (ffmpeg) in DIRECTORY."""
    try:
        try:
            config = load_config(config_path)
            # Apply CLI overrides
            if jobs is not None:
                if jobs < 1:
                    raise ValueError("--jobs must be at least 1")
                config.general.jobs = jobs
            if dry_run: config.general.dry_run = True
            if recursive: config.general.recursive = True
            if force: config.general.force = True
            if interleaved: config.general.interleaved = True
            if delete_originals: config.general.delete_originals = True
            if quarantine_prefix is not None:
                config.quarantine = QuarantineConfig(prefix=quarantine_prefix)
            if no_skip_messages: config.ui.show_skip_messages = False
            if terse: config.ui.terse = True
            if no_quiet_ffmpeg: config.general.quiet_ffmpeg = False
            if eta_always:
                config.eta.always = True
                config.eta.suppress_seconds = 0.0
                config.eta.job_threshold_seconds = 0.0
            if color is not None: config.ui.color = color
            if no_probe: config.general.probe = False
            if log_path is not None: config.general.log_path = str(log_path)
            if debug: config.general.debug = True
        except (FileNotFoundError, ValidationError, ValueError, yaml.YAMLError) as exc:
            typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)

        if not directory.is_dir():
            typer.secho(f"Error: {directory} is not a directory", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)

        if finalize is not None:
            _finalize(directory, finalize, config.quarantine.prefix, yes)
            return

        run(config, directory)

    except KeyboardInterrupt:
        typer.secho("\nCompression stopped by user (Ctrl+C)", fg=typer.colors.YELLOW)
        raise typer.Exit(code=130)

    except typer.Exit:
        raise

    except Exception as e:
        with open("error.log", "a") as f:
            import traceback
            traceback.print_exc(file=f)
        typer.secho(f"Fatal Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


def run(config: AppConfig, directory: Path):
    run_start = time.monotonic()
    general = config.general
    logger = setup_logging(Path(general.log_path) if general.log_path else None, debug=general.debug)
    log_run_config(logger, config, directory)

    try:
        image_tool = check_dependencies(need_probe=general.probe)
    except MissingDependencyError as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
        for tool in exc.missing:
            hint = INSTALL_HINTS.get(tool)
            if hint:
                typer.secho(f"  {tool}: {hint}", err=True)
        logger.error(str(exc))
        raise typer.Exit(code=2)

    bus = EventBus()
    reporter = ConsoleReporter(bus, config.ui)
    stats = StatisticsAggregator(bus)

    if not general.dry_run:
        HousekeepingService().cleanup_partial_outputs(directory, recursive=general.recursive)

    scanner = FileScanner(
        config.image.extensions,
        config.video.extensions,
        quarantine_prefixes=[config.quarantine.prefix],
    )
    candidates = scanner.scan(directory, recursive=general.recursive)
    unreadable = 0
    if general.probe:
        candidates, unreadable = probe_candidates(candidates, MediaProbe(image_tool), bus)
    logger.info(
        f"Discovery finished: images={len(candidates.images)}, videos={len(candidates.videos)}, "
        f"unreadable={unreadable}"
    )
    bus.publish(DiscoveryFinished(
        images=len(candidates.images),
        videos=len(candidates.videos),
        unreadable=unreadable,
    ))

    progress = ProgressEstimator(
        alpha=config.eta.alpha,
        suppress_seconds=config.eta.suppress_seconds,
        job_threshold_seconds=config.eta.job_threshold_seconds,
        always=config.eta.always,
    )
    quarantine = QuarantineManager(config, directory)
    runner = TranscodeJobRunner(
        config=config,
        event_bus=bus,
        image_encoder=ImageMagickAdapter(binary=image_tool, debug=general.debug),
        video_encoder=FFmpegAdapter(quiet=general.quiet_ffmpeg, debug=general.debug),
        quarantine=quarantine,
        progress=progress,
    )
    orchestrator = Orchestrator(
        config=config,
        event_bus=bus,
        job_runner=runner,
        quarantine=quarantine,
        progress=progress,
    )

    def _on_signal(signum, frame):
        orchestrator.request_interrupt()

    previous_handlers = {
        sig: signal.signal(sig, _on_signal) for sig in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        result = orchestrator.run(candidates)
    finally:
        for sig, handler in previous_handlers.items():
            signal.signal(sig, handler)

    summary = stats.summary(
        elapsed_seconds=time.monotonic() - run_start,
        quarantine_dir=result.quarantine_dir,
        delete_originals=general.delete_originals,
        occupancy=quarantine.occupancy(),
        interrupted=result.interrupted,
    )
    reporter.render_summary(summary)
    logger.info(
        f"Summary: images={summary.images.processed}, videos={summary.videos.processed}, "
        f"original={summary.original_bytes}, compressed={summary.compressed_bytes}, "
        f"elapsed={summary.elapsed_seconds:.1f}s, interrupted={summary.interrupted}"
    )

    if result.interrupted:
        typer.secho("Compression stopped by user (Ctrl+C)", fg=typer.colors.YELLOW)
        raise typer.Exit(code=130)


if __name__ == "__main__":
    app()
