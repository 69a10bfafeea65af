import threading
from typing import Optional
from rich.console import Console
from rich.text import Text
from mbc.config.models import UiConfig
from mbc.infrastructure.event_bus import EventBus
from mbc.domain.models import CompressionJob, JobStatus
from mbc.domain.events import (
    DiscoveryFinished, CandidateUnreadable, QuarantinePrepared, PhaseStarted,
    JobStarted, JobSkipped, JobDryRun, JobForcedRemoval, JobCompleted, JobFailed,
    InterruptRequested,
)
from mbc.pipeline.stats import RunSummary
from mbc.ui.formatting import format_duration, format_eta, format_percent, human_size, printable

SKIP_REASONS = {
    JobStatus.SKIPPED_NOT_FOUND: "file not found",
    JobStatus.SKIPPED_ALREADY_COMPRESSED: "already compressed",
    JobStatus.SKIPPED_EXISTS: "output exists, use -f to force",
}


def build_console(config: UiConfig) -> Console:
    """Console honouring the color setting (None = auto-detect TTY)."""
    if config.color is None:
        return Console(highlight=False, soft_wrap=True)
    if config.color:
        return Console(highlight=False, soft_wrap=True, force_terminal=True)
    return Console(highlight=False, soft_wrap=True, no_color=True)


class ConsoleReporter:
    """Subscribes to EventBus and prints one colored line per job event.

    Lines are plain `Text` (never markup) so paths with brackets print as-is.
    """

    def __init__(self, bus: EventBus, config: UiConfig, console: Optional[Console] = None):
        self.bus = bus
        self.config = config
        self.console = console or build_console(config)
        self._ui_lock = threading.RLock()
        self._setup_subscriptions()

    def _setup_subscriptions(self):
        self.bus.subscribe(DiscoveryFinished, self.on_discovery_finished)
        self.bus.subscribe(CandidateUnreadable, self.on_candidate_unreadable)
        self.bus.subscribe(QuarantinePrepared, self.on_quarantine_prepared)
        self.bus.subscribe(PhaseStarted, self.on_phase_started)
        self.bus.subscribe(JobStarted, self.on_job_started)
        self.bus.subscribe(JobSkipped, self.on_job_skipped)
        self.bus.subscribe(JobDryRun, self.on_job_dry_run)
        self.bus.subscribe(JobForcedRemoval, self.on_job_forced)
        self.bus.subscribe(JobCompleted, self.on_job_completed)
        self.bus.subscribe(JobFailed, self.on_job_failed)
        self.bus.subscribe(InterruptRequested, self.on_interrupt_request)

    def _emit(self, line: str, style: str = ""):
        with self._ui_lock:
            self.console.print(Text(printable(line), style=style))

    def _prefix(self, job: CompressionJob) -> str:
        pct = format_percent(job.sequence_index, job.total_in_kind)
        return f"{job.kind.label} {job.sequence_index}/{job.total_in_kind} ({pct}%):"

    def on_discovery_finished(self, event: DiscoveryFinished):
        line = f"Found {event.images} image(s) and {event.videos} video(s)"
        if event.unreadable:
            line += f"; {event.unreadable} unreadable file(s) ignored"
        self._emit(line, "bold")

    def on_candidate_unreadable(self, event: CandidateUnreadable):
        self._emit(f"WARN  {event.kind.label} {event.path} is not readable, skipping", "yellow")

    def on_quarantine_prepared(self, event: QuarantinePrepared):
        self._emit(
            f"Originals will be moved to {event.path} (planned {human_size(event.planned_bytes)})",
            "bold",
        )

    def on_phase_started(self, event: PhaseStarted):
        if self.config.terse:
            return
        self._emit(f"--- Phase {event.index}/{event.count}: {event.name} ---", "bold")

    def on_job_started(self, event: JobStarted):
        if self.config.terse:
            return
        job = event.job
        self._emit(f"{self._prefix(job)} START {job.candidate.path} -> {job.output_path}", "yellow")

    def on_job_skipped(self, event: JobSkipped):
        if not self.config.show_skip_messages:
            return
        job = event.job
        reason = SKIP_REASONS.get(job.status, event.reason)
        self._emit(f"{self._prefix(job)} SKIP  {job.candidate.path} ({reason})", "dim")

    def on_job_dry_run(self, event: JobDryRun):
        job = event.job
        tag = "DRY-RUN FORCE" if job.forced else "DRY-RUN"
        self._emit(f"{self._prefix(job)} {tag} {job.candidate.path} -> {job.output_path}", "cyan")

    def on_job_forced(self, event: JobForcedRemoval):
        job = event.job
        self._emit(f"{self._prefix(job)} FORCE removing existing output: {job.output_path}", "magenta")

    def on_job_completed(self, event: JobCompleted):
        job = event.job
        line = f"{self._prefix(job)} DONE  {job.output_path} ({job.disposal_note})"
        if job.show_eta:
            line += f" {format_eta(job.eta_kind_seconds)} | Overall {format_eta(job.eta_overall_seconds)}"
        self._emit(line, "green")

    def on_job_failed(self, event: JobFailed):
        job = event.job
        self._emit(
            f"{self._prefix(job)} ERROR failed to compress {job.candidate.path} ({event.error_message})",
            "red",
        )

    def on_interrupt_request(self, event: InterruptRequested):
        self._emit("Interrupt received: no new jobs will start, waiting for running jobs...", "bold yellow")

    def render_summary(self, summary: RunSummary):
        with self._ui_lock:
            render_summary(self.console, summary, verbose=not self.config.terse)


def render_summary(console: Console, summary: RunSummary, verbose: bool = True):
    console.print()
    console.print(Text("--- Summary ---", style="bold"))

    if verbose:
        for title, paths in (("Images processed:", summary.processed_images),
                             ("Videos processed:", summary.processed_videos)):
            if paths:
                console.print(title)
                for path in paths:
                    console.print(Text(printable(f"  {path}")))

    images, videos = summary.images, summary.videos
    if any((images.processed, images.skipped, images.forced,
            videos.processed, videos.skipped, videos.forced)):
        console.print("Counts:")
        console.print(f"  Images: processed={images.processed} forced={images.forced} skipped={images.skipped}")
        console.print(f"  Videos: processed={videos.processed} forced={videos.forced} skipped={videos.skipped}")

    if summary.original_bytes > 0:
        console.print(
            f"Total original size: {summary.original_bytes} bytes ({human_size(summary.original_bytes)})"
        )
        console.print(
            f"Total compressed size: {summary.compressed_bytes} bytes ({human_size(summary.compressed_bytes)})"
        )
        console.print(
            f"Space saved: {summary.saved_bytes} bytes ({human_size(summary.saved_bytes)}) "
            f"({summary.saved_percent:.2f}% reduction)"
        )
        console.print(f"Compression ratio (compressed/original): {summary.ratio:.2f}")

    if summary.processed_total == 0:
        if images.skipped or videos.skipped:
            console.print("No new files processed (all were skipped).")
        else:
            console.print("No files were processed.")

    console.print(f"Elapsed time: {format_duration(summary.elapsed_seconds)}")
    if summary.quarantine_dir is not None:
        console.print(Text(printable(
            f"Quarantined originals: {summary.quarantine_files} file(s) in {summary.quarantine_dir} "
            f"(approx {human_size(summary.quarantine_bytes)})"
        )))
    if summary.processed_total > 0 and summary.elapsed_seconds > 0:
        console.print(f"Throughput: {summary.throughput:.2f} items/sec")
    if summary.interrupted:
        console.print(Text(
            "(Run again to continue; existing *_compressed files will be skipped)", style="yellow"
        ))
