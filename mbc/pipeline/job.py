import logging
import os
import time
from typing import Protocol
from mbc.config.models import AppConfig
from mbc.domain.models import CompressionJob, JobStatus, MediaKind, is_compressed_name
from mbc.domain.events import (
    JobStarted, JobSkipped, JobDryRun, JobForcedRemoval, JobCompleted, JobFailed
)
from mbc.infrastructure.event_bus import EventBus
from mbc.pipeline.progress import ProgressEstimator
from mbc.pipeline.quarantine import QuarantineManager


class EncoderAdapter(Protocol):
    def compress(self, job: CompressionJob, config) -> None:
        ...


class TranscodeJobRunner:
    """Drives a single CompressionJob through its state machine.

    QUEUED -> SKIPPED_* | DRY_RUN | [FORCED_REMOVAL ->] RUNNING -> DONE | ERROR

    Runs on a worker thread. Every exception is contained here so one broken
    file never stops the pool.
    """

    def __init__(
        self,
        config: AppConfig,
        event_bus: EventBus,
        image_encoder: EncoderAdapter,
        video_encoder: EncoderAdapter,
        quarantine: QuarantineManager,
        progress: ProgressEstimator,
    ):
        self.config = config
        self.event_bus = event_bus
        self.image_encoder = image_encoder
        self.video_encoder = video_encoder
        self.quarantine = quarantine
        self.progress = progress
        self.logger = logging.getLogger(__name__)

    def _encode(self, job: CompressionJob):
        if job.kind == MediaKind.IMAGE:
            self.image_encoder.compress(job, self.config.image)
        else:
            self.video_encoder.compress(job, self.config.video)

    def _fail(self, job: CompressionJob, message: str):
        job.status = JobStatus.ERROR
        job.error_message = message
        self.logger.error(f"JOB_ERROR: {job.candidate.path} {message}")
        self.event_bus.publish(JobFailed(job=job, error_message=message))

    def _remove_output(self, job: CompressionJob):
        try:
            if job.output_path is not None and job.output_path.exists():
                job.output_path.unlink()
        except OSError as e:
            self.logger.warning(f"Could not remove output {job.output_path}: {e}")

    def run(self, job: CompressionJob) -> CompressionJob:
        try:
            self._run(job)
        except Exception as e:
            self.logger.exception(f"JOB_CRASH: {job.candidate.path}")
            if job.status == JobStatus.DONE:
                # Verified output is kept; the original is disposed of or still in place
                return job
            self._remove_output(job)
            self._fail(job, f"unexpected error: {e}")
        return job

    def _run(self, job: CompressionJob):
        source = job.candidate.path
        general = self.config.general
        job.output_path = job.candidate.output_path

        if not source.is_file():
            job.status = JobStatus.SKIPPED_NOT_FOUND
            job.error_message = "source not found"
            self.logger.info(f"SKIP: {source} (not found)")
            self.event_bus.publish(JobSkipped(job=job, reason=job.error_message))
            return

        if is_compressed_name(source, job.kind):
            job.status = JobStatus.SKIPPED_ALREADY_COMPRESSED
            job.error_message = "already compressed"
            self.logger.info(f"SKIP: {source} (already compressed)")
            self.event_bus.publish(JobSkipped(job=job, reason=job.error_message))
            return

        output_exists = job.output_path.exists()
        if output_exists and not general.force:
            job.status = JobStatus.SKIPPED_EXISTS
            job.error_message = "output exists"
            self.logger.info(f"SKIP: {source} (output exists: {job.output_path.name})")
            self.event_bus.publish(JobSkipped(job=job, reason=job.error_message))
            return

        if general.dry_run:
            job.status = JobStatus.DRY_RUN
            job.forced = output_exists
            self.logger.info(f"DRY_RUN: {source} -> {job.output_path.name}")
            self.event_bus.publish(JobDryRun(job=job))
            return

        if output_exists:
            job.output_path.unlink()
            job.status = JobStatus.FORCED_REMOVAL
            job.forced = True
            self.logger.info(f"FORCED_REMOVAL: {job.output_path}")
            self.event_bus.publish(JobForcedRemoval(job=job))

        job.status = JobStatus.RUNNING
        job.started_at = time.time()
        start = time.monotonic()
        source_stat = source.stat()
        job.original_size = source_stat.st_size
        self.logger.info(f"JOB_START: {source} ({job.original_size} bytes)")
        self.event_bus.publish(JobStarted(job=job))

        self._encode(job)
        job.duration_seconds = time.monotonic() - start

        if job.status == JobStatus.ERROR:
            self._remove_output(job)
            self._fail(job, job.error_message or "encoder failed")
            return

        # Integrity: an empty or missing output never replaces an original
        if not job.output_path.is_file() or job.output_path.stat().st_size == 0:
            self._remove_output(job)
            self._fail(job, "zero-size output, keeping original")
            return

        try:
            os.utime(job.output_path, (source_stat.st_atime, source_stat.st_mtime))
        except OSError as e:
            self.logger.warning(f"Could not copy mtime to {job.output_path}: {e}")

        job.compressed_size = job.output_path.stat().st_size
        job.status = JobStatus.DONE

        snapshot = self.progress.record_completion(job.kind)
        job.show_eta = self.progress.should_show_eta(job.duration_seconds)
        job.eta_kind_seconds = snapshot.eta_kind_seconds
        job.eta_overall_seconds = snapshot.eta_overall_seconds

        disposal = self.quarantine.dispose_original(source)
        job.disposal_note = disposal.note

        self.logger.info(
            f"JOB_DONE: {source} {job.original_size} -> {job.compressed_size} bytes "
            f"in {job.duration_seconds:.2f}s ({disposal.note})"
        )
        self.event_bus.publish(JobCompleted(job=job))
