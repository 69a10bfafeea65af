import threading
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from pydantic import BaseModel, Field
from mbc.domain.models import JobStatus, MediaKind, SizeRecord
from mbc.domain.events import JobCompleted, JobSkipped, JobForcedRemoval
from mbc.infrastructure.event_bus import EventBus


class KindSummary(BaseModel):
    processed: int = 0
    skipped: int = 0
    forced: int = 0


class RunSummary(BaseModel):
    """Final report, recomputed from the ledgers on every call."""
    images: KindSummary = Field(default_factory=KindSummary)
    videos: KindSummary = Field(default_factory=KindSummary)
    original_bytes: int = 0
    compressed_bytes: int = 0
    saved_bytes: int = 0
    saved_percent: float = 0.0
    ratio: Optional[float] = None
    processed_images: List[Path] = Field(default_factory=list)
    processed_videos: List[Path] = Field(default_factory=list)
    elapsed_seconds: float = 0.0
    throughput: float = 0.0
    quarantine_dir: Optional[Path] = None
    quarantine_files: int = 0
    quarantine_bytes: int = 0
    interrupted: bool = False

    @property
    def processed_total(self) -> int:
        return self.images.processed + self.videos.processed


class StatisticsAggregator:
    """Collects size, skip and forced ledgers from job events.

    Event callbacks arrive on worker threads; ledgers are guarded by a lock.
    """

    def __init__(self, event_bus: EventBus):
        self._lock = threading.Lock()
        self.size_ledger: List[SizeRecord] = []
        self.skip_ledger: List[Tuple[MediaKind, Path]] = []
        self.forced_ledger: List[Tuple[MediaKind, Path]] = []
        event_bus.subscribe(JobCompleted, self._on_job_completed)
        event_bus.subscribe(JobSkipped, self._on_job_skipped)
        event_bus.subscribe(JobForcedRemoval, self._on_job_forced)

    def _on_job_completed(self, event: JobCompleted):
        job = event.job
        record = SizeRecord(
            path=job.candidate.path,
            kind=job.kind,
            original_bytes=job.original_size or 0,
            compressed_bytes=job.compressed_size or 0,
        )
        with self._lock:
            self.size_ledger.append(record)

    def _on_job_skipped(self, event: JobSkipped):
        # Only "output already exists" counts as a skip in the summary
        if event.job.status != JobStatus.SKIPPED_EXISTS:
            return
        with self._lock:
            self.skip_ledger.append((event.job.kind, event.job.candidate.path))

    def _on_job_forced(self, event: JobForcedRemoval):
        with self._lock:
            self.forced_ledger.append((event.job.kind, event.job.candidate.path))

    def summary(
        self,
        elapsed_seconds: float = 0.0,
        quarantine_dir: Optional[Path] = None,
        delete_originals: bool = False,
        occupancy: Optional[Tuple[int, int]] = None,
        interrupted: bool = False,
    ) -> RunSummary:
        with self._lock:
            records: Dict[Path, SizeRecord] = {}
            for record in self.size_ledger:
                records.setdefault(record.path, record)
            skipped = dict((path, kind) for kind, path in self.skip_ledger)
            forced = dict((path, kind) for kind, path in self.forced_ledger)

        result = RunSummary(elapsed_seconds=elapsed_seconds, interrupted=interrupted)
        for record in records.values():
            if record.kind == MediaKind.IMAGE:
                result.images.processed += 1
                result.processed_images.append(record.path)
            else:
                result.videos.processed += 1
                result.processed_videos.append(record.path)
            result.original_bytes += record.original_bytes
            result.compressed_bytes += record.compressed_bytes
        for kind in skipped.values():
            (result.images if kind == MediaKind.IMAGE else result.videos).skipped += 1
        for kind in forced.values():
            (result.images if kind == MediaKind.IMAGE else result.videos).forced += 1

        result.saved_bytes = result.original_bytes - result.compressed_bytes
        if result.original_bytes > 0:
            result.saved_percent = result.saved_bytes * 100.0 / result.original_bytes
            # compressed/original: lower is better
            result.ratio = result.compressed_bytes / result.original_bytes
        if elapsed_seconds > 0:
            result.throughput = result.processed_total / elapsed_seconds

        if quarantine_dir is not None and not delete_originals:
            result.quarantine_dir = quarantine_dir
            if occupancy is not None:
                result.quarantine_files, result.quarantine_bytes = occupancy
        return result
