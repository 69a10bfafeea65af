"""Pipeline orchestrator: bounded worker pool for compression jobs.

Key responsibilities:
- Prepare the quarantine directory before anything is scheduled
- Admit candidates in list order, never more than `jobs` at a time
  (submit-on-demand: a new job is submitted only when one finishes)
- Phased mode (images, then videos with an estimator reset in between) or
  interleaved mode (one queue)
- Cooperative interrupt: admission stops, running encoders are left to finish
"""

import threading
import concurrent.futures
import logging
import time
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Deque, Dict, List, Optional, Tuple
from mbc.config.models import AppConfig
from mbc.domain.models import Candidate, CandidateSet, CompressionJob, MediaKind
from mbc.domain.events import (
    InterruptRequested, PhaseStarted, ProcessingFinished, QuarantinePrepared
)
from mbc.infrastructure.event_bus import EventBus
from mbc.pipeline.job import TranscodeJobRunner
from mbc.pipeline.progress import ProgressEstimator
from mbc.pipeline.quarantine import QuarantineManager


@dataclass(frozen=True)
class RunResult:
    interrupted: bool
    quarantine_dir: Optional[Path]
    started_at: float
    elapsed_seconds: float = 0.0


class Orchestrator:
    """Schedules TranscodeJobs on a ThreadPoolExecutor under a concurrency cap.

    Args:
        config: AppConfig (jobs, interleaved and friends from `general`).
        event_bus: EventBus for phase and interrupt events.
        job_runner: TranscodeJobRunner executing one job on a worker thread.
        quarantine: QuarantineManager prepared once before scheduling.
        progress: ProgressEstimator reset between the image and video phases.
    """

    def __init__(
        self,
        config: AppConfig,
        event_bus: EventBus,
        job_runner: TranscodeJobRunner,
        quarantine: QuarantineManager,
        progress: ProgressEstimator,
    ):
        self.config = config
        self.event_bus = event_bus
        self.job_runner = job_runner
        self.quarantine = quarantine
        self.progress = progress
        self.logger = logging.getLogger(__name__)
        self.capacity = max(config.general.jobs, 1)

        self._thread_lock = threading.RLock()
        self._shutdown_requested = False
        self._interrupt_announced = False
        self.jobs: List[CompressionJob] = []

    @property
    def interrupted(self) -> bool:
        return self._shutdown_requested

    def request_interrupt(self):
        """Stops admission of new jobs. Running jobs are not cancelled.

        Safe to call from a signal handler: it only sets a flag. The scheduler
        loop logs and publishes `InterruptRequested` once it sees the flag.
        """
        self._shutdown_requested = True

    def _announce_interrupt(self):
        with self._thread_lock:
            if not self._shutdown_requested or self._interrupt_announced:
                return
            self._interrupt_announced = True
        self.logger.info("INTERRUPT: admission stopped, waiting for running jobs")
        self.event_bus.publish(InterruptRequested())

    def _queue(self, candidates: List[Candidate]) -> List[Tuple[Candidate, int, int]]:
        return [(c, i, len(candidates)) for i, c in enumerate(candidates, start=1)]

    def _run_phase(
        self,
        executor: concurrent.futures.ThreadPoolExecutor,
        queue: List[Tuple[Candidate, int, int]],
    ):
        pending: Deque[Tuple[Candidate, int, int]] = deque(queue)
        in_flight: Dict[concurrent.futures.Future, CompressionJob] = {}

        def submit_batch():
            """Submit jobs up to capacity unless an interrupt stopped admission."""
            with self._thread_lock:
                while len(in_flight) < self.capacity and pending and not self._shutdown_requested:
                    candidate, index, total = pending.popleft()
                    job = CompressionJob(candidate=candidate, sequence_index=index, total_in_kind=total)
                    self.jobs.append(job)
                    future = executor.submit(self.job_runner.run, job)
                    in_flight[future] = job

        submit_batch()
        while in_flight:
            try:
                done, _ = concurrent.futures.wait(
                    set(in_flight.keys()),
                    return_when=concurrent.futures.FIRST_COMPLETED
                )
            except KeyboardInterrupt:
                # Ctrl+C without a signal handler installed: same as request_interrupt
                self.request_interrupt()
                self._announce_interrupt()
                continue

            for future in done:
                job = in_flight.pop(future)
                try:
                    future.result()
                except Exception as e:
                    self.logger.error(f"Job for {job.candidate.path} failed with exception: {e}")

            self._announce_interrupt()
            submit_batch()

        if pending:
            self.logger.info(f"{len(pending)} candidates not admitted (interrupted)")

    def run(self, candidates: CandidateSet) -> RunResult:
        started_at = time.time()
        start = time.monotonic()
        general = self.config.general

        quarantine_dir = self.quarantine.prepare(candidates.all())
        if quarantine_dir is not None:
            self.event_bus.publish(QuarantinePrepared(
                path=quarantine_dir,
                planned_bytes=self.quarantine.planned_bytes,
            ))

        n_images, n_videos = len(candidates.images), len(candidates.videos)
        self.progress.start(n_images, n_videos)
        self.logger.info(
            f"Scheduling {n_images} images and {n_videos} videos "
            f"(jobs={self.capacity}, mode={'interleaved' if general.interleaved else 'phased'})"
        )

        with concurrent.futures.ThreadPoolExecutor(max_workers=self.capacity) as executor:
            if general.interleaved:
                queue = self._queue(candidates.images) + self._queue(candidates.videos)
                self.event_bus.publish(PhaseStarted(name="interleaved", index=1, count=1, kind=None))
                self._run_phase(executor, queue)
            else:
                phases = [
                    (MediaKind.IMAGE, candidates.images),
                    (MediaKind.VIDEO, candidates.videos),
                ]
                for index, (kind, items) in enumerate(phases, start=1):
                    if self.interrupted:
                        break
                    if kind == MediaKind.VIDEO:
                        self.progress.reset_phase(total_overall=n_videos)
                    if not items:
                        continue
                    self.event_bus.publish(PhaseStarted(
                        name=f"{kind.value}s", index=index, count=len(phases), kind=kind
                    ))
                    self._run_phase(executor, self._queue(items))

        self._announce_interrupt()
        interrupted = self.interrupted
        elapsed = time.monotonic() - start
        self.logger.info(f"Processing finished in {elapsed:.1f}s (interrupted={interrupted})")
        self.event_bus.publish(ProcessingFinished(interrupted=interrupted))
        return RunResult(
            interrupted=interrupted,
            quarantine_dir=quarantine_dir,
            started_at=started_at,
            elapsed_seconds=elapsed,
        )
