"""Progress and remaining-time estimation for the compression pipeline.

Throughput is tracked as an exponential moving average (EMA) of *seconds per
completed item*, per media kind and overall:

    current_avg = elapsed_since_phase_start / completed_so_far
    ema_new     = alpha * current_avg + (1 - alpha) * ema_prev

The first completion seeds the EMA with `current_avg`. Entering the video
phase resets the phase clock, the overall completion counter and every EMA, so
video estimates are not biased by the much faster image phase.

Jobs complete on worker threads in any order; every mutation happens under a
single lock and `record_completion` hands back an immutable snapshot for the
job that triggered it.
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional
from mbc.domain.models import MediaKind

DEFAULT_ALPHA = 0.2


def update_ema(current: float, previous: Optional[float], alpha: float = DEFAULT_ALPHA) -> float:
    if previous is None or previous <= 0:
        return current
    return alpha * current + (1 - alpha) * previous


def _is_count(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


@dataclass(frozen=True)
class ProgressSnapshot:
    kind: MediaKind
    completed_kind: int
    completed_overall: int
    elapsed_seconds: float
    eta_kind_seconds: Optional[float]
    eta_overall_seconds: Optional[float]


class ProgressState:
    """Mutable counters and EMA values; owned by ProgressEstimator."""

    def __init__(self, phase_start: float = 0.0):
        self.completed_overall = 0
        self.completed_images = 0
        self.completed_videos = 0
        self.ema_overall: Optional[float] = None
        self.ema_image: Optional[float] = None
        self.ema_video: Optional[float] = None
        self.phase_start = phase_start
        self.total_images = 0
        self.total_videos = 0
        self.total_overall = 0

    def completed(self, kind: MediaKind) -> int:
        return self.completed_images if kind == MediaKind.IMAGE else self.completed_videos

    def ema(self, kind: Optional[MediaKind]) -> Optional[float]:
        if kind is None:
            return self.ema_overall
        return self.ema_image if kind == MediaKind.IMAGE else self.ema_video

    def total(self, kind: Optional[MediaKind]) -> int:
        if kind is None:
            return self.total_overall
        return self.total_images if kind == MediaKind.IMAGE else self.total_videos


class ProgressEstimator:
    """EMA-based ETA estimator shared by all jobs of a run."""

    def __init__(
        self,
        alpha: float = DEFAULT_ALPHA,
        suppress_seconds: float = 1.0,
        job_threshold_seconds: float = 3.0,
        always: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.alpha = alpha
        self.suppress_seconds = suppress_seconds
        self.job_threshold_seconds = job_threshold_seconds
        self.always = always
        self._clock = clock
        self._lock = threading.RLock()
        self.state = ProgressState(phase_start=clock())

    def start(self, total_images: int, total_videos: int, total_overall: Optional[int] = None):
        """Initializes totals and the phase clock at the beginning of a run."""
        with self._lock:
            self.state = ProgressState(phase_start=self._clock())
            self.state.total_images = total_images
            self.state.total_videos = total_videos
            self.state.total_overall = (
                total_images + total_videos if total_overall is None else total_overall
            )

    def reset_phase(self, total_overall: int):
        """Phase boundary: restart the clock, zero the overall counter and all EMA values.

        Per-kind completion counters are kept.
        """
        with self._lock:
            self.state.phase_start = self._clock()
            self.state.completed_overall = 0
            self.state.ema_overall = None
            self.state.ema_image = None
            self.state.ema_video = None
            self.state.total_overall = total_overall

    def elapsed(self) -> float:
        with self._lock:
            return max(0.0, self._clock() - self.state.phase_start)

    def record_completion(self, kind: MediaKind) -> ProgressSnapshot:
        with self._lock:
            state = self.state
            state.completed_overall += 1
            if kind == MediaKind.IMAGE:
                state.completed_images += 1
            else:
                state.completed_videos += 1

            elapsed = self.elapsed()
            avg_overall = elapsed / state.completed_overall
            avg_kind = elapsed / state.completed(kind)
            state.ema_overall = update_ema(avg_overall, state.ema_overall, self.alpha)
            if kind == MediaKind.IMAGE:
                state.ema_image = update_ema(avg_kind, state.ema_image, self.alpha)
            else:
                state.ema_video = update_ema(avg_kind, state.ema_video, self.alpha)

            return ProgressSnapshot(
                kind=kind,
                completed_kind=state.completed(kind),
                completed_overall=state.completed_overall,
                elapsed_seconds=elapsed,
                eta_kind_seconds=self.eta(kind, state.completed(kind), state.total(kind)),
                eta_overall_seconds=self.eta(None, state.completed_overall, state.total_overall),
            )

    def eta(self, kind: Optional[MediaKind], done: Any, total: Any) -> Optional[float]:
        """Remaining seconds for `kind` (None = overall), or None when unavailable."""
        if not (_is_count(done) and _is_count(total)):
            return None
        with self._lock:
            elapsed = self.elapsed()
            if not self.always and elapsed < self.suppress_seconds:
                return None
            avg_per_item = self.state.ema(kind)
            if avg_per_item is None or avg_per_item <= 0:
                avg_per_item = elapsed / done if done else 0.0
            return max(0, total - done) * avg_per_item

    def should_show_eta(self, job_seconds: Optional[float]) -> bool:
        """ETA fields are attached to a job line only for slow jobs (or when forced)."""
        if self.always:
            return True
        return job_seconds is not None and job_seconds > self.job_threshold_seconds
