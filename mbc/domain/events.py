"""Domain events for the media compression pipeline.

Events represent state changes and notifications that flow through the EventBus,
decoupling the pipeline (scheduler, jobs, statistics) from console reporting.

See `infrastructure/event_bus.py` for the pub/sub mechanism.
"""

from pathlib import Path
from typing import Optional
from pydantic import BaseModel
from .models import CompressionJob, MediaKind


class Event(BaseModel):
    """Base class for all domain events.

    Events are validated Pydantic models. They are not frozen by default.
    """

    pass

class JobEvent(Event):
    """Base class for events related to a specific compression job."""

    job: CompressionJob


class JobStarted(JobEvent):
    """Emitted when the external encoder is about to run."""

    pass


class JobSkipped(JobEvent):
    """Emitted for SKIPPED_* outcomes; only SKIPPED_EXISTS is counted."""

    reason: str


class JobDryRun(JobEvent):
    """Emitted instead of running when dry-run is set."""

    pass


class JobForcedRemoval(JobEvent):
    """Emitted after an existing output was removed because of --force."""

    pass


class JobCompleted(JobEvent):
    """Emitted when a job passed the integrity check and its original was disposed of."""

    pass


class JobFailed(JobEvent):
    """Emitted when encoding failed or produced an empty output."""

    error_message: str


class DiscoveryFinished(Event):
    """Emitted after candidates were collected and probed."""

    images: int = 0
    videos: int = 0
    unreadable: int = 0


class CandidateUnreadable(Event):
    """Emitted for a discovered file the probe could not read; it is dropped."""

    path: Path
    kind: MediaKind


class QuarantinePrepared(Event):
    """Emitted once before scheduling when a quarantine directory is in use."""

    path: Path
    planned_bytes: int


class PhaseStarted(Event):
    """Emitted when the scheduler enters a phase."""

    name: str
    index: int
    count: int
    kind: Optional[MediaKind] = None


class InterruptRequested(Event):
    """Emitted when an interrupt stops admission of new jobs."""

    pass


class ProcessingFinished(Event):
    """Emitted when the scheduler drained all admitted jobs."""

    interrupted: bool = False
