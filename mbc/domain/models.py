from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

COMPRESSED_SUFFIX = "_compressed"


class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"

    @property
    def label(self) -> str:
        return "IMG" if self is MediaKind.IMAGE else "VID"


TARGET_EXTENSIONS: Dict[MediaKind, str] = {
    MediaKind.IMAGE: ".jpg",
    MediaKind.VIDEO: ".mp4",
}


class JobStatus(str, Enum):
    QUEUED = "QUEUED"
    SKIPPED_NOT_FOUND = "SKIPPED_NOT_FOUND"
    SKIPPED_ALREADY_COMPRESSED = "SKIPPED_ALREADY_COMPRESSED"
    SKIPPED_EXISTS = "SKIPPED_EXISTS"
    DRY_RUN = "DRY_RUN"
    FORCED_REMOVAL = "FORCED_REMOVAL"
    RUNNING = "RUNNING"
    DONE = "DONE"
    ERROR = "ERROR"

    @property
    def is_terminal(self) -> bool:
        return self not in (JobStatus.QUEUED, JobStatus.FORCED_REMOVAL, JobStatus.RUNNING)

    @property
    def is_skip(self) -> bool:
        return self.value.startswith("SKIPPED_")


def compressed_marker(kind: MediaKind) -> str:
    return f"{COMPRESSED_SUFFIX}{TARGET_EXTENSIONS[kind]}"


def output_path_for(path: Path, kind: MediaKind) -> Path:
    """Source path with its extension replaced by the compressed suffix."""
    return path.with_name(f"{path.stem}{compressed_marker(kind)}")


def partial_path_for(output_path: Path) -> Path:
    """Temporary file the encoders write to before the final rename."""
    return output_path.with_name(f"{output_path.name}.tmp")


def is_compressed_name(path: Path, kind: MediaKind) -> bool:
    return path.name.endswith(compressed_marker(kind))


class Candidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: Path
    kind: MediaKind

    @property
    def output_path(self) -> Path:
        return output_path_for(self.path, self.kind)


class CandidateSet(BaseModel):
    """Deduplicated image and video candidates in discovery order."""
    images: List[Candidate] = Field(default_factory=list)
    videos: List[Candidate] = Field(default_factory=list)
    _seen: Set[Tuple[MediaKind, Path]] = PrivateAttr(default_factory=set)

    def model_post_init(self, __context) -> None:
        self._seen = {(c.kind, c.path) for c in self.all()}

    @classmethod
    def from_paths(cls, image_paths: List[Path], video_paths: List[Path]) -> "CandidateSet":
        candidate_set = cls()
        for path in image_paths:
            candidate_set.add(Candidate(path=path, kind=MediaKind.IMAGE))
        for path in video_paths:
            candidate_set.add(Candidate(path=path, kind=MediaKind.VIDEO))
        return candidate_set

    def add(self, candidate: Candidate) -> bool:
        key = (candidate.kind, candidate.path)
        if key in self._seen:
            return False
        self._seen.add(key)
        target = self.images if candidate.kind == MediaKind.IMAGE else self.videos
        target.append(candidate)
        return True

    def all(self) -> List[Candidate]:
        return [*self.images, *self.videos]

    def __len__(self) -> int:
        return len(self.images) + len(self.videos)


class SizeRecord(BaseModel):
    path: Path
    kind: MediaKind
    original_bytes: int
    compressed_bytes: int


class CompressionJob(BaseModel):
    candidate: Candidate
    sequence_index: int
    total_in_kind: int
    status: JobStatus = JobStatus.QUEUED
    output_path: Optional[Path] = None
    original_size: Optional[int] = None
    compressed_size: Optional[int] = None
    error_message: Optional[str] = None
    disposal_note: Optional[str] = None
    forced: bool = False
    started_at: Optional[float] = None
    duration_seconds: Optional[float] = None
    eta_kind_seconds: Optional[float] = None
    eta_overall_seconds: Optional[float] = None
    show_eta: bool = False

    @property
    def kind(self) -> MediaKind:
        return self.candidate.kind

    @property
    def percent(self) -> float:
        if self.total_in_kind <= 0:
            return 0.0
        return self.sequence_index * 100.0 / self.total_in_kind
