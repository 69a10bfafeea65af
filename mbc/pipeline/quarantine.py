import logging
import os
import shutil
import threading
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Iterable, Optional, Tuple
from mbc.config.models import AppConfig, DEFAULT_QUARANTINE_PREFIX, SAFE_NAME_PATTERN
from mbc.domain.models import Candidate

logger = logging.getLogger(__name__)


class QuarantineError(ValueError):
    """Refusal to finalize (permanently delete) a quarantine directory."""


@dataclass(frozen=True)
class DisposalResult:
    note: str
    error: Optional[str] = None


def quarantine_dir_name(prefix: str, today: date, planned_bytes: int) -> str:
    return f"{prefix}-{today.strftime('%Y%m%d')}-{planned_bytes}"


class QuarantineManager:
    """Owns the lifecycle of originals after successful compression.

    Originals are either deleted (delete policy), moved into a dated quarantine
    directory inside the working directory, or left in place when no
    quarantine could be created.
    """

    def __init__(self, config: AppConfig, base_dir: Path):
        self.config = config
        self.base_dir = base_dir
        self.quarantine_dir: Optional[Path] = None
        self.planned_bytes = 0
        self._move_lock = threading.Lock()

    @property
    def delete_originals(self) -> bool:
        return self.config.general.delete_originals

    def planned_process_bytes(self, candidates: Iterable[Candidate]) -> int:
        """Sum of sizes of candidates that will actually be compressed."""
        total = 0
        force = self.config.general.force
        for candidate in candidates:
            try:
                if not candidate.path.is_file():
                    continue
                if not force and candidate.output_path.exists():
                    continue
                total += candidate.path.stat().st_size
            except OSError:
                continue
        return total

    def prepare(self, candidates: Iterable[Candidate], today: Optional[date] = None) -> Optional[Path]:
        """Creates the quarantine directory; returns None when originals are not quarantined."""
        general = self.config.general
        if general.dry_run or general.delete_originals:
            return None

        planned = self.planned_process_bytes(candidates)
        self.planned_bytes = planned
        if planned <= 0:
            return None

        name = quarantine_dir_name(self.config.quarantine.prefix, today or date.today(), planned)
        path = self.base_dir / name
        try:
            # Same name on the same day is reused
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"QUARANTINE: cannot create {path}: {e}; originals will be retained")
            return None

        logger.info(f"QUARANTINE: using {path} (planned {planned} bytes)")
        self.quarantine_dir = path
        return path

    def _destination_for(self, source: Path) -> Path:
        try:
            rel_path = source.relative_to(self.base_dir)
        except ValueError:
            rel_path = Path(source.name)
        dest_path = self.quarantine_dir / rel_path
        while dest_path.exists():
            dest_path = dest_path.with_name(f"{dest_path.stem}_dup{dest_path.suffix}")
        return dest_path

    def dispose_original(self, source: Path) -> DisposalResult:
        """Deletes, moves or keeps the original of a successfully compressed file.

        Failures are reported in the result and never raised: the compressed
        output is already verified at this point.
        """
        if self.delete_originals:
            try:
                source.unlink()
            except OSError as e:
                logger.warning(f"DELETE_ERROR: {source}: {e}")
                return DisposalResult(note=f"DELETE-ERROR({e})", error=str(e))
            return DisposalResult(note="deleted original")

        if self.quarantine_dir is None:
            return DisposalResult(note="original retained")

        try:
            # Destination choice and move are atomic with respect to other workers
            with self._move_lock:
                dest_path = self._destination_for(source)
                dest_path.parent.mkdir(parents=True, exist_ok=True)
                shutil.move(str(source), str(dest_path))
        except OSError as e:
            logger.warning(f"MOVE_ERROR: {source} -> {self.quarantine_dir}: {e}")
            return DisposalResult(note=f"MOVE-ERROR({e})", error=str(e))

        logger.debug(f"MOVED: {source} -> {dest_path}")
        return DisposalResult(note=f"moved original -> {self.quarantine_dir.name}")

    def occupancy(self) -> Tuple[int, int]:
        """(file_count, total_bytes) currently held in the quarantine directory."""
        if self.quarantine_dir is None or not self.quarantine_dir.is_dir():
            return 0, 0
        count = 0
        total = 0
        for path in self.quarantine_dir.rglob("*"):
            try:
                if path.is_file():
                    count += 1
                    total += path.stat().st_size
            except OSError:
                continue
        return count, total


def resolve_finalize_target(name: str, base_dir: Path, prefix: str = DEFAULT_QUARANTINE_PREFIX) -> Path:
    """Validates `name` as a quarantine directory directly inside `base_dir`.

    Returns the resolved directory. Raises QuarantineError when any check fails.
    """
    if not name or os.sep in name or "/" in name or ".." in name:
        raise QuarantineError(f"Refusing {name!r}: must be a plain directory name")
    if not SAFE_NAME_PATTERN.match(name):
        raise QuarantineError(f"Refusing {name!r}: unexpected characters in name")

    allowed = {f"{prefix}-", f"{DEFAULT_QUARANTINE_PREFIX}-"}
    if not any(name.startswith(p) for p in allowed):
        raise QuarantineError(
            f"Refusing {name!r}: name must start with {' or '.join(sorted(allowed))}"
        )

    target = base_dir / name
    if target.is_symlink():
        raise QuarantineError(f"Refusing {target}: is a symbolic link")
    if not target.is_dir():
        raise QuarantineError(f"Refusing {target}: not an existing directory")

    resolved = target.resolve()
    if resolved.parent != base_dir.resolve():
        raise QuarantineError(f"Refusing {target}: resolves outside {base_dir}")
    return resolved


def finalize_quarantine(name: str, base_dir: Path, prefix: str = DEFAULT_QUARANTINE_PREFIX) -> Path:
    """Permanently deletes a quarantine directory; returns the deleted path."""
    resolved = resolve_finalize_target(name, base_dir, prefix)
    logger.info(f"FINALIZE: deleting {resolved}")
    shutil.rmtree(resolved)
    return resolved
