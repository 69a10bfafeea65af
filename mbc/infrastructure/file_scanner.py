import os
from pathlib import Path
from typing import Iterable, List, Optional
from mbc.config.models import DEFAULT_QUARANTINE_PREFIX
from mbc.domain.models import Candidate, CandidateSet, MediaKind, is_compressed_name

class FileScanner:
    """Scans a directory for image and video candidates."""

    def __init__(
        self,
        image_extensions: List[str],
        video_extensions: List[str],
        quarantine_prefixes: Optional[Iterable[str]] = None,
    ):
        self.image_extensions = {self._norm(ext) for ext in image_extensions}
        self.video_extensions = {self._norm(ext) for ext in video_extensions}
        prefixes = set(quarantine_prefixes or ())
        prefixes.add(DEFAULT_QUARANTINE_PREFIX)
        self.quarantine_prefixes = tuple(f"{p}-" for p in sorted(prefixes))

    @staticmethod
    def _norm(ext: str) -> str:
        ext = ext.lower()
        return ext if ext.startswith(".") else f".{ext}"

    def classify(self, path: Path) -> Optional[MediaKind]:
        suffix = path.suffix.lower()
        if suffix in self.image_extensions:
            return MediaKind.IMAGE
        if suffix in self.video_extensions:
            return MediaKind.VIDEO
        return None

    def _is_quarantine_dir(self, name: str) -> bool:
        return name.startswith(self.quarantine_prefixes)

    def scan(self, root_dir: Path, recursive: bool = False) -> CandidateSet:
        """Scans the directory and returns a deduplicated CandidateSet."""
        candidates = CandidateSet()
        for root, dirs, files in os.walk(str(root_dir)):
            root_path = Path(root)

            if recursive:
                # Deterministic traversal; never descend into quarantine directories
                dirs[:] = sorted(d for d in dirs if not self._is_quarantine_dir(d))
            else:
                dirs[:] = []
            files.sort()

            for file_name in files:
                file_path = root_path / file_name
                kind = self.classify(file_path)
                if kind is None:
                    continue
                if is_compressed_name(file_path, kind):
                    continue
                if not file_path.is_file():
                    continue
                candidates.add(Candidate(path=file_path, kind=kind))

        return candidates
