import os
import logging
from pathlib import Path
from mbc.domain.models import MediaKind, compressed_marker

PARTIAL_SUFFIXES = tuple(f"{compressed_marker(kind)}.tmp" for kind in MediaKind)

class HousekeepingService:
    """Service for cleaning up partial outputs left by interrupted runs."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def cleanup_partial_outputs(self, directory: Path, recursive: bool = False) -> int:
        """Removes stale `*_compressed.jpg.tmp` / `*_compressed.mp4.tmp` files.

        Returns the number of files removed.
        """
        removed = 0
        for root, dirs, files in os.walk(directory):
            if not recursive:
                dirs[:] = []
            for file in files:
                if file.endswith(PARTIAL_SUFFIXES):
                    try:
                        (Path(root) / file).unlink()
                        removed += 1
                    except OSError as e:
                        self.logger.warning(f"Failed to remove partial output {file}: {e}")
        if removed:
            self.logger.info(f"Removed {removed} stale partial output(s) in {directory}")
        return removed
