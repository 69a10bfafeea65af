import subprocess
import json
import logging
from pathlib import Path
from typing import List
from mbc.domain.models import Candidate, MediaKind

class MediaProbe:
    """Checks that discovered files are readable by the external encoders.

    Images are checked with `magick identify`, videos with ffprobe (a readable
    video must expose at least one video stream).
    """

    def __init__(self, image_binary: str = "magick"):
        self.image_binary = image_binary
        self.logger = logging.getLogger(__name__)

    def _identify_command(self, path: Path) -> List[str]:
        if Path(self.image_binary).name == "convert":
            # Legacy ImageMagick 6 ships identify as its own binary
            return ["identify", str(path)]
        return [self.image_binary, "identify", str(path)]

    def is_readable_image(self, path: Path) -> bool:
        try:
            result = subprocess.run(self._identify_command(path), capture_output=True, text=True)
        except OSError as e:
            self.logger.warning(f"identify failed to start for {path}: {e}")
            return False
        return result.returncode == 0

    def is_readable_video(self, path: Path) -> bool:
        cmd = [
            "ffprobe",
            "-v", "error",
            "-print_format", "json",
            "-show_streams",
            str(path)
        ]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            self.logger.warning(f"ffprobe failed to start for {path}: {e}")
            return False
        if result.returncode != 0:
            return False
        try:
            data = json.loads(result.stdout or "{}")
        except json.JSONDecodeError:
            return False
        return any(s.get("codec_type") == "video" for s in data.get("streams", []))

    def is_readable(self, candidate: Candidate) -> bool:
        if candidate.kind == MediaKind.IMAGE:
            return self.is_readable_image(candidate.path)
        return self.is_readable_video(candidate.path)
