import shutil
from typing import List, Optional


class MissingDependencyError(RuntimeError):
    """Raised when a required external tool is not on PATH."""

    def __init__(self, missing: List[str]):
        self.missing = missing
        super().__init__(f"Missing required tool(s): {', '.join(missing)}")


INSTALL_HINTS = {
    "ImageMagick (magick/convert)": "brew install imagemagick  |  apt install imagemagick",
    "ffmpeg": "brew install ffmpeg  |  apt install ffmpeg",
    "ffprobe": "installed together with ffmpeg",
}


def find_image_tool() -> Optional[str]:
    """Returns `magick` (ImageMagick 7) or `convert` (ImageMagick 6), whichever is available."""
    for name in ("magick", "convert"):
        if shutil.which(name):
            return name
    return None


def check_dependencies(need_probe: bool = True) -> str:
    """Verifies external encoders are available; returns the image tool binary."""
    missing: List[str] = []
    image_tool = find_image_tool()
    if image_tool is None:
        missing.append("ImageMagick (magick/convert)")
    if not shutil.which("ffmpeg"):
        missing.append("ffmpeg")
    if need_probe and not shutil.which("ffprobe"):
        missing.append("ffprobe")
    if missing:
        raise MissingDependencyError(missing)
    return image_tool
