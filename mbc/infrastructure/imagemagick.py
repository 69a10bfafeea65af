import subprocess
import logging
import time
from pathlib import Path
from typing import List
from mbc.domain.models import CompressionJob, JobStatus, partial_path_for
from mbc.config.models import ImageEncoderConfig

class ImageMagickAdapter:
    """Wrapper around ImageMagick (`magick`, or legacy `convert`) for JPEG recompression."""

    def __init__(self, binary: str = "magick", debug: bool = False):
        self.binary = binary
        self.debug = debug
        self.logger = logging.getLogger(__name__)

    def _build_command(self, source: Path, output: Path, config: ImageEncoderConfig) -> List[str]:
        """Constructs the ImageMagick command line arguments."""
        return [
            self.binary,
            str(source),
            "-strip",
            "-interlace", "Plane",
            "-gaussian-blur", config.blur,
            "-quality", str(config.quality),
            # Explicit format: the .tmp extension does not indicate one
            f"JPEG:{partial_path_for(output)}",
        ]

    def compress(self, job: CompressionJob, config: ImageEncoderConfig):
        """Runs the conversion; sets ERROR on failure, renames .tmp on success."""
        source = job.candidate.path
        filename = source.name
        tmp_path = partial_path_for(job.output_path)
        cmd = self._build_command(source, job.output_path, config)
        start_time = time.monotonic()

        if self.debug:
            self.logger.debug(f"MAGICK_CMD: {' '.join(cmd)}")

        try:
            # Own session: a terminal Ctrl+C must not kill running conversions
            result = subprocess.run(cmd, capture_output=True, text=True, start_new_session=True)
        except OSError as e:
            job.status = JobStatus.ERROR
            job.error_message = f"failed to run {self.binary}: {e}"
            self.logger.error(f"MAGICK_ERROR: {filename} {job.error_message}")
            return

        if result.returncode != 0:
            job.status = JobStatus.ERROR
            job.error_message = f"{self.binary} exited with code {result.returncode}"
            if tmp_path.exists():
                tmp_path.unlink()
            stderr = (result.stderr or "").strip()
            self.logger.error(f"MAGICK_ERROR: {filename} code={result.returncode} {stderr[:500]}")
            return

        if tmp_path.exists():
            tmp_path.replace(job.output_path)
        if self.debug:
            elapsed = time.monotonic() - start_time
            self.logger.debug(f"MAGICK_END: {filename} elapsed={elapsed:.2f}s")
