import subprocess
import logging
import time
from pathlib import Path
from typing import List
from mbc.domain.models import CompressionJob, JobStatus, partial_path_for
from mbc.config.models import VideoEncoderConfig

class FFmpegAdapter:
    """Wrapper around ffmpeg for video transcoding."""

    def __init__(self, quiet: bool = True, debug: bool = False):
        self.quiet = quiet
        self.debug = debug
        self.logger = logging.getLogger(__name__)

    def _build_command(self, source: Path, output: Path, config: VideoEncoderConfig) -> List[str]:
        """Constructs the ffmpeg command line arguments."""
        cmd = ["ffmpeg", "-y"]
        if self.quiet:
            cmd.extend(["-loglevel", "error"])
        cmd.extend(["-i", str(source)])

        # Video encoding settings
        cmd.extend([
            "-c:v", config.codec,
            "-crf", str(config.crf),
            "-preset", config.preset,
        ])

        # Audio settings
        cmd.extend([
            "-c:a", config.audio_codec,
            "-b:a", config.audio_bitrate,
        ])

        # Write to .tmp file during transcoding (renamed on success)
        # Force mp4 format since .tmp extension doesn't indicate format
        cmd.extend(["-f", "mp4", str(partial_path_for(output))])
        return cmd

    def compress(self, job: CompressionJob, config: VideoEncoderConfig):
        """Executes the transcode; sets ERROR on failure, renames .tmp on success."""
        source = job.candidate.path
        filename = source.name
        tmp_path = partial_path_for(job.output_path)
        cmd = self._build_command(source, job.output_path, config)
        start_time = time.monotonic()

        if self.debug:
            self.logger.debug(f"FFMPEG_CMD: {' '.join(cmd)}")

        run_kwargs = {"start_new_session": True}
        if self.quiet:
            run_kwargs.update(capture_output=True, text=True)

        try:
            result = subprocess.run(cmd, **run_kwargs)
        except OSError as e:
            job.status = JobStatus.ERROR
            job.error_message = f"failed to run ffmpeg: {e}"
            self.logger.error(f"FFMPEG_ERROR: {filename} {job.error_message}")
            return

        if result.returncode != 0:
            job.status = JobStatus.ERROR
            job.error_message = f"ffmpeg exited with code {result.returncode}"
            # Cleanup tmp file on error
            if tmp_path.exists():
                tmp_path.unlink()
            stderr = (getattr(result, "stderr", None) or "").strip()
            self.logger.error(f"FFMPEG_ERROR: {filename} code={result.returncode} {stderr[:500]}")
            return

        # Success - rename .tmp to final .mp4
        if tmp_path.exists():
            tmp_path.replace(job.output_path)
        if self.debug:
            elapsed = time.monotonic() - start_time
            self.logger.debug(f"FFMPEG_END: {filename} elapsed={elapsed:.2f}s")
