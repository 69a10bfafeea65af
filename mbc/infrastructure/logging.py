import logging
from pathlib import Path
from typing import Optional
from mbc.config.models import AppConfig

DEFAULT_LOG_PATH = Path("/tmp/mbc/compression.log")
LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


def setup_logging(log_path: Optional[Path] = None, debug: bool = False) -> logging.Logger:
    """
    Routes every `mbc.*` logger to a single log file.

    The console belongs to the per-job lines printed by the reporter, so no
    stream handler is attached here.

    Args:
        log_path: Log file (defaults to /tmp/mbc/compression.log); parent
            directories are created.
        debug: DEBUG level (encoder command lines, timings) instead of INFO.
    """
    log_file = Path(log_path) if log_path else DEFAULT_LOG_PATH
    log_file.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
        handlers=[logging.FileHandler(log_file, errors="backslashreplace")],
        force=True  # Override any existing configuration
    )

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized: {log_file} (debug={'ON' if debug else 'OFF'})")
    return logger


def log_run_config(logger: logging.Logger, config: AppConfig, directory: Path):
    """One line per run describing the effective settings."""
    general = config.general
    policy = "delete" if general.delete_originals else f"quarantine({config.quarantine.prefix})"
    mode = "interleaved" if general.interleaved else "phased"
    logger.info(f"MBC started: directory={directory}")
    logger.info(
        f"Config: jobs={general.jobs}, mode={mode}, originals={policy}, dry_run={general.dry_run}, "
        f"recursive={general.recursive}, force={general.force}, probe={general.probe}, "
        f"image_quality={config.image.quality}, video_crf={config.video.crf}"
    )
