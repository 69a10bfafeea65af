import pytest
import threading
import time
import yaml
from pathlib import Path
from mbc.config.models import AppConfig
from mbc.domain.models import JobStatus, partial_path_for
from mbc.infrastructure.event_bus import EventBus

# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def sample_config():
    """Returns a sample AppConfig object for testing."""
    return AppConfig(
        general={
            "jobs": 2,
            "dry_run": False,
            "recursive": False,
            "force": False,
            "interleaved": False,
            "delete_originals": False,
            "probe": False,
            "debug": False,
        },
        eta={
            "alpha": 0.2,
            "suppress_seconds": 1.0,
            "job_threshold_seconds": 3.0,
        },
    )

@pytest.fixture
def config_yaml_path(tmp_path):
    """Creates a temporary YAML config file."""
    conf_dir = tmp_path / "conf"
    conf_dir.mkdir()
    conf_file = conf_dir / "mbc.yaml"

    content = {
        'general': {
            'jobs': 3,
            'recursive': True,
            'interleaved': False,
            'debug': False,
        },
        'quarantine': {
            'prefix': 'trash',
        },
        'image': {
            'quality': 80,
            'extensions': ['JPG', 'png'],
        },
        'video': {
            'crf': 30,
        },
    }

    with open(conf_file, 'w') as f:
        yaml.dump(content, f)

    return conf_file

# ============================================================================
# EventBus Fixtures
# ============================================================================

@pytest.fixture
def event_bus():
    """Returns a fresh EventBus instance."""
    return EventBus()

# ============================================================================
# File System Fixtures
# ============================================================================

@pytest.fixture
def media_dir(tmp_path):
    """Creates an empty working directory for a run."""
    work_dir = tmp_path / "media"
    work_dir.mkdir()
    return work_dir

@pytest.fixture
def dummy_media_files(media_dir):
    """Creates dummy images and videos in the working directory."""
    files = {}
    for name, size in (("a.jpg", 1000), ("b.png", 2000), ("clip.mov", 3000)):
        f = media_dir / name
        f.write_bytes(b"x" * size)
        files[name] = f
    return files

# ============================================================================
# Fake Encoders (no ImageMagick / ffmpeg required)
# ============================================================================

class FakeEncoder:
    """Stands in for ImageMagickAdapter / FFmpegAdapter.

    Writes `payload` to the .tmp output and renames it, like the real adapters.
    `gate` (a callable taking the job) may block to hold a worker busy.
    """

    def __init__(self, payload: bytes = b"compressed", fail: bool = False, delay: float = 0.0, gate=None):
        self.payload = payload
        self.fail = fail
        self.delay = delay
        self.gate = gate
        self.calls = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def compress(self, job, config):
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            self.calls.append(job.candidate.path)
        try:
            if self.gate is not None:
                self.gate(job)
            elif self.delay:
                time.sleep(self.delay)
            if self.fail:
                job.status = JobStatus.ERROR
                job.error_message = "fake encoder failed"
                return
            tmp_path = partial_path_for(job.output_path)
            tmp_path.write_bytes(self.payload)
            tmp_path.replace(job.output_path)
        finally:
            with self._lock:
                self.active -= 1


@pytest.fixture
def fake_encoder():
    """Factory for FakeEncoder instances."""
    return FakeEncoder


class FakeClock:
    """Manually advanced monotonic clock for estimator tests."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def fake_clock():
    return FakeClock()

# ============================================================================
# Markers
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )

# ============================================================================
# Pipeline Fixtures
# ============================================================================

class Pipeline:
    """Real runner, quarantine, estimator and orchestrator wired to fake encoders."""

    def __init__(self, config: AppConfig, base_dir: Path, image_encoder, video_encoder):
        from mbc.pipeline.job import TranscodeJobRunner
        from mbc.pipeline.orchestrator import Orchestrator
        from mbc.pipeline.progress import ProgressEstimator
        from mbc.pipeline.quarantine import QuarantineManager
        from mbc.pipeline.stats import StatisticsAggregator

        self.bus = EventBus()
        self.stats = StatisticsAggregator(self.bus)
        self.quarantine = QuarantineManager(config, base_dir)
        self.progress = ProgressEstimator(alpha=config.eta.alpha)
        self.runner = TranscodeJobRunner(
            config=config,
            event_bus=self.bus,
            image_encoder=image_encoder,
            video_encoder=video_encoder,
            quarantine=self.quarantine,
            progress=self.progress,
        )
        self.orchestrator = Orchestrator(
            config=config,
            event_bus=self.bus,
            job_runner=self.runner,
            quarantine=self.quarantine,
            progress=self.progress,
        )


@pytest.fixture
def build_pipeline(fake_encoder):
    """Factory: build_pipeline(config, base_dir, image_encoder=None, video_encoder=None)."""
    def _build(config, base_dir, image_encoder=None, video_encoder=None):
        return Pipeline(config, base_dir, image_encoder or fake_encoder(), video_encoder or fake_encoder())
    return _build
