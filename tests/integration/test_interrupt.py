import io
import threading
import time
import pytest
from mbc.config.models import AppConfig
from mbc.domain.models import CandidateSet, JobStatus
from mbc.ui.reporter import ConsoleReporter
from rich.console import Console

pytestmark = pytest.mark.integration


def _wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


def test_interrupt_lets_running_jobs_finish(media_dir, build_pipeline, fake_encoder):
    paths = []
    for i in range(1, 11):
        p = media_dir / f"img{i:02d}.jpg"
        p.write_bytes(b"x" * 10)
        paths.append(p)

    release = threading.Event()

    def gate(job):
        # First two finish at once, the rest block until released
        if job.sequence_index > 2:
            release.wait(timeout=5.0)

    encoder = fake_encoder(gate=gate)
    config = AppConfig(general={"jobs": 4})
    pipeline = build_pipeline(config, media_dir, image_encoder=encoder)
    outcome = {}

    worker = threading.Thread(
        target=lambda: outcome.setdefault("result", pipeline.orchestrator.run(CandidateSet.from_paths(paths, [])))
    )
    worker.start()

    # 2 quick jobs done, 4 blocked in flight
    assert _wait_until(lambda: len(encoder.calls) == 6)
    pipeline.orchestrator.request_interrupt()
    release.set()
    worker.join(timeout=10.0)

    assert not worker.is_alive()
    result = outcome["result"]
    assert result.interrupted is True
    jobs = pipeline.orchestrator.jobs
    assert len(jobs) == 6
    assert all(job.status == JobStatus.DONE for job in jobs)
    assert len(encoder.calls) == 6
    untouched = [p for p in paths if p.exists()]
    assert [p.name for p in untouched] == [f"img{i:02d}.jpg" for i in range(7, 11)]
    assert not any((media_dir / f"img{i:02d}_compressed.jpg").exists() for i in range(7, 11))
    assert len(list(result.quarantine_dir.iterdir())) == 6


def test_interrupt_before_video_phase_skips_videos(dummy_media_files, media_dir, build_pipeline, fake_encoder):
    video_encoder = fake_encoder()
    config = AppConfig(general={"jobs": 1})
    pipeline = build_pipeline(config, media_dir, video_encoder=video_encoder)

    def interrupt_after_images(job):
        pipeline.orchestrator.request_interrupt()

    pipeline.runner.image_encoder = fake_encoder(gate=interrupt_after_images)

    result = pipeline.orchestrator.run(CandidateSet.from_paths(
        [dummy_media_files["a.jpg"], dummy_media_files["b.png"]], [dummy_media_files["clip.mov"]]
    ))

    assert result.interrupted is True
    assert video_encoder.calls == []
    assert dummy_media_files["clip.mov"].exists()
    assert [job.status for job in pipeline.orchestrator.jobs] == [JobStatus.DONE]


def test_interrupt_while_reporter_is_printing_does_not_deadlock(dummy_media_files, media_dir, build_pipeline):
    config = AppConfig(general={"jobs": 1})
    pipeline = build_pipeline(config, media_dir)

    class InterruptingStream(io.StringIO):
        """Raises the interrupt from inside a console write, like a signal would."""
        fired = False

        def write(self, text):
            if not self.fired and "--- Phase" in text:
                self.fired = True
                pipeline.orchestrator.request_interrupt()
            return super().write(text)

    output = InterruptingStream()
    console = Console(file=output, width=300, soft_wrap=True, color_system=None)
    ConsoleReporter(pipeline.bus, config.ui, console=console)
    outcome = {}

    worker = threading.Thread(
        target=lambda: outcome.setdefault("result", pipeline.orchestrator.run(CandidateSet.from_paths(
            [dummy_media_files["a.jpg"], dummy_media_files["b.png"]], [dummy_media_files["clip.mov"]]
        )))
    )
    worker.start()
    worker.join(timeout=10.0)

    assert not worker.is_alive()
    assert outcome["result"].interrupted is True
    assert output.getvalue().count("Interrupt received") == 1
    assert pipeline.orchestrator.jobs == []
    assert all(p.exists() for p in dummy_media_files.values())
