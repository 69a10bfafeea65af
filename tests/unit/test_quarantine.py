import os
import shutil
import pytest
from datetime import date
from pathlib import Path
from unittest.mock import patch
from mbc.config.models import AppConfig
from mbc.domain.models import Candidate, MediaKind
from mbc.pipeline.quarantine import (
    QuarantineError, QuarantineManager, finalize_quarantine, quarantine_dir_name,
    resolve_finalize_target,
)

TODAY = date(2024, 5, 17)


def _candidates(*paths):
    return [Candidate(path=p, kind=MediaKind.IMAGE) for p in paths]


def test_planned_bytes_counts_only_work_to_do(media_dir):
    a = media_dir / "a.jpg"
    b = media_dir / "b.jpg"
    done = media_dir / "c.jpg"
    a.write_bytes(b"x" * 1000)
    b.write_bytes(b"x" * 2000)
    done.write_bytes(b"x" * 500)
    (media_dir / "c_compressed.jpg").write_bytes(b"y")
    missing = media_dir / "gone.jpg"

    manager = QuarantineManager(AppConfig(), media_dir)

    assert manager.planned_process_bytes(_candidates(a, b, done, missing)) == 3000


def test_planned_bytes_with_force_includes_existing_outputs(media_dir):
    a = media_dir / "a.jpg"
    a.write_bytes(b"x" * 1000)
    (media_dir / "a_compressed.jpg").write_bytes(b"y")

    manager = QuarantineManager(AppConfig(general={"force": True}), media_dir)

    assert manager.planned_process_bytes(_candidates(a)) == 1000


def test_prepare_creates_named_directory(media_dir):
    a = media_dir / "a.jpg"
    b = media_dir / "b.jpg"
    a.write_bytes(b"x" * 1000)
    b.write_bytes(b"x" * 2000)

    manager = QuarantineManager(AppConfig(), media_dir)
    path = manager.prepare(_candidates(a, b), today=TODAY)

    assert path == media_dir / "to-be-deleted-20240517-3000"
    assert path.is_dir()
    assert manager.quarantine_dir == path
    assert manager.planned_bytes == 3000


def test_prepare_is_additive(media_dir):
    a = media_dir / "a.jpg"
    a.write_bytes(b"x" * 10)
    existing = media_dir / quarantine_dir_name("to-be-deleted", TODAY, 10)
    existing.mkdir()
    (existing / "earlier.jpg").write_bytes(b"old")

    path = QuarantineManager(AppConfig(), media_dir).prepare(_candidates(a), today=TODAY)

    assert path == existing
    assert (existing / "earlier.jpg").exists()


@pytest.mark.parametrize("general", [{"dry_run": True}, {"delete_originals": True}])
def test_prepare_skipped_for_dry_run_and_delete(media_dir, general):
    a = media_dir / "a.jpg"
    a.write_bytes(b"x" * 10)

    path = QuarantineManager(AppConfig(general=general), media_dir).prepare(_candidates(a), today=TODAY)

    assert path is None
    assert list(media_dir.iterdir()) == [a]


def test_prepare_skipped_when_nothing_to_do(media_dir):
    assert QuarantineManager(AppConfig(), media_dir).prepare([], today=TODAY) is None


def test_prepare_degrades_on_oserror(media_dir):
    a = media_dir / "a.jpg"
    a.write_bytes(b"x" * 10)
    manager = QuarantineManager(AppConfig(), media_dir)

    with patch.object(Path, "mkdir", side_effect=PermissionError("read-only")):
        assert manager.prepare(_candidates(a), today=TODAY) is None

    assert manager.quarantine_dir is None
    assert manager.dispose_original(a).note == "original retained"
    assert a.exists()


def test_dispose_moves_into_quarantine_keeping_relative_path(media_dir):
    sub = media_dir / "trip"
    sub.mkdir()
    src = sub / "a.jpg"
    src.write_bytes(b"x" * 10)
    manager = QuarantineManager(AppConfig(), media_dir)
    qdir = manager.prepare(_candidates(src), today=TODAY)

    result = manager.dispose_original(src)

    assert result.error is None
    assert result.note == f"moved original -> {qdir.name}"
    assert not src.exists()
    assert (qdir / "trip" / "a.jpg").read_bytes() == b"x" * 10


def test_dispose_renames_on_collision(media_dir):
    src = media_dir / "a.jpg"
    src.write_bytes(b"new")
    manager = QuarantineManager(AppConfig(), media_dir)
    qdir = manager.prepare(_candidates(src), today=TODAY)
    (qdir / "a.jpg").write_bytes(b"old")

    manager.dispose_original(src)

    assert (qdir / "a.jpg").read_bytes() == b"old"
    assert (qdir / "a_dup.jpg").read_bytes() == b"new"


def test_dispose_move_error_is_annotated(media_dir):
    src = media_dir / "a.jpg"
    src.write_bytes(b"x")
    manager = QuarantineManager(AppConfig(), media_dir)
    manager.prepare(_candidates(src), today=TODAY)

    with patch("shutil.move", side_effect=OSError("disk full")):
        result = manager.dispose_original(src)

    assert result.note.startswith("MOVE-ERROR(")
    assert "disk full" in result.note
    assert src.exists()


def test_dispose_delete_policy(media_dir):
    src = media_dir / "a.jpg"
    src.write_bytes(b"x")
    manager = QuarantineManager(AppConfig(general={"delete_originals": True}), media_dir)

    assert manager.dispose_original(src).note == "deleted original"
    assert not src.exists()


def test_occupancy(media_dir):
    srcs = []
    for name, size in (("a.jpg", 100), ("b.jpg", 250)):
        p = media_dir / name
        p.write_bytes(b"x" * size)
        srcs.append(p)
    manager = QuarantineManager(AppConfig(), media_dir)
    assert manager.occupancy() == (0, 0)
    manager.prepare(_candidates(*srcs), today=TODAY)
    for p in srcs:
        manager.dispose_original(p)

    assert manager.occupancy() == (2, 350)


# --- finalize -------------------------------------------------------------

def test_finalize_deletes_quarantine_dir(media_dir):
    qdir = media_dir / "to-be-deleted-20240517-3000"
    qdir.mkdir()
    (qdir / "a.jpg").write_bytes(b"x")

    removed = finalize_quarantine(qdir.name, media_dir)

    assert removed == qdir.resolve()
    assert not qdir.exists()


def test_finalize_accepts_custom_prefix(media_dir):
    qdir = media_dir / "trash-20240517-1"
    qdir.mkdir()

    finalize_quarantine(qdir.name, media_dir, prefix="trash")

    assert not qdir.exists()


@pytest.mark.parametrize("name", [
    "",
    "../to-be-deleted-20240517-1",
    "to-be-deleted-20240517-1/..",
    "to-be-deleted-x..y",
    "to-be-deleted 1",
    "photos",
    "to-be-deletedX",
])
def test_finalize_rejects_unsafe_names(media_dir, name):
    with pytest.raises(QuarantineError):
        finalize_quarantine(name, media_dir)


def test_finalize_rejects_missing_dir(media_dir):
    with pytest.raises(QuarantineError):
        finalize_quarantine("to-be-deleted-20240517-1", media_dir)


def test_finalize_rejects_regular_file(media_dir):
    (media_dir / "to-be-deleted-20240517-1").write_text("not a dir")
    with pytest.raises(QuarantineError):
        finalize_quarantine("to-be-deleted-20240517-1", media_dir)


def test_finalize_rejects_symlink(media_dir, tmp_path):
    outside = tmp_path / "precious"
    outside.mkdir()
    (outside / "keep.jpg").write_bytes(b"x")
    link = media_dir / "to-be-deleted-20240517-1"
    os.symlink(outside, link)

    with pytest.raises(QuarantineError):
        finalize_quarantine(link.name, media_dir)

    assert (outside / "keep.jpg").exists()


def test_resolve_finalize_target_does_not_delete(media_dir):
    qdir = media_dir / "to-be-deleted-20240517-1"
    qdir.mkdir()

    assert resolve_finalize_target(qdir.name, media_dir) == qdir.resolve()
    assert qdir.exists()
