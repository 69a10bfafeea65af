import pytest
from pathlib import Path
from unittest.mock import patch
from mbc.infrastructure.housekeeping import HousekeepingService

def test_housekeeping_cleanup_partial_outputs(tmp_path):
    (tmp_path / "a_compressed.jpg.tmp").write_text("data")
    (tmp_path / "v_compressed.mp4.tmp").write_text("data")
    (tmp_path / "keep.tmp").write_text("data")
    (tmp_path / "a.jpg").write_text("data")

    service = HousekeepingService()
    removed = service.cleanup_partial_outputs(tmp_path)

    assert removed == 2
    assert not (tmp_path / "a_compressed.jpg.tmp").exists()
    assert not (tmp_path / "v_compressed.mp4.tmp").exists()
    assert (tmp_path / "keep.tmp").exists()
    assert (tmp_path / "a.jpg").exists()

def test_housekeeping_recursive(tmp_path):
    (tmp_path / "subdir").mkdir()
    nested = tmp_path / "subdir" / "b_compressed.jpg.tmp"
    nested.write_text("data")

    service = HousekeepingService()
    assert service.cleanup_partial_outputs(tmp_path) == 0
    assert nested.exists()

    assert service.cleanup_partial_outputs(tmp_path, recursive=True) == 1
    assert not nested.exists()

def test_housekeeping_handles_oserror(tmp_path):
    f = tmp_path / "protected_compressed.mp4.tmp"
    f.write_text("data")

    service = HousekeepingService()
    with patch.object(Path, 'unlink', side_effect=OSError("Permission denied")):
        # Should not raise exception
        assert service.cleanup_partial_outputs(tmp_path) == 0
        assert f.exists()
