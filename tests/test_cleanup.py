import os
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from trail_timelapse.cleanup import cleanup, sweep_stale_scratch  # noqa: E402


def test_cleanup_removes_frames_and_output(tmp_path):
    frames = [tmp_path / f"frame{i}.png" for i in range(3)]
    for frame in frames:
        frame.write_bytes(b"png")
    output = tmp_path / "out.gif"
    output.write_bytes(b"gif")

    assert cleanup(frames, output) == 4
    assert list(tmp_path.iterdir()) == []


def test_cleanup_is_idempotent_and_ignores_missing_entries(tmp_path):
    existing = tmp_path / "frame.png"
    existing.write_bytes(b"png")

    assert cleanup([None, existing, tmp_path / "never-written.png"], None) == 1
    assert cleanup([existing], tmp_path / "gone.gif") == 0
    assert cleanup(None, None) == 0


def test_sweep_removes_files_older_than_max_age(tmp_path):
    scratch = tmp_path / "scratch"
    scratch.mkdir()
    now = time.time()
    stale = scratch / "orphan_regen.gif"
    recent = scratch / "in_progress.png"
    stale.write_bytes(b"old")
    recent.write_bytes(b"new")
    os.utime(stale, (now - 3 * 3600, now - 3 * 3600))
    os.utime(recent, (now - 60, now - 60))
    (scratch / "nested").mkdir()

    removed = sweep_stale_scratch(scratch, max_age_seconds=3600, now=now)

    assert removed == 1
    assert sorted(entry.name for entry in scratch.iterdir()) == ["in_progress.png", "nested"]


def test_sweep_of_missing_directory_is_a_no_op(tmp_path):
    assert sweep_stale_scratch(tmp_path / "absent", max_age_seconds=60) == 0
