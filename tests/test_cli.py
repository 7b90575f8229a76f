import logging
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from trail_timelapse import cli  # noqa: E402
from trail_timelapse.errors import NoFramesFoundError  # noqa: E402
from trail_timelapse.models import GenerationResult, RegenerationOutcome  # noqa: E402


class StubService:
    def __init__(self, tmp_path: Path):
        self.tmp_path = tmp_path
        self.logger = logging.getLogger("cli-tests")
        self.cleaned = []
        self.generate_error = None

    def regenerate(self, organization_id, trail_id):
        return RegenerationOutcome.PUBLISHED if trail_id == "river-loop" else RegenerationOutcome.SKIPPED_EMPTY

    def generate_time_lapse(self, organization_id, trail_ids=None):
        if self.generate_error is not None:
            raise self.generate_error
        output = self.tmp_path / "scratch.gif"
        output.write_bytes(b"GIF89a-generated")
        return GenerationResult(local_path=output, frame_count=2, scratch_paths=())

    def get_cached_or_generate(self, organization_id, trail_id):
        output = self.tmp_path / "cached.gif"
        output.write_bytes(b"GIF89a-cached")
        return output

    def cleanup(self, scratch_paths, output_path):
        self.cleaned.append(output_path)
        Path(output_path).unlink(missing_ok=True)
        return 1

    def sweep_scratch(self):
        return 3


def run_cli(tmp_path, argv, service=None):
    service = service or StubService(tmp_path)
    with patch.object(cli.TimelapseService, "from_config", return_value=service):
        with patch.object(cli, "configure_logging", return_value=logging.getLogger("cli-tests")):
            code = cli.main(argv)
    return code, service


def test_parser_requires_a_command():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])


def test_generate_defaults_to_all_trails():
    args = cli.build_parser().parse_args(["generate", "parks", "--output", "out.gif"])
    assert args.trails == []
    assert args.handler is cli.cmd_generate


def test_regenerate_exit_code_follows_outcome(tmp_path):
    assert run_cli(tmp_path, ["regenerate", "parks", "river-loop"])[0] == 0
    assert run_cli(tmp_path, ["regenerate", "parks", "empty"])[0] == 1


def test_generate_copies_output_and_cleans_scratch(tmp_path):
    destination = tmp_path / "exports" / "parks.gif"

    code, service = run_cli(tmp_path, ["generate", "parks", "north", "south", "--output", str(destination)])

    assert code == 0
    assert destination.read_bytes() == b"GIF89a-generated"
    assert service.cleaned == [tmp_path / "scratch.gif"]
    assert not (tmp_path / "scratch.gif").exists()


def test_fetch_cached_copies_output(tmp_path):
    destination = tmp_path / "loop.gif"

    code, _ = run_cli(tmp_path, ["fetch-cached", "parks", "river-loop", "--output", str(destination)])

    assert code == 0
    assert destination.read_bytes() == b"GIF89a-cached"


def test_timelapse_errors_map_to_exit_code_one(tmp_path):
    service = StubService(tmp_path)
    service.generate_error = NoFramesFoundError("nothing to animate")

    code, _ = run_cli(tmp_path, ["generate", "parks", "--output", str(tmp_path / "x.gif")], service)

    assert code == 1


def test_sweep_command(tmp_path):
    assert run_cli(tmp_path, ["sweep"])[0] == 0
