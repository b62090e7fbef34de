"""Tests for the command line entry point."""

import pytest

from instagram_archiver import main as cli


@pytest.fixture(autouse=True)
def no_env_output(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("INSTAGRAM_ARCHIVER_OUTPUT", raising=False)


class TestMain:
    def test_missing_targets(self, tmp_path):
        assert cli.main(["--output", str(tmp_path)]) == 1

    def test_missing_output(self):
        assert cli.main(["@alice"]) == 1

    def test_parser_flags(self):
        args = cli.build_parser().parse_args(["-o", "out", "--update", "--no-stories", "--no-incognito", "@a", "b"])
        assert args.targets == ["@a", "b"]
        assert args.update is True
        assert args.stories is False
        assert args.incognito is False
        assert args.highlights is None

    def test_runs_archiver_with_config(self, monkeypatch: pytest.MonkeyPatch, tmp_path):
        seen = {}

        class StubArchiver:
            def __init__(self, config):
                seen["config"] = config

            async def run(self, targets):
                seen["targets"] = targets
                return 0

        monkeypatch.setattr(cli, "InstagramArchiver", StubArchiver)
        assert cli.main(["-o", str(tmp_path), "--no-highlights", "@alice"]) == 0
        assert seen["targets"] == ["@alice"]
        assert seen["config"].highlights is False
        assert seen["config"].stories is True
