"""
Unit tests for test file handling, run_mimic() and the command line.
"""

import pytest

from fakes import FakeBrain, FakePage

from mimic.brain.decisions import ModelBrain
from mimic.cli import build_parser, main, show_file
from mimic.runner import TestBlock, create_brain, load_test_file, run_mimic, split_tests


LOGIN_PLANS = {
    "open the login page": {"kind": "navigation", "type": "openPage", "url": "/login"},
    "click Login": {"kind": "click", "target": "Login"},
}


class TestSplitTests:
    """Test splitting a file into named tests."""

    def test_single_unnamed_test(self):
        blocks = split_tests("open the login page\nclick Login\n", default_name="login")

        assert blocks == [TestBlock(name="login", text="open the login page\nclick Login")]
        assert blocks[0].steps == ["open the login page", "click Login"]

    def test_named_tests_and_comments(self):
        text = (
            "# shop smoke tests\n"
            "test: Login works\n"
            "open the login page\n"
            "click Login\n"
            "\n"
            "TEST: Cart\n"
            "# not a step\n"
            "click the cart icon\n"
        )

        blocks = split_tests(text)

        assert [b.name for b in blocks] == ["Login works", "Cart"]
        assert blocks[1].steps == ["click the cart icon"]

    def test_empty_blocks_dropped(self):
        assert [b.name for b in split_tests("test: empty\n\ntest: real\nclick Login")] == ["real"]

    def test_load_uses_file_stem(self, test_file):
        blocks = load_test_file(test_file)

        assert [b.name for b in blocks] == ["login"]


class TestRunMimic:
    """Test the run_mimic() entry point."""

    @pytest.mark.asyncio
    async def test_run_and_replay(self, test_file, login_elements, fast_config):
        """Test a run stores its snapshot next to the test file and the next run replays it."""
        page = FakePage(login_elements, title="Swag Labs")
        text = test_file.read_text(encoding="utf-8")

        first = await run_mimic(
            page, text, test_file_path=test_file, brain=FakeBrain(LOGIN_PLANS),
            config=fast_config, test_name="login", base_url="https://shop.test"
        )

        assert first.saved is True
        assert page.url == "https://shop.test/login"
        assert (test_file.parent / "__mimic__" / "login.mimic.json").exists()

        second = await run_mimic(
            FakePage(login_elements), text, test_file_path=test_file, brain=FakeBrain({}),
            config=fast_config, test_name="login", base_url="https://shop.test"
        )

        assert second.snapshot_used is True
        assert second.model_calls == 0

    @pytest.mark.asyncio
    async def test_without_test_file(self, login_elements, fast_config, tmp_path):
        """Test no snapshot is written when no test file is given."""
        result = await run_mimic(
            FakePage(login_elements), "click Login", brain=FakeBrain(LOGIN_PLANS), config=fast_config
        )

        assert result.saved is False
        assert list(tmp_path.iterdir()) == []

    def test_create_brain(self, fast_config):
        brain = create_brain(fast_config)

        assert isinstance(brain, ModelBrain)
        assert brain.gateway.provider.value == "anthropic"


class TestCli:
    """Test argument parsing and the show command."""

    def test_run_arguments(self):
        args = build_parser().parse_args(["-v", "run", "login.mimic.txt", "--troubleshoot", "--base-url", "https://x"])

        assert args.command == "run"
        assert args.verbose is True
        assert args.troubleshoot is True
        assert args.headed is False
        assert args.base_url == "https://x"
        assert args.test_file.name == "login.mimic.txt"

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_missing_file(self, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)

        assert main(["show", str(tmp_path / "missing.txt")]) == 2
        assert "Test file not found" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_show_without_snapshots(self, test_file, fast_config, capsys):
        await show_file(test_file, fast_config)

        assert "No snapshots for" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_show_lists_steps(self, test_file, login_elements, fast_config, capsys):
        await run_mimic(
            FakePage(login_elements), "open the login page\nclick Login", test_file_path=test_file,
            brain=FakeBrain(LOGIN_PLANS), config=fast_config, test_name="login"
        )
        capsys.readouterr()

        await show_file(test_file, fast_config)

        out = capsys.readouterr().out
        assert out.startswith("login [")
        assert "  1. [navigation] open the login page" in out
        assert "  2. [click] click Login" in out
