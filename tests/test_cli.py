"""Tests for the brouillon CLI.

Uses typer.testing.CliRunner; operations and answers are typed as input.
"""

from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from brouillon import __version__
from brouillon.cli.main import app
from brouillon.config import ComposeOptions
from brouillon.storage.maildir import is_maildir


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI runner for testing."""
    return CliRunner()


@pytest.fixture
def options(tmp_path: Path):
    """Compose options that keep drafts under tmp_path."""
    options = ComposeOptions({"compose": {"postponed": str(tmp_path / "Drafts")}})
    with patch("brouillon.cli.commands.compose.ComposeOptions", return_value=options):
        yield options


def compose(runner: CliRunner, *args: str, input: str):
    return runner.invoke(
        app,
        ["compose", "--from", "me@example.com", "--columns", "80", *args],
        input=input,
    )


class TestVersion:
    def test_version(self, runner: CliRunner):
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert f"brouillon version {__version__}" in result.output


class TestCompose:
    """Tests for the compose command."""

    def test_send_to_file(self, runner: CliRunner, options, tmp_path: Path):
        """Sending writes the assembled message to --output."""
        body = tmp_path / "draft.txt"
        body.write_text("See you at noon.\n")
        output = tmp_path / "out.eml"

        result = compose(
            runner,
            "--to", "bob@example.com",
            "--subject", "Lunch",
            "--body-file", str(body),
            "--output", str(output),
            input="send\n",
        )

        assert result.exit_code == 0, result.output
        data = output.read_bytes()
        assert b"Subject: Lunch" in data
        assert b"To: bob@example.com" in data
        assert b"See you at noon." in data

    def test_screen_shows_envelope(self, runner: CliRunner, options, tmp_path: Path):
        result = compose(
            runner,
            "--to", "bob@example.com",
            "--output", str(tmp_path / "out.eml"),
            input="send\n",
        )

        assert "To: bob@example.com" in result.output
        assert "-- Attachments" in result.output

    def test_edit_subject_then_send(self, runner: CliRunner, options, tmp_path: Path):
        output = tmp_path / "out.eml"

        result = compose(
            runner,
            "--to", "bob@example.com",
            "--output", str(output),
            input="edit-subject\nPlans\nsend\n",
        )

        assert result.exit_code == 0, result.output
        assert b"Subject: Plans" in output.read_bytes()

    def test_attach_option(self, runner: CliRunner, options, tmp_path: Path):
        attachment = tmp_path / "notes.txt"
        attachment.write_text("remember the milk\n")
        output = tmp_path / "out.eml"

        result = compose(
            runner,
            "--to", "bob@example.com",
            "--attach", str(attachment),
            "--output", str(output),
            input="send\n",
        )

        assert result.exit_code == 0, result.output
        data = output.read_bytes()
        assert b"multipart/mixed" in data
        assert b'filename="notes.txt"' in data
        assert attachment.exists()

    def test_unknown_operation(self, runner: CliRunner, options, tmp_path: Path):
        result = compose(
            runner,
            "--output", str(tmp_path / "out.eml"),
            input="frobnicate\nsend\n",
        )

        assert result.exit_code == 0
        assert "Unknown operation: frobnicate" in result.output

    def test_discard(self, runner: CliRunner, options, tmp_path: Path):
        """Declining to postpone discards the message with status 1."""
        result = compose(runner, "--to", "bob@example.com", input="exit\nno\n")

        assert result.exit_code == 1
        assert "Mail not sent." in result.output

    def test_postpone(self, runner: CliRunner, options, tmp_path: Path):
        drafts = tmp_path / "Drafts"

        result = compose(runner, "--to", "bob@example.com", input="postpone\n")

        assert result.exit_code == 0, result.output
        assert "Message postponed to" in result.output
        assert is_maildir(drafts)
        [draft] = list((drafts / "cur").iterdir())
        assert draft.name.endswith(":2,DS")

    def test_fcc_copy(self, runner: CliRunner, options, tmp_path: Path):
        sent = tmp_path / "Sent"

        result = compose(
            runner,
            "--to", "bob@example.com",
            "--fcc", str(sent),
            "--output", str(tmp_path / "out.eml"),
            input="send\n",
        )

        assert result.exit_code == 0, result.output
        assert len(list((sent / "cur").iterdir())) == 1

    def test_bad_idn(self, runner: CliRunner, options):
        result = compose(runner, "--to", "x@" + "ü" * 70 + ".example", input="")

        assert result.exit_code == 1
        assert "Bad IDN" in result.output

    def test_missing_attachment(self, runner: CliRunner, options, tmp_path: Path):
        result = compose(runner, "--attach", str(tmp_path / "missing.pdf"), input="")

        assert result.exit_code == 1
        assert "Unable to attach" in result.output


class TestConfigCommand:
    """Tests for the config command."""

    def test_show_defaults(self, runner: CliRunner):
        with patch("brouillon.cli.commands.config.load_config", return_value={}):
            result = runner.invoke(app, ["config", "show", "--defaults"])

        assert result.exit_code == 0
        assert "postpone = ask-yes  (default)" in result.output

    def test_show_empty(self, runner: CliRunner):
        with patch("brouillon.cli.commands.config.load_config", return_value={}):
            result = runner.invoke(app, ["config", "show"])

        assert "No configuration found." in result.output

    def test_set_invalid(self, runner: CliRunner):
        with patch(
            "brouillon.cli.commands.config.set_config_value",
            side_effect=ValueError("Invalid quad option: 'sometimes'"),
        ):
            result = runner.invoke(app, ["config", "set", "compose.postpone", "sometimes"])

        assert result.exit_code == 1
        assert "Invalid value" in result.output
