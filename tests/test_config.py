"""Tests for configuration loading and the option store."""

from pathlib import Path

import pytest

import brouillon.config as config_module
from brouillon.config import (
    ComposeOptions,
    QuadOption,
    init_config,
    load_config,
    query_quadoption,
    set_config_value,
)
from brouillon.config.paths import expand_path, pretty_path


@pytest.fixture
def config_file(tmp_path: Path, monkeypatch) -> Path:
    """Point the config module at a file under tmp_path."""
    path = tmp_path / "brouillon" / "config.toml"
    monkeypatch.setattr(config_module, "CONFIG_FILE", path)
    monkeypatch.setattr("brouillon.config.paths.CONFIG_DIR", path.parent)
    monkeypatch.setattr(config_module, "_cached_config", None)
    return path


class TestLoadConfig:
    """Tests for reading config.toml."""

    def test_missing_file(self, config_file: Path):
        assert load_config() == {}

    def test_init_writes_template(self, config_file: Path):
        assert init_config()
        assert not init_config()

        config = load_config(force_reload=True)
        assert config["compose"]["postpone"] == "ask-yes"

    def test_set_value_converts_types(self, config_file: Path):
        set_config_value("compose.autocrypt", "yes")
        set_config_value("compose.copy", "ASK-NO")
        set_config_value("compose.folder", "~/Maildir")

        compose = load_config(force_reload=True)["compose"]
        assert compose["autocrypt"] is True
        assert compose["copy"] == "ask-no"
        assert compose["folder"] == "~/Maildir"

    @pytest.mark.parametrize(
        "key,value", [("compose.autocrypt", "maybe"), ("compose.postpone", "sometimes")]
    )
    def test_set_invalid_value(self, config_file: Path, key, value):
        with pytest.raises(ValueError):
            set_config_value(key, value)


class TestComposeOptions:
    """Tests for option lookups."""

    def test_defaults(self):
        options = ComposeOptions({})

        assert options.get_bool("compose_show_user_headers")
        assert options.get_quad("copy") is QuadOption.YES
        assert options.get_str("postpone") == "ask-yes"

    def test_configured_values(self):
        options = ComposeOptions({"compose": {"autocrypt": True, "postpone": "no"}})

        assert options.get_bool("autocrypt")
        assert options.get_quad("postpone") is QuadOption.NO

    def test_reads_live_config(self):
        """A loader is consulted on every lookup."""
        config = {"compose": {"autocrypt": False}}
        options = ComposeOptions(lambda: config)

        config["compose"]["autocrypt"] = True

        assert options.get_bool("autocrypt")

    def test_unknown_option(self):
        with pytest.raises(KeyError):
            ComposeOptions({}).get_bool("no_such_option")

    def test_editor_fallback(self, monkeypatch):
        monkeypatch.delenv("VISUAL", raising=False)
        monkeypatch.setenv("EDITOR", "nano")

        assert ComposeOptions({}).editor() == "nano"
        assert ComposeOptions({"compose": {"editor": "emacs"}}).editor() == "emacs"


class TestQuadOption:
    """Tests for resolving confirmation options."""

    def test_fixed_answers_do_not_ask(self, prompter):
        assert query_quadoption(QuadOption.YES, "Sure?", prompter) is QuadOption.YES
        assert query_quadoption(QuadOption.NO, "Sure?", prompter) is QuadOption.NO
        assert prompter.prompts == []

    def test_ask(self, prompter):
        prompter.answers = [QuadOption.ABORT]

        assert query_quadoption(QuadOption.ASK_NO, "Sure?", prompter) is QuadOption.ABORT
        assert prompter.prompts == ["Sure?"]

    def test_abort_is_not_configurable(self):
        with pytest.raises(ValueError):
            QuadOption.parse("abort")


class TestPaths:
    """Tests for mailbox path display."""

    def test_pretty_path(self):
        home = str(Path.home())

        assert pretty_path(home + "/Mail/Sent") == "~/Mail/Sent"
        assert pretty_path(home) == "~"
        assert pretty_path("/var/mail") == "/var/mail"

    def test_expand_path(self):
        assert expand_path("~/Mail") == Path.home() / "Mail"
