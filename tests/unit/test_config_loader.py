# tests/unit/test_config_loader.py

"""Tests for loading and validating testmgr.toml."""

import textwrap
from pathlib import Path

import pytest

from testmgr.config import TestmgrConfig, config_from_mapping, load_config
from testmgr.exceptions import ConfigurationError


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    return tmp_path / "testmgr.toml"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("TESTMGR_LOG_LEVEL", raising=False)
    monkeypatch.delenv("TESTMGR_PYTHON", raising=False)


def test_missing_file_uses_defaults(config_file: Path):
    config = load_config(config_file)
    assert config == TestmgrConfig()
    assert config.runner.channel == "pty"
    assert config.watch.debounce_ms == 1000
    assert config.history.max_sessions == 50


def test_none_path_uses_defaults():
    assert load_config(None) == TestmgrConfig()


def test_full_file(config_file: Path):
    config_file.write_text(
        textwrap.dedent(
            """\
            [global]
            log_level = "DEBUG"

            [runner]
            interpreter = ".venv/bin/python"
            arguments = "--keepdb"
            active_profile = "Fast"
            channel = "pipe"

            [runner.profiles]
            Fast = ["--parallel", "auto"]

            [runner.environment]
            DJANGO_SETTINGS_MODULE = "site.settings.test"

            [discovery]
            file_pattern = "**/tests/*.py"
            base_classes = ["APITestCase"]

            [watch]
            enabled = true
            debounce_ms = 250
            run_affected_only = false

            [history]
            max_sessions = 10
            storage_path = "var/history.json"
            """
        )
    )

    config = load_config(config_file)

    assert config.global_config.numeric_log_level == 10
    assert config.runner.interpreter == ".venv/bin/python"
    assert config.runner.arguments == ("--keepdb",)
    assert config.runner.profiles == {"Fast": ("--parallel", "auto")}
    assert config.runner.environment == {"DJANGO_SETTINGS_MODULE": "site.settings.test"}
    assert config.discovery.base_classes == ("APITestCase",)
    assert config.watch.enabled is True
    assert config.watch.debounce_ms == 250
    assert config.history.storage_path == Path("var/history.json")


def test_invalid_toml(config_file: Path):
    config_file.write_text("[runner\ninterpreter = ")
    with pytest.raises(ConfigurationError, match="Invalid TOML") as excinfo:
        load_config(config_file)
    assert excinfo.value.path == str(config_file)


@pytest.mark.parametrize(
    "raw, message",
    [
        ({"runner": {"channel": "serial"}}, "Invalid channel"),
        ({"watch": {"debounce_ms": 0}}, "must be positive integer"),
        ({"global": {"log_level": "LOUD"}}, "Invalid log_level"),
        ({"runner": {"profiles": {"Fast": [1, 2]}}}, "must map to a list of strings"),
        ({"runner": "python3"}, "must be a table"),
    ],
)
def test_invalid_values(raw, message):
    with pytest.raises(ConfigurationError, match=message):
        config_from_mapping(raw)


def test_unknown_keys_and_sections_are_ignored():
    config = config_from_mapping({"runner": {"colour": "blue"}, "plugins": {}})
    assert config.runner == TestmgrConfig().runner


def test_environment_overrides_file(config_file: Path, monkeypatch):
    config_file.write_text('[runner]\ninterpreter = "python3.11"\n')
    monkeypatch.setenv("TESTMGR_PYTHON", "/opt/py/bin/python")
    monkeypatch.setenv("TESTMGR_LOG_LEVEL", "WARNING")

    config = load_config(config_file)

    assert config.runner.interpreter == "/opt/py/bin/python"
    assert config.global_config.log_level == "WARNING"
