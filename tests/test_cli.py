"""Tests for the command line entry point."""

import argparse
from pathlib import Path

import pytest
import yaml

from mqtt2cmd import __main__ as cli
from mqtt2cmd.config import ENV_MAPPING, AppConfig


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for env_var in ENV_MAPPING:
        monkeypatch.delenv(env_var, raising=False)


def test_generate_config(capsys):
    """Test --generate-config prints a loadable configuration."""
    assert cli.main(["--generate-config"]) == 0

    data = yaml.safe_load(capsys.readouterr().out)
    assert data["switches"][0]["name"] == "lamp"


def test_env_help(capsys):
    assert cli.main(["--env-help"]) == 0
    assert "MQTT_HOST" in capsys.readouterr().out


def test_no_config(monkeypatch, capsys):
    """Test a missing configuration is reported."""
    monkeypatch.setattr(cli, "DEFAULT_CONFIG_PATHS", [])

    assert cli.main([]) == 1
    assert "No configuration found" in capsys.readouterr().err


def test_missing_config_file(tmp_path, capsys):
    assert cli.main(["-c", str(tmp_path / "nope.yaml")]) == 1
    assert "not found" in capsys.readouterr().err


def test_invalid_config_file(tmp_path, capsys):
    path = tmp_path / "config.yaml"
    path.write_text("switches:\n  - {name: a/b, turn_on: x, turn_off: y, get_state: z}\n")

    assert cli.main(["-c", str(path)]) == 1
    assert "Invalid configuration" in capsys.readouterr().err


def test_runs_app_with_overrides(tmp_path, monkeypatch):
    """Test command line flags override the loaded configuration."""
    path = tmp_path / "config.yaml"
    path.write_text("mqtt:\n  host: file-broker\n")
    seen = []

    async def fake_run_app(config):
        seen.append(config)

    monkeypatch.setattr(cli, "run_app", fake_run_app)

    assert cli.main(["-c", str(path), "-b", "cli-broker", "-l", "/tmp/m2c.log"]) == 0
    assert seen[0].mqtt.host == "cli-broker"
    assert seen[0].logging.file == Path("/tmp/m2c.log")


def test_find_config_prefers_argument(tmp_path, monkeypatch):
    default = tmp_path / "config.yaml"
    default.write_text("")
    monkeypatch.setattr(cli, "DEFAULT_CONFIG_PATHS", [str(default)])

    assert cli.find_config("explicit.yaml") == "explicit.yaml"
    assert cli.find_config(None) == str(default)


def test_apply_overrides_without_flags():
    config = AppConfig()
    args = argparse.Namespace(mqtt_host=None, log_file=None)

    assert cli.apply_overrides(config, args) is config


def test_broker_url_override(tmp_path, monkeypatch):
    """Test -b accepts a broker URL."""
    path = tmp_path / "config.yaml"
    path.write_text("mqtt:\n  host: file-broker\n")
    seen = []

    async def fake_run_app(config):
        seen.append(config)

    monkeypatch.setattr(cli, "run_app", fake_run_app)

    assert cli.main(["-c", str(path), "-b", "tcp://cli-broker:1884"]) == 0
    assert seen[0].mqtt.host == "cli-broker"
    assert seen[0].mqtt.port == 1884


def test_bad_broker_url_override(tmp_path, capsys):
    path = tmp_path / "config.yaml"
    path.write_text("")

    assert cli.main(["-c", str(path), "-b", "ws://cli-broker"]) == 1
    assert "Invalid --mqtt-host" in capsys.readouterr().err
