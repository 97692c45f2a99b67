"""Tests for the syncd CLI."""

import json
from unittest.mock import Mock, patch

import pytest
from click.testing import CliRunner

from pysyncd.cli import main
from pysyncd.config import save_config
from pysyncd.exceptions import SyncdConnectionError
from pysyncd.utils import format_hash, hash_bytes


@pytest.fixture
def runner():
    """Create a CLI runner."""
    return CliRunner()


@pytest.fixture
def config_file(tmp_path):
    synced = tmp_path / "synced"
    synced.mkdir()
    return save_config(
        {
            "channel": "cli_channel",
            "syncedDir": str(synced),
            "backend": "memory",
            "backendOptions": {},
            "address": "cli-test-hub",
            "watch": False,
        },
        tmp_path / "config.json",
    )


class TestMainCommand:
    """Tests for the command group."""

    def test_main_help(self, runner):
        result = runner.invoke(main, ["--help"])

        assert result.exit_code == 0
        assert "init" in result.output
        assert "run" in result.output
        assert "hash" in result.output


class TestInitCommand:
    """Tests for the init command."""

    def test_init_writes_config(self, runner, tmp_path):
        path = tmp_path / "config.json"

        result = runner.invoke(
            main,
            ["--config", str(path), "init", "--channel", "abc", "--dir", "/data"],
        )

        assert result.exit_code == 0
        data = json.loads(path.read_text())
        assert data["channel"] == "abc"
        assert data["syncedDir"] == "/data"
        assert data["backend"] == "stem"

    def test_init_refuses_overwrite(self, runner, config_file):
        result = runner.invoke(main, ["--config", str(config_file), "init"])

        assert result.exit_code == 1
        assert json.loads(config_file.read_text())["channel"] == "cli_channel"

    def test_init_force(self, runner, config_file):
        result = runner.invoke(
            main, ["--config", str(config_file), "init", "--force", "--channel", "new"]
        )

        assert result.exit_code == 0
        assert json.loads(config_file.read_text())["channel"] == "new"

    def test_init_unknown_backend(self, runner, tmp_path):
        path = tmp_path / "config.json"

        result = runner.invoke(
            main, ["--config", str(path), "init", "--backend", "carrier"]
        )

        assert result.exit_code == 1
        assert not path.exists()


class TestConfigCommand:
    """Tests for the config command."""

    def test_show_config(self, runner, config_file):
        result = runner.invoke(main, ["--config", str(config_file), "config"])

        assert result.exit_code == 0
        assert "cli_channel" in result.output

    def test_show_config_json(self, runner, config_file):
        result = runner.invoke(main, ["--json", "--config", str(config_file), "config"])

        assert result.exit_code == 0
        assert json.loads(result.output)["channel"] == "cli_channel"

    def test_invalid_config(self, runner, tmp_path):
        path = tmp_path / "config.json"
        path.write_text('{"channel": "x"}')

        result = runner.invoke(main, ["--config", str(path), "config"])

        assert result.exit_code == 1


class TestRunCommand:
    """Tests for the run command."""

    def test_run_builds_daemon(self, runner, config_file, tmp_path):
        daemon = Mock()
        with patch("pysyncd.cli.SyncDaemon", return_value=daemon) as daemon_class:
            result = runner.invoke(
                main, ["--config", str(config_file), "run", "--channel", "override"]
            )

        assert result.exit_code == 0
        session = daemon_class.call_args.args[0]
        assert session.channel == "override"
        assert session.address == "cli-test-hub"
        assert session.root == (tmp_path / "synced").resolve()
        assert daemon_class.call_args.kwargs["watch"] is False
        daemon.run.assert_called_once()

    def test_run_connection_error(self, runner, config_file):
        daemon = Mock()
        daemon.run.side_effect = SyncdConnectionError("Failed to connect")
        with patch("pysyncd.cli.SyncDaemon", return_value=daemon):
            result = runner.invoke(main, ["--config", str(config_file), "run"])

        assert result.exit_code == 1

    def test_run_keyboard_interrupt(self, runner, config_file):
        daemon = Mock()
        daemon.run.side_effect = KeyboardInterrupt
        with patch("pysyncd.cli.SyncDaemon", return_value=daemon):
            result = runner.invoke(main, ["--config", str(config_file), "run"])

        assert result.exit_code == 0
        daemon.stop.assert_called_once()

    def test_run_missing_directory(self, runner, tmp_path):
        path = save_config(
            {
                "channel": "c",
                "syncedDir": str(tmp_path / "missing"),
                "backend": "memory",
                "backendOptions": {},
                "address": "x",
            },
            tmp_path / "config.json",
        )

        result = runner.invoke(main, ["--config", str(path), "run"])

        assert result.exit_code == 1


class TestHashCommand:
    """Tests for the hash command."""

    def test_hash_file(self, runner, tmp_path):
        path = tmp_path / "a.txt"
        path.write_bytes(b"hello")

        result = runner.invoke(main, ["hash", str(path)])

        assert result.exit_code == 0
        assert format_hash(hash_bytes(b"hello")) in result.output

    def test_hash_json(self, runner, tmp_path):
        path = tmp_path / "a.txt"
        path.write_bytes(b"")

        result = runner.invoke(main, ["--json", "hash", str(path)])

        assert result.exit_code == 0
        assert json.loads(result.output) == [
            {"path": str(path), "hash": format_hash(hash_bytes(b"")), "size": 0}
        ]

    def test_hash_missing_file(self, runner, tmp_path):
        result = runner.invoke(main, ["hash", str(tmp_path / "missing")])

        assert result.exit_code != 0
