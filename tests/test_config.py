"""Tests for configuration loading."""

import json
from pathlib import Path

import pytest

from pysyncd.config import (
    DEFAULT_CONFIG,
    SyncdConfig,
    default_config_path,
    load_config,
    save_config,
)
from pysyncd.exceptions import SyncdConfigError


def _valid(**overrides):
    data = {
        "channel": "my_channel",
        "syncedDir": "/srv/sync",
        "backend": "stem",
        "backendOptions": {},
        "address": "localhost:5733",
    }
    data.update(overrides)
    return data


class TestSyncdConfig:
    """Tests for SyncdConfig.from_dict and to_dict."""

    def test_from_dict(self):
        cfg = SyncdConfig.from_dict(_valid())

        assert cfg.channel == "my_channel"
        assert cfg.synced_dir == Path("/srv/sync")
        assert cfg.backend == "stem"
        assert cfg.address == "localhost:5733"
        assert cfg.ping_interval == 2.0
        assert cfg.watch is True

    def test_optional_keys(self):
        cfg = SyncdConfig.from_dict(_valid(pingInterval=0.5, watch=False))

        assert cfg.ping_interval == 0.5
        assert cfg.watch is False

    def test_home_expanded(self):
        cfg = SyncdConfig.from_dict(_valid(syncedDir="~/sync"))

        assert cfg.synced_dir == Path.home() / "sync"

    def test_round_trip(self):
        cfg = SyncdConfig.from_dict(_valid(watch=False))

        assert SyncdConfig.from_dict(cfg.to_dict()) == cfg

    @pytest.mark.parametrize(
        "key", ["channel", "syncedDir", "backend", "backendOptions", "address"]
    )
    def test_missing_required_key(self, key):
        data = _valid()
        del data[key]

        with pytest.raises(SyncdConfigError, match=key):
            SyncdConfig.from_dict(data)

    def test_unknown_backend(self):
        with pytest.raises(SyncdConfigError, match="Unknown backend"):
            SyncdConfig.from_dict(_valid(backend="carrier-pigeon"))

    def test_empty_channel(self):
        with pytest.raises(SyncdConfigError):
            SyncdConfig.from_dict(_valid(channel=""))

    def test_channel_too_long(self):
        with pytest.raises(SyncdConfigError):
            SyncdConfig.from_dict(_valid(channel="c" * 256))

    def test_invalid_ping_interval(self):
        with pytest.raises(SyncdConfigError):
            SyncdConfig.from_dict(_valid(pingInterval="often"))

    def test_backend_options_must_be_object(self):
        with pytest.raises(SyncdConfigError):
            SyncdConfig.from_dict(_valid(backendOptions=[1, 2]))


class TestConfigFile:
    """Tests for loading and saving the config file."""

    def test_env_var_path(self, monkeypatch, tmp_path):
        monkeypatch.setenv("PYSYNCD_CONFIG", str(tmp_path / "custom.json"))

        assert default_config_path() == tmp_path / "custom.json"

    def test_default_path(self, monkeypatch):
        monkeypatch.delenv("PYSYNCD_CONFIG", raising=False)

        assert default_config_path() == (
            Path.home() / ".config" / "pysyncd" / "config.json"
        )

    def test_missing_file_created_with_defaults(self, tmp_path):
        path = tmp_path / "sub" / "config.json"

        cfg = load_config(path)

        assert path.exists()
        assert json.loads(path.read_text()) == DEFAULT_CONFIG
        assert cfg.channel == "default_channel"
        assert cfg.address == "stem.fomalhaut.me:5733"

    def test_missing_file_without_create(self, tmp_path):
        with pytest.raises(SyncdConfigError):
            load_config(tmp_path / "config.json", create=False)

    def test_save_and_load(self, tmp_path):
        path = save_config(_valid(), tmp_path / "config.json")

        assert load_config(path).channel == "my_channel"

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")

        with pytest.raises(SyncdConfigError, match="Failed reading config"):
            load_config(path)

    def test_not_an_object(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("[]")

        with pytest.raises(SyncdConfigError):
            load_config(path)
