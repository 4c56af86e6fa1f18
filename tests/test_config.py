"""Tests for configuration loading."""

import pytest

import config
from config import (
    DEFAULT_MP_MAP,
    DEFAULT_MP_WAD,
    DEFAULT_PORT,
    DEFAULT_SOURCE_WAIT,
    DEFAULT_SP_WAD,
    load_config,
)
from errors import ConfigError


def write_ini(tmp_path, text: str) -> str:
    path = tmp_path / "config.ini"
    path.write_text(text)
    return str(path)


class TestLoadConfig:
    def test_missing_default_path_uses_defaults(self, tmp_path):
        cfg = load_config(str(tmp_path / "missing.ini"), explicit=False)

        assert cfg.zdoom == "zdoom"
        assert cfg.port == DEFAULT_PORT == 5029
        assert cfg.source_wait == DEFAULT_SOURCE_WAIT == 30
        assert cfg.can_host is True
        assert cfg.mp_wad == DEFAULT_MP_WAD
        assert cfg.mp_map == DEFAULT_MP_MAP
        assert cfg.sp_wad == DEFAULT_SP_WAD
        assert cfg.mp_config is None
        assert cfg.sp_config is None
        assert cfg.status_port == 0

    def test_missing_explicit_path_is_fatal(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(str(tmp_path / "missing.ini"), explicit=True)

    def test_reads_all_keys(self, tmp_path):
        path = write_ini(
            tmp_path,
            "[general]\n"
            "zdoom = /usr/bin/gzdoom\n"
            "[multiplayer]\n"
            "wad = doom2.wad\n"
            "map = MAP07\n"
            "config = /etc/oe-zdoom/mp.ini\n"
            "can-host = false\n"
            "port = 6000\n"
            "wait = 5\n"
            "[singleplayer]\n"
            "wad = doom1.wad\n"
            "config = /etc/oe-zdoom/sp.ini\n"
            "[status]\n"
            "host = 0.0.0.0\n"
            "port = 8080\n",
        )

        cfg = load_config(path, explicit=True)

        assert cfg.zdoom == "/usr/bin/gzdoom"
        assert cfg.mp_wad == "doom2.wad"
        assert cfg.mp_map == "MAP07"
        assert cfg.mp_config == "/etc/oe-zdoom/mp.ini"
        assert cfg.can_host is False
        assert cfg.port == 6000
        assert cfg.source_wait == 5
        assert cfg.sp_wad == "doom1.wad"
        assert cfg.sp_config == "/etc/oe-zdoom/sp.ini"
        assert cfg.status_host == "0.0.0.0"
        assert cfg.status_port == 8080

    def test_invalid_values_fall_back(self, tmp_path):
        path = write_ini(
            tmp_path,
            "[multiplayer]\n"
            "can-host = maybe\n"
            "port = 0\n"
            "wait = soon\n",
        )

        cfg = load_config(path, explicit=True)

        assert cfg.can_host is True
        assert cfg.port == DEFAULT_PORT
        assert cfg.source_wait == DEFAULT_SOURCE_WAIT

    def test_malformed_explicit_file_is_fatal(self, tmp_path):
        path = write_ini(tmp_path, "this is not an ini file\n")

        with pytest.raises(ConfigError):
            load_config(path, explicit=True)


class TestMachineId:
    def test_reads_machine_id_file(self, tmp_path, monkeypatch):
        id_file = tmp_path / "machine-id"
        id_file.write_text("0123456789abcdef0123456789abcdef\n")
        monkeypatch.setattr(config, "_MACHINE_ID_FILES", (tmp_path / "missing", id_file))

        assert config.machine_id() == "0123456789abcdef0123456789abcdef"

    def test_falls_back_to_hardware_address(self, tmp_path, monkeypatch):
        monkeypatch.setattr(config, "_MACHINE_ID_FILES", (tmp_path / "missing",))

        first = config.machine_id()

        assert len(first) == 32
        assert first == config.machine_id()
