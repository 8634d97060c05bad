"""Tests for GreeConfig."""
from __future__ import annotations

import json

import pytest

from gree_ac_protocol import GreeConfig, GreeError


class TestGreeConfig:
    def test_defaults(self):
        config = GreeConfig()
        assert config.port == 7000
        assert config.scan_port == 7000
        assert config.scan_address is None
        assert config.scan_interval == 1.0
        assert config.scan_max_retries == 3
        assert config.refresh_interval == 3.0

    def test_explicit_scan_address(self):
        assert GreeConfig(scan_address="10.0.0.255").get_scan_address() == "10.0.0.255"

    def test_snake_case_keys(self):
        config = GreeConfig.from_jsonable({
            "port": 7001,
            "scan_address": "192.168.0.255",
            "scan_interval": 0.5,
            "scan_max_retries": 10,
            "refresh_interval": 2.0,
        })
        assert config.port == 7001
        assert config.scan_address == "192.168.0.255"
        assert config.scan_interval == 0.5
        assert config.scan_max_retries == 10
        assert config.refresh_interval == 2.0

    def test_camel_case_intervals_are_milliseconds(self):
        config = GreeConfig.from_jsonable({
            "platform": "GreeAirConditioner",
            "name": "Gree",
            "scanPort": 7000,
            "scanAddress": "192.168.1.255",
            "scanInterval": 2000,
            "scanMaxRetries": 5,
            "refreshInterval": 3000,
            "debug": False,
        })
        assert config.scan_address == "192.168.1.255"
        assert config.scan_interval == pytest.approx(2.0)
        assert config.scan_max_retries == 5
        assert config.refresh_interval == pytest.approx(3.0)

    def test_unknown_key_is_rejected(self):
        with pytest.raises(GreeError):
            GreeConfig.from_jsonable({"scan_adress": "192.168.1.255"})

    @pytest.mark.parametrize("kwargs", [
        {"port": 0},
        {"port": 70000},
        {"scan_port": True},
        {"scan_interval": 0},
        {"refresh_interval": -1.0},
        {"scan_max_retries": -1},
        {"scan_max_retries": 1.5},
        {"scan_address": 42},
    ])
    def test_invalid_values_are_rejected(self, kwargs):
        with pytest.raises(GreeError):
            GreeConfig(**kwargs)

    def test_zero_retries_is_allowed(self):
        assert GreeConfig(scan_max_retries=0).scan_max_retries == 0

    def test_load_file(self, tmp_path):
        path = tmp_path / "gree.json"
        path.write_text(json.dumps({"scan_address": "192.168.7.255", "refresh_interval": 1.5}))
        config = GreeConfig.load_file(str(path))
        assert config.scan_address == "192.168.7.255"
        assert config.refresh_interval == 1.5
        assert config.config_file == str(path)

    def test_load_file_with_options_block(self, tmp_path):
        path = tmp_path / "platform.json"
        path.write_text(json.dumps({"options": {"scanMaxRetries": 7}}))
        assert GreeConfig.load_file(str(path)).scan_max_retries == 7

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(GreeError):
            GreeConfig.load_file(str(tmp_path / "missing.json"))

    def test_load_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(GreeError):
            GreeConfig.load_file(str(path))

    def test_to_jsonable_round_trips(self):
        config = GreeConfig(port=7002, scan_address="10.1.1.255", scan_max_retries=1)
        assert GreeConfig.from_jsonable(config.to_jsonable()).to_jsonable() == config.to_jsonable()
