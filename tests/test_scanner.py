"""Tests for scan requests and scan response parsing."""
from __future__ import annotations

import json

from gree_ac_protocol import GreeMessage, parse_dev_response, scan

from .gree_fakes import DEVICE_ADDRESS, DEVICE_KEY, DEVICE_MAC, dev_response, device_response


class TestScan:
    def test_sends_unencrypted_scan_request(self, binding):
        assert scan(binding, "192.168.1.255", 7000)
        message, addr = binding.sent[0]
        assert addr == ("192.168.1.255", 7000)
        assert json.loads(message.raw_data) == {"t": "scan"}

    def test_send_failure_returns_false(self, binding):
        binding.fail = True
        assert not scan(binding, "192.168.1.255", 7000)
        assert binding.sent == []


class TestParseDevResponse:
    def test_parses_device_identity(self, cipher):
        info = parse_dev_response(dev_response(name="Bedroom"), (DEVICE_ADDRESS, 7000), cipher)
        assert info is not None
        assert info.mac == DEVICE_MAC
        assert info.address == DEVICE_ADDRESS
        assert info.name == "Bedroom"
        assert info.brand == "gree"
        assert info.version == "V1.2.1"
        assert info.to_jsonable()["mac"] == DEVICE_MAC

    def test_falls_back_to_envelope_cid(self, cipher):
        message = GreeMessage.make_pack(
            index=1, cid=DEVICE_MAC, tcid="", pack=cipher.encrypt({"t": "dev", "name": "Hall"}))
        info = parse_dev_response(message, (DEVICE_ADDRESS, 7000), cipher)
        assert info is not None
        assert info.mac == DEVICE_MAC

    def test_ignores_non_dev_payload(self, cipher):
        message = GreeMessage.make_pack(
            index=1, cid=DEVICE_MAC, tcid="", pack=cipher.encrypt({"t": "bindok", "mac": DEVICE_MAC}))
        assert parse_dev_response(message, (DEVICE_ADDRESS, 7000), cipher) is None

    def test_ignores_messages_addressed_to_app(self, cipher):
        message = device_response({"t": "dat", "r": 200, "cols": [], "dat": []}, key=DEVICE_KEY)
        assert parse_dev_response(message, (DEVICE_ADDRESS, 7000), cipher) is None

    def test_undecodable_response_is_dropped(self, cipher):
        message = GreeMessage.make_pack(
            index=1, cid=DEVICE_MAC, tcid="", pack=cipher.encrypt({"t": "dev", "mac": DEVICE_MAC}, DEVICE_KEY))
        assert parse_dev_response(message, (DEVICE_ADDRESS, 7000), cipher) is None

    def test_ignores_scan_request(self, cipher):
        assert parse_dev_response(GreeMessage.make_scan(), (DEVICE_ADDRESS, 7000), cipher) is None
