"""Tests for the GreeDevice session state machine."""
from __future__ import annotations

import asyncio

import pytest

from gree_ac_protocol import (
    ALL_FIELD_CODES,
    GreeDevice,
    GreeDeviceState,
    GreeDeviceUnavailable,
    GreeError,
)

from .gree_fakes import (
    DEVICE_ADDRESS,
    DEVICE_KEY,
    DEVICE_MAC,
    OTHER_KEY,
    FakeSocketBinding,
    device_response,
    make_device_info,
)


def dat_response(cols, dat, r=200, key=DEVICE_KEY):
    return device_response({"t": "dat", "mac": DEVICE_MAC, "r": r, "cols": cols, "dat": dat}, key=key)

def res_response(payload, key=DEVICE_KEY):
    body = {"t": "res", "mac": DEVICE_MAC, "r": 200}
    body.update(payload)
    return device_response(body, key=key)

def bindok_response(key=DEVICE_KEY, r=200):
    return device_response({"t": "bindok", "mac": DEVICE_MAC, "key": key, "r": r}, key=None)

def make_available(device):
    device.handle_message(dat_response(["Pow", "Mod", "SetTem"], [1, 1, 24]))


# ------------------------------------------------------------------
# Binding
# ------------------------------------------------------------------

class TestBinding:
    def test_new_device_is_unbound_and_unavailable(self, device):
        assert device.state == GreeDeviceState.UNBOUND
        assert device.is_unavailable()
        assert device.key is None
        assert device.sequence_index == 1

    def test_bind_request(self, device, binding, cipher):
        device.bind()
        message, addr = binding.sent[-1]
        assert addr == (DEVICE_ADDRESS, 7000)
        assert message.t == "pack"
        assert message.i == 1
        assert message.cid == "app"
        assert message.tcid == DEVICE_MAC
        assert binding.last_payload(cipher) == {"t": "bind", "uid": 0, "mac": DEVICE_MAC}

    @pytest.mark.asyncio
    async def test_bindok_sets_key_and_starts_refresh(self, device, binding, cipher):
        device.handle_message(bindok_response())
        try:
            assert device.key == DEVICE_KEY
            assert device.state == GreeDeviceState.BOUND_UNAVAILABLE
            assert device.sequence_index == 0
            assert device.refresh_task is not None
            assert await device.wait_until_bound(0.1)

            device.request_status()
            message, _ = binding.sent[-1]
            assert message.i == 0
            assert binding.last_payload(cipher, DEVICE_KEY)["t"] == "status"
        finally:
            await device.close()
        assert device.refresh_task is None

    @pytest.mark.asyncio
    async def test_second_bindok_is_ignored(self, device):
        device.handle_message(bindok_response())
        try:
            device.handle_message(bindok_response(key=OTHER_KEY))
            assert device.key == DEVICE_KEY
        finally:
            await device.close()

    def test_rejected_bindok_leaves_device_unbound(self, device):
        device.handle_message(bindok_response(r=400))
        assert device.key is None
        assert device.state == GreeDeviceState.UNBOUND

    def test_bindok_with_invalid_key_is_dropped(self, device):
        device.handle_message(bindok_response(key="tooshort"))
        assert device.key is None

    @pytest.mark.asyncio
    async def test_wait_until_bound_times_out(self, device):
        assert not await device.wait_until_bound(0.01)


# ------------------------------------------------------------------
# Availability
# ------------------------------------------------------------------

class TestAvailability:
    def test_bound_device_stays_unavailable_until_dat(self, bound_device):
        assert bound_device.state == GreeDeviceState.BOUND_UNAVAILABLE
        for _ in range(3):
            bound_device.request_status()
        assert bound_device.is_unavailable()
        make_available(bound_device)
        assert not bound_device.is_unavailable()
        assert bound_device.state == GreeDeviceState.BOUND_AVAILABLE

    def test_fifth_unanswered_request_marks_unavailable(self, bound_device):
        make_available(bound_device)
        for _ in range(4):
            bound_device.request_status()
            assert not bound_device.is_unavailable()
        bound_device.request_status()
        assert bound_device.is_unavailable()
        assert bound_device.unresponded_status_requests == 5

    def test_single_dat_resets_counter(self, bound_device):
        for _ in range(12):
            bound_device.request_status()
        assert bound_device.is_unavailable()
        make_available(bound_device)
        assert not bound_device.is_unavailable()
        assert bound_device.unresponded_status_requests == 0

    def test_status_request_asks_for_every_field(self, bound_device, binding, cipher):
        bound_device.request_status()
        assert binding.last_payload(cipher, DEVICE_KEY) == {
            "t": "status",
            "mac": DEVICE_MAC,
            "cols": list(ALL_FIELD_CODES),
        }

    def test_get_value_raises_while_unavailable(self, bound_device):
        with pytest.raises(GreeDeviceUnavailable):
            bound_device.get_value("power")

    @pytest.mark.asyncio
    async def test_wait_until_available(self, bound_device):
        assert not await bound_device.wait_until_available(0.01)
        make_available(bound_device)
        assert await bound_device.wait_until_available(0.01)


# ------------------------------------------------------------------
# Status responses
# ------------------------------------------------------------------

class TestStatusResponses:
    def test_dat_updates_status(self, bound_device):
        bound_device.handle_message(dat_response(["Pow", "Mod", "TemSen"], [1, 4, 65]))
        assert bound_device.get_status() == {"Pow": 1, "Mod": 4, "TemSen": 65}
        assert bound_device.get_value("power") == 1
        assert bound_device.get_named_value("mode") == "heat"

    def test_rejected_response_changes_nothing(self, bound_device):
        make_available(bound_device)
        before = bound_device.get_status()
        bound_device.request_status()
        bound_device.handle_message(dat_response(["Pow", "Mod"], [0, 3], r=500))
        assert bound_device.get_status() == before
        assert bound_device.unresponded_status_requests == 1
        assert bound_device.key == DEVICE_KEY

    def test_rejected_response_keeps_device_unavailable(self, bound_device):
        bound_device.handle_message(dat_response(["Pow"], [1], r=404))
        assert bound_device.is_unavailable()
        assert bound_device.status == {}

    def test_wrong_key_changes_nothing(self, bound_device):
        bound_device.handle_message(dat_response(["Pow"], [1], key=OTHER_KEY))
        assert bound_device.is_unavailable()
        assert bound_device.status == {}
        assert bound_device.key == DEVICE_KEY

    def test_message_for_other_device_is_ignored(self, bound_device):
        message = device_response(
            {"t": "dat", "r": 200, "cols": ["Pow"], "dat": [1]}, mac="00aabbccddee")
        bound_device.handle_message(message)
        assert bound_device.status == {}

    def test_unknown_field_codes_are_skipped(self, bound_device):
        bound_device.handle_message(dat_response(["Pow", "HeatCoolType", "Mod"], [1, 0, 2]))
        assert bound_device.status == {"Pow": 1, "Mod": 2}
        assert not bound_device.is_unavailable()

    def test_mismatched_lists_are_dropped(self, bound_device):
        bound_device.handle_message(dat_response(["Pow", "Mod"], [1]))
        assert bound_device.status == {}
        assert bound_device.is_unavailable()

    def test_non_numeric_values_are_dropped(self, bound_device):
        bound_device.handle_message(dat_response(["Pow", "Mod"], [1, "cool"]))
        assert bound_device.status == {}

    def test_refresh_handlers_are_called(self, bound_device):
        seen = []
        i = bound_device.add_refresh_handler(lambda d: seen.append(dict(d.status)))
        make_available(bound_device)
        assert seen == [{"Pow": 1, "Mod": 1, "SetTem": 24}]
        bound_device.remove_refresh_handler(i)
        make_available(bound_device)
        assert len(seen) == 1

    def test_failing_refresh_handler_does_not_stop_update(self, bound_device):
        def broken(_):
            raise RuntimeError("handler failure")
        bound_device.add_refresh_handler(broken)
        make_available(bound_device)
        assert bound_device.status["SetTem"] == 24

    def test_get_fahrenheit(self, bound_device):
        bound_device.handle_message(dat_response(["SetTem", "TemRec"], [17, 1]))
        assert bound_device.get_fahrenheit() == 63


# ------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------

class TestCommands:
    def test_cmd_then_res_updates_status(self, bound_device, binding, cipher):
        make_available(bound_device)
        bound_device.cmd({"Pow": 1, "Mod": 0, "SetTem": 27, "WdSpd": 0})
        assert binding.last_payload(cipher, DEVICE_KEY) == {
            "t": "cmd",
            "opt": ["Pow", "Mod", "SetTem", "WdSpd"],
            "p": [1, 0, 27, 0],
        }
        # the cache only changes once the device acknowledges
        assert bound_device.status["SetTem"] == 24

        bound_device.handle_message(res_response({
            "opt": ["Pow", "Mod", "SetTem", "WdSpd"],
            "p": [1, 0, 27, 0],
            "val": [1, 0, 27, 0],
        }))
        status = bound_device.get_status()
        assert status["Pow"] == 1
        assert status["Mod"] == 0
        assert status["SetTem"] == 27
        assert status["WdSpd"] == 0

    def test_res_prefers_val_over_p(self, bound_device):
        bound_device.handle_message(res_response({"opt": ["SetTem"], "p": [30], "val": [26]}))
        assert bound_device.status["SetTem"] == 26

    @pytest.mark.parametrize("payload", [
        {"opt": ["SetTem"], "p": [22]},
        {"opt": ["SetTem"], "p": [22], "val": None},
    ])
    def test_res_falls_back_to_p(self, bound_device, payload):
        bound_device.handle_message(res_response(payload))
        assert bound_device.status["SetTem"] == 22

    def test_res_does_not_clear_unavailability(self, bound_device):
        bound_device.handle_message(res_response({"opt": ["Pow"], "p": [1], "val": [1]}))
        assert bound_device.status["Pow"] == 1
        assert bound_device.is_unavailable()

    def test_commands_leave_availability_tracking_alone(self, bound_device):
        make_available(bound_device)
        bound_device.request_status()
        bound_device.request_status()
        bound_device.cmd({"Pow": 0, "Mod": 3})
        bound_device.handle_message(res_response({"opt": ["Pow", "Mod"], "p": [0, 3], "val": [0, 3]}))
        assert bound_device.status["Mod"] == 3
        assert bound_device.unresponded_status_requests == 2
        assert not bound_device.is_unavailable()

    def test_cmd_accepts_logical_names(self, bound_device, binding, cipher):
        bound_device.cmd({"power": 1, "swingUpDown": 2})
        payload = binding.last_payload(cipher, DEVICE_KEY)
        assert payload["opt"] == ["Pow", "SwUpDn"]
        assert payload["p"] == [1, 2]

    def test_set_named_value(self, bound_device, binding, cipher):
        bound_device.set_named_value("mode", "cool")
        payload = binding.last_payload(cipher, DEVICE_KEY)
        assert payload["opt"] == ["Mod"]
        assert payload["p"] == [1]

    def test_set_value(self, bound_device, binding, cipher):
        bound_device.set_value("speed", 3)
        assert binding.last_payload(cipher, DEVICE_KEY) == {"t": "cmd", "opt": ["WdSpd"], "p": [3]}

    def test_set_fahrenheit(self, bound_device, binding, cipher):
        bound_device.set_fahrenheit(77)
        payload = binding.last_payload(cipher, DEVICE_KEY)
        assert payload["opt"] == ["SetTem", "TemRec"]
        assert payload["p"] == [25, 1]

    def test_cmd_before_bind_raises(self, device, binding):
        with pytest.raises(GreeDeviceUnavailable):
            device.cmd({"Pow": 1})
        assert binding.sent == []

    def test_cmd_rejects_non_numeric_values(self, bound_device):
        with pytest.raises(GreeError):
            bound_device.cmd({"Pow": "on"})

    def test_cmd_rejects_unknown_fields(self, bound_device):
        with pytest.raises(GreeError):
            bound_device.cmd({"Frobnicate": 1})

    def test_send_failure_is_not_raised(self, bound_device, binding):
        binding.fail = True
        bound_device.cmd({"Pow": 0})
        bound_device.request_status()
        assert binding.sent == []


# ------------------------------------------------------------------
# Refresh ticks
# ------------------------------------------------------------------

class TestRefresh:
    def test_unbound_device_does_not_refresh(self, device, binding):
        assert not device.refresh()
        assert binding.sent == []

    def test_refresh_soon_after_creation_polls(self, bound_device, binding, clock):
        clock.advance(3.0)
        assert bound_device.refresh()
        assert len(binding.sent) == 1

    def test_refresh_within_window_polls(self, bound_device, binding, cipher, clock):
        clock.advance(60.0)
        bound_device.get_status()
        clock.advance(4.9)
        assert bound_device.refresh()
        assert binding.last_payload(cipher, DEVICE_KEY)["t"] == "status"

    def test_refresh_after_window_is_skipped(self, bound_device, binding, clock):
        bound_device.get_status()
        clock.advance(5.1)
        assert not bound_device.refresh()
        assert binding.sent == []

    def test_skipped_refresh_does_not_count_as_unanswered(self, bound_device, clock):
        make_available(bound_device)
        clock.advance(10.0)
        for _ in range(10):
            bound_device.refresh()
        assert not bound_device.is_unavailable()
        assert bound_device.unresponded_status_requests == 0

    @pytest.mark.asyncio
    async def test_refresh_task_polls_observed_device(self, cipher):
        binding = FakeSocketBinding()
        device = GreeDevice(make_device_info(), binding, cipher=cipher, refresh_interval=0.01)
        device.handle_message(bindok_response())
        try:
            device.get_status()
            await asyncio.sleep(0.1)
        finally:
            await device.close()
        kinds = [p["t"] for p in binding.payloads(cipher, DEVICE_KEY)]
        assert "status" in kinds

    @pytest.mark.asyncio
    async def test_refresh_task_survives_failing_tick(self, cipher):
        device = GreeDevice(make_device_info(), FakeSocketBinding(), cipher=cipher, refresh_interval=0.01)
        ticks = []
        def flaky_refresh():
            ticks.append(len(ticks))
            if len(ticks) == 1:
                raise RuntimeError("tick failure")
            return True
        device.refresh = flaky_refresh  # type: ignore[method-assign]
        device.handle_message(bindok_response())
        try:
            await asyncio.sleep(0.1)
            assert device.refresh_task is not None
            assert not device.refresh_task.done()
        finally:
            await device.close()
        assert len(ticks) > 1
