"""Shared test fixtures for gree_ac_protocol tests."""
from __future__ import annotations

import pytest

from gree_ac_protocol import GreeCipher, GreeDevice

from .gree_fakes import DEVICE_KEY, FakeClock, FakeSocketBinding, make_device_info


@pytest.fixture
def cipher() -> GreeCipher:
    return GreeCipher()


@pytest.fixture
def binding() -> FakeSocketBinding:
    return FakeSocketBinding()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def device(binding, cipher, clock) -> GreeDevice:
    """A freshly created, unbound device session."""
    return GreeDevice(make_device_info(), binding, cipher=cipher, clock=clock)


@pytest.fixture
def bound_device(device) -> GreeDevice:
    """A device session that has its key but has never answered a status request.

    The key is assigned directly so that no refresh task (and no event loop) is needed.
    """
    device.key = DEVICE_KEY
    return device
