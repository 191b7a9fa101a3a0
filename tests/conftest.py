"""Shared fixtures for reality_interfaces tests."""

from unittest.mock import Mock

import pytest

from reality_interfaces.config import RegistryConfig
from reality_interfaces.interface import HardwareInterfaceAPI, HostBindings


@pytest.fixture
def bindings():
    return HostBindings(
        object_lookup={},
        config=RegistryConfig(developer=True, debug=False),
        node_type_modules={"node": object()},
        on_value_changed=Mock(),
        on_public_data_changed=Mock(),
        on_action=Mock(),
        on_persist=Mock(),
        on_driver_event=Mock(),
    )


@pytest.fixture
def api(bindings):
    return HardwareInterfaceAPI(bindings)


@pytest.fixture
def pipeline():
    """Pointer pipeline double; all calls land in ``pipeline.mock_calls`` in order."""
    return Mock()


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
