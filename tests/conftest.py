"""
Shared fixtures: an in-memory backend that records every call-out.
"""
import pytest

from dnssd_bridge.config import BridgeConfig
from dnssd_bridge.dnssd.bridge import DnssdBridge
from dnssd_bridge.dnssd.coordinator import DispatchCoordinator


class RecordingBackend:
    """Implements every backend entry point; records calls and whether the bridge lock was held."""

    def __init__(self, coordinator: DispatchCoordinator | None = None):
        self.coordinator = coordinator
        self.calls: list[tuple] = []
        self.lock_held_during_call: list[bool] = []
        self.raise_on: dict[str, Exception] = {}

    def _record(self, name, *args):
        if self.coordinator is not None:
            self.lock_held_during_call.append(self.coordinator.lock.held_by_current_thread())
        self.calls.append((name, *args))
        if name in self.raise_on:
            raise self.raise_on[name]

    def calls_named(self, name):
        return [c for c in self.calls if c[0] == name]

    def browse(self, full_type, callback_handle, context_handle, result_dispatcher):
        self._record("browse", full_type, callback_handle, context_handle, result_dispatcher)

    def stop_browse(self, callback_handle):
        self._record("stop_browse", callback_handle)

    def resolve(self, instance_name, full_type, callback_handle, context_handle, result_dispatcher):
        self._record("resolve", instance_name, full_type, callback_handle, context_handle, result_dispatcher)

    def publish(self, name, host_name, full_type, port, keys, values, subtypes):
        self._record("publish", name, host_name, full_type, port, keys, values, subtypes)

    def remove_services(self):
        self._record("remove_services")


@pytest.fixture
def coordinator():
    return DispatchCoordinator()

@pytest.fixture
def backend(coordinator):
    return RecordingBackend(coordinator)

@pytest.fixture
def bridge(coordinator, backend):
    bridge = DnssdBridge(app_config=BridgeConfig(), coordinator=coordinator)
    bridge.bind(backend)
    return bridge
