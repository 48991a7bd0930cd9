"""
Unit tests for DnssdBridge against an in-memory recording backend.
"""
import threading
from unittest.mock import MagicMock

import pytest

from dnssd_bridge.dnssd.bridge import DnssdBridge
from dnssd_bridge.dnssd.coordinator import DispatchCoordinator
from dnssd_bridge.exceptions import (
    BackendFaultError,
    IncorrectStateError,
    InvalidArgumentError,
    UnsupportedError,
)
from dnssd_bridge.models.common import DnssdServiceProtocol
from dnssd_bridge.models.service import DnssdService, TextEntry


class _HugeCount(list):
    def __len__(self):
        return 2**32


@pytest.fixture
def unbound_bridge():
    return DnssdBridge(coordinator=DispatchCoordinator())

# --- init / lifecycle ---

def test_init_reports_success_synchronously(bridge):
    on_success, on_error = MagicMock(), MagicMock()
    bridge.init(on_success, on_error, context="ctx")
    on_success.assert_called_once_with("ctx", None)
    on_error.assert_not_called()

@pytest.mark.parametrize("missing", ["success", "error"])
def test_init_requires_both_callbacks(bridge, missing):
    callback = MagicMock()
    with pytest.raises(InvalidArgumentError):
        if missing == "success":
            bridge.init(None, callback)
        else:
            bridge.init(callback, None)
    callback.assert_not_called()

def test_no_op_operations(bridge, backend):
    bridge.shutdown()
    bridge.finalize_service_update()
    bridge.resolve_no_longer_needed("instance")
    assert backend.calls == []

def test_reconfirm_record_is_unsupported(bridge):
    with pytest.raises(UnsupportedError):
        bridge.reconfirm_record("host.local", "192.168.1.5", "eth0")

def test_bind_reports_missing_entry_points(unbound_bridge):
    class ResolverOnly:
        def resolve(self, *args): pass
        def publish(self, *args): pass
        def remove_services(self): pass

    binding = unbound_bridge.bind(ResolverOnly())
    assert binding.missing_entry_points() == ["browse", "stop_browse"]
    assert binding.has_text_accessor
    assert unbound_bridge.binding is binding

# --- browse / stop_browse ---

def test_browse_encodes_type_and_returns_session(bridge, backend):
    callback = MagicMock()
    session_id = bridge.browse("_matterc", DnssdServiceProtocol.UDP, callback=callback, context="ctx")

    assert session_id != 0
    assert session_id in bridge.sessions
    (call,) = backend.calls_named("browse")
    assert call[1:] == ("_matterc._udp", callback, "ctx", bridge.result_dispatcher)

def test_browse_subtype_query(bridge, backend):
    bridge.browse("_matter._sub._I2906C908D115D362", "tcp", callback=MagicMock())
    assert backend.calls_named("browse")[0][1] == "_I2906C908D115D362,_matter._tcp"

def test_browse_unknown_protocol_is_sent_as_tcp(bridge, backend):
    bridge.browse("_matter", DnssdServiceProtocol.UNKNOWN, callback=MagicMock())
    assert backend.calls_named("browse")[0][1] == "_matter._tcp"

def test_browse_sessions_are_distinct(bridge):
    ids = {bridge.browse("_matter", callback=MagicMock()) for _ in range(3)}
    assert len(ids) == 3

@pytest.mark.parametrize("type_, callback", [(None, MagicMock()), ("_matter", None)])
def test_browse_requires_type_and_callback(bridge, backend, type_, callback):
    with pytest.raises(InvalidArgumentError):
        bridge.browse(type_, callback=callback)
    assert backend.calls == []

def test_browse_unbound(unbound_bridge):
    with pytest.raises(IncorrectStateError):
        unbound_bridge.browse("_matter", callback=MagicMock())

def test_browse_without_text_accessor_fails_before_backend(bridge, backend):
    bridge.bind(backend, text_accessor=object())
    with pytest.raises(IncorrectStateError):
        bridge.browse("_matter", callback=MagicMock())
    assert backend.calls == []
    assert len(bridge.sessions) == 0

def test_browse_backend_fault_creates_no_session(bridge, backend):
    backend.raise_on["browse"] = RuntimeError("no multicast")
    with pytest.raises(BackendFaultError) as exc_info:
        bridge.browse("_matter", callback=MagicMock())
    assert exc_info.value.operation == "browse"
    assert len(bridge.sessions) == 0

def test_stop_browse_passes_callback_to_backend(bridge, backend):
    callback = MagicMock()
    session_id = bridge.browse("_matter", callback=callback)
    bridge.stop_browse(session_id)

    assert session_id not in bridge.sessions
    assert backend.calls_named("stop_browse") == [("stop_browse", callback)]

def test_stop_browse_zero_id(bridge, backend):
    with pytest.raises(InvalidArgumentError):
        bridge.stop_browse(0)
    assert backend.calls_named("stop_browse") == []

def test_stop_browse_unbound(unbound_bridge):
    with pytest.raises(IncorrectStateError):
        unbound_bridge.stop_browse(1)

def test_stop_browse_backend_fault_still_destroys_session(bridge, backend):
    session_id = bridge.browse("_matter", callback=MagicMock())
    backend.raise_on["stop_browse"] = RuntimeError("already stopped")
    with pytest.raises(BackendFaultError):
        bridge.stop_browse(session_id)
    assert session_id not in bridge.sessions

def test_result_after_stop_browse_is_still_delivered(bridge):
    callback = MagicMock()
    session_id = bridge.browse("_matter", callback=callback, context="ctx")
    bridge.stop_browse(session_id)

    bridge.result_dispatcher.handle_browse(["late"], "_matter._tcp", callback, "ctx")
    callback.assert_called_once()
    assert callback.call_args.args[3] is None

def test_browse_results_from_backend_thread(bridge, backend, coordinator):
    lock_held = []
    names = []

    def on_browse(context, services, finished, error):
        lock_held.append(coordinator.lock.held_by_current_thread())
        names.extend(s.name for s in services)

    bridge.browse("_matter", callback=on_browse)
    _, full_type, callback, context, dispatcher = backend.calls_named("browse")[0]

    worker = threading.Thread(target=dispatcher.handle_browse, args=(["A", "B"], full_type, callback, context))
    worker.start()
    worker.join(timeout=5)

    assert names == ["A", "B"]
    assert lock_held == [True]
    assert not coordinator.lock.locked()

# --- locking discipline ---

def test_backend_called_without_lock_when_caller_holds_it(bridge, backend, coordinator):
    with coordinator.locked():
        session_id = bridge.browse("_matter", callback=MagicMock())
        bridge.resolve(DnssdService(name="n", type="_matter"), callback=MagicMock())
        bridge.publish_service(DnssdService(name="n", type="_matter", port=5540))
        bridge.remove_services()
        bridge.stop_browse(session_id)
        assert coordinator.lock.held_by_current_thread()

    assert len(backend.calls) == 5
    assert backend.lock_held_during_call == [False] * 5
    assert not coordinator.lock.locked()

def test_backend_called_without_lock_when_caller_does_not_hold_it(bridge, backend, coordinator):
    bridge.browse("_matter", callback=MagicMock())
    assert backend.lock_held_during_call == [False]
    assert not coordinator.lock.locked()

# --- resolve ---

def test_resolve_hands_request_to_backend(bridge, backend):
    callback = MagicMock()
    service = DnssdService(name="2906C908D115D362-8FC7772401CD0696", type="_matter", protocol="tcp")
    bridge.resolve(service, "eth0", callback, "ctx")

    (call,) = backend.calls_named("resolve")
    assert call[1:] == ("2906C908D115D362-8FC7772401CD0696", "_matter._tcp", callback, "ctx", bridge.result_dispatcher)
    callback.assert_not_called()

def test_resolve_round_trip_through_dispatcher(bridge, backend):
    callback = MagicMock()
    bridge.resolve(DnssdService(name="inst", type="_matter", protocol="tcp"), callback=callback, context="ctx")
    _, name, full_type, cb, ctx, dispatcher = backend.calls_named("resolve")[0]

    dispatcher.handle_resolve(name, full_type, "host", "10.0.0.7", 5540, {"CRI": b"5000"}, cb, ctx)

    callback.assert_called_once()
    context, service, addresses, error = callback.call_args.args
    assert context == "ctx"
    assert error is None
    assert (service.name, service.type, service.port, service.host_name) == ("inst", "_matter", 5540, "host")
    assert [str(a) for a in addresses] == ["10.0.0.7"]

@pytest.mark.parametrize("service, callback", [(None, MagicMock()), (DnssdService(name="n", type="_t"), None)])
def test_resolve_requires_service_and_callback(bridge, backend, service, callback):
    with pytest.raises(InvalidArgumentError):
        bridge.resolve(service, callback=callback)
    assert backend.calls == []

def test_resolve_unbound(unbound_bridge):
    with pytest.raises(IncorrectStateError):
        unbound_bridge.resolve(DnssdService(name="n", type="_matter"), callback=MagicMock())

def test_resolve_without_text_accessor_fails_before_backend(bridge, backend):
    bridge.bind(backend, text_accessor=object())
    callback = MagicMock()
    with pytest.raises(IncorrectStateError):
        bridge.resolve(DnssdService(name="n", type="_matter"), callback=callback)
    assert backend.calls == []
    callback.assert_not_called()

def test_resolve_backend_fault(bridge, backend):
    backend.raise_on["resolve"] = RuntimeError("resolver busy")
    callback = MagicMock()
    with pytest.raises(BackendFaultError):
        bridge.resolve(DnssdService(name="n", type="_matter"), callback=callback)
    callback.assert_not_called()
    assert len(backend.calls_named("resolve")) == 1

# --- publish ---

def test_publish_marshals_whole_record(bridge, backend):
    service = DnssdService(
        name="inst",
        host_name="DCA632F4B5C6",
        type="_matterc",
        protocol=DnssdServiceProtocol.UDP,
        port=5540,
        text_entries=[TextEntry(key="D", data=b"3840"), TextEntry(key="CM", data=None)],
        subtypes=["_L3840", "_CM"],
    )
    bridge.publish_service(service)

    (call,) = backend.calls_named("publish")
    assert call[1:] == ("inst", "DCA632F4B5C6", "_matterc._udp", 5540, ["D", "CM"], [b"3840", b""], ["_L3840", "_CM"])

def test_publish_invokes_callback_after_success(bridge):
    callback = MagicMock()
    bridge.publish_service(DnssdService(name="inst", type="_matter", port=5540), callback, "ctx")
    callback.assert_called_once_with("ctx", "_matter._tcp", "inst", None)

def test_publish_backend_fault(bridge, backend):
    backend.raise_on["publish"] = RuntimeError("name conflict")
    callback = MagicMock()
    with pytest.raises(BackendFaultError):
        bridge.publish_service(DnssdService(name="inst", type="_matter", port=5540), callback)
    callback.assert_not_called()

def test_publish_too_many_entries_is_rejected_before_backend(bridge, backend):
    service = DnssdService.model_construct(
        name="inst", host_name="", type="_matter", protocol="tcp", port=5540,
        text_entries=_HugeCount(), subtypes=[],
    )
    with pytest.raises(InvalidArgumentError):
        bridge.publish_service(service)
    assert backend.calls_named("publish") == []

def test_publish_too_many_subtypes_is_rejected_before_backend(bridge, backend):
    service = DnssdService.model_construct(
        name="inst", host_name="", type="_matter", protocol="tcp", port=5540,
        text_entries=[], subtypes=_HugeCount(),
    )
    with pytest.raises(InvalidArgumentError):
        bridge.publish_service(service)
    assert backend.calls == []

def test_publish_requires_service(bridge):
    with pytest.raises(InvalidArgumentError):
        bridge.publish_service(None)

def test_publish_unbound(unbound_bridge):
    with pytest.raises(IncorrectStateError):
        unbound_bridge.publish_service(DnssdService(name="inst", type="_matter", port=5540))

def test_remove_services(bridge, backend):
    bridge.remove_services()
    assert backend.calls == [("remove_services",)]

def test_remove_services_backend_fault(bridge, backend):
    backend.raise_on["remove_services"] = RuntimeError("gone")
    with pytest.raises(BackendFaultError):
        bridge.remove_services()

def test_remove_services_unbound(unbound_bridge):
    with pytest.raises(IncorrectStateError):
        unbound_bridge.remove_services()
