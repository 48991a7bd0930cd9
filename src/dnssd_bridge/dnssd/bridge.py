"""
Public DNS-SD operations.

DnssdBridge composes the codec, the session registry, the result marshaller
and the dispatch coordinator over a bound discovery backend. Synchronous
failures are raised; asynchronous outcomes reach the caller only through the
callback it passed in, exactly once per resolve and once per browse batch.
"""
from collections.abc import Callable
from typing import Any

import structlog

from ..config import BridgeConfig, DnssdLimits
from ..exceptions import (
    IncorrectStateError,
    InvalidArgumentError,
    UnsupportedError,
)
from ..models.common import DnssdServiceProtocol, IPAddressType
from ..models.service import DnssdService
from .binding import BackendBinding
from .codec import encode_full_type, encode_full_type_with_subtype
from .coordinator import DispatchCoordinator, get_default_coordinator
from .marshaller import ResultDispatcher, ResultMarshaller, marshal_publish_request
from .registry import SessionRegistry

logger = structlog.get_logger(__name__)

InitCallback = Callable[[Any, Exception | None], None]
BrowseCallback = Callable[[Any, list[DnssdService], bool, Exception | None], None]
ResolveCallback = Callable[[Any, DnssdService | None, list, Exception | None], None]
PublishCallback = Callable[[Any, str, str, Exception | None], None]


class DnssdBridge:
    """
    Bridge between DNS-SD callers and a host-supplied discovery backend.

    Typical use::

        bridge = DnssdBridge()
        bridge.bind(ZeroconfBackend(config.zeroconf))
        session_id = bridge.browse("_matter", DnssdServiceProtocol.TCP, callback=on_browse)
        ...
        bridge.stop_browse(session_id)
    """

    def __init__(
        self,
        app_config: BridgeConfig | None = None,
        coordinator: DispatchCoordinator | None = None,
        limits: DnssdLimits | None = None,
    ):
        self.app_config = app_config or BridgeConfig()
        self.coordinator = coordinator or get_default_coordinator()
        self.limits = limits or self.app_config.limits
        self.sessions = SessionRegistry()
        self.marshaller = ResultMarshaller(self.coordinator, self.limits)
        self.result_dispatcher = ResultDispatcher(self.marshaller)
        self.logger = logger.bind(service="DnssdBridge")

    @property
    def binding(self) -> BackendBinding:
        return self.marshaller.binding

    def bind(self, resolver: Any, browser: Any = None, text_accessor: Any = None) -> BackendBinding:
        """Binds the discovery backend. See BackendBinding.bind."""
        binding = BackendBinding.bind(resolver, browser, text_accessor)
        self.marshaller.binding = binding
        return binding

    # --- lifecycle ---

    def init(self, on_success: InitCallback | None, on_error: InitCallback | None, context: Any = None) -> None:
        """Reports readiness by calling `on_success(context, None)` before returning."""
        if on_success is None or on_error is None:
            raise InvalidArgumentError("Init requires both a success and an error callback")
        on_success(context, None)

    def shutdown(self) -> None:
        pass

    # --- browse ---

    def browse(
        self,
        type_: str | None,
        protocol: DnssdServiceProtocol | str = DnssdServiceProtocol.TCP,
        address_type: IPAddressType | str = IPAddressType.ANY,
        interface: str | None = None,
        callback: BrowseCallback | None = None,
        context: Any = None,
    ) -> int:
        """Starts browsing and returns the session identifier for stop_browse.

        `address_type` and `interface` are accepted for API compatibility; the
        backend decides which families and interfaces it browses on.
        """
        if type_ is None or callback is None:
            raise InvalidArgumentError("Browse requires a service type and a callback")
        binding = self.binding
        if binding.browse is None:
            raise IncorrectStateError("Backend browse entry point is not bound")
        if not binding.has_text_accessor:
            raise IncorrectStateError("Result dispatcher text accessor is not bound")

        full_type = encode_full_type_with_subtype(type_, protocol)
        log = self.logger.bind(operation="browse", full_type=full_type, address_type=str(address_type), interface=interface)
        log.debug("Starting browse")

        self.coordinator.call_backend("browse", binding.browse, full_type, callback, context, self.result_dispatcher)

        with self.coordinator.locked():
            session_id = self.sessions.create(callback)
        log.info("Browse started", session_id=session_id)
        return session_id

    def stop_browse(self, session_id: int) -> None:
        """Stops a browse and destroys its session, even if the backend fails to stop.

        A result for this session may still arrive shortly afterwards.
        """
        if not session_id:
            self.logger.error("stop_browse called with a zero identifier")
            raise InvalidArgumentError("Browse identifier must be non-zero")
        binding = self.binding
        if binding.stop_browse is None:
            raise IncorrectStateError("Backend stop_browse entry point is not bound")

        with self.coordinator.locked():
            callback = self.sessions.reclaim(session_id)
        self.logger.info("Stopping browse", operation="stop_browse", session_id=session_id)
        self.coordinator.call_backend("stop_browse", binding.stop_browse, callback)

    # --- resolve ---

    def resolve(
        self,
        service: DnssdService | None,
        interface: str | None = None,
        callback: ResolveCallback | None = None,
        context: Any = None,
    ) -> None:
        """Asks the backend to resolve one instance.

        Returning normally only means the request was handed to the backend;
        the outcome arrives later through `callback`.
        """
        if service is None or callback is None:
            raise InvalidArgumentError("Resolve requires a service and a callback")
        binding = self.binding
        if binding.resolve is None:
            raise IncorrectStateError("Backend resolve entry point is not bound")
        if not binding.has_text_accessor:
            raise IncorrectStateError("Result dispatcher text accessor is not bound")

        full_type = encode_full_type(service.type, service.protocol)
        self.logger.debug("Resolving", operation="resolve", instance_name=service.name, full_type=full_type, interface=interface)
        self.coordinator.call_backend(
            "resolve", binding.resolve, service.name, full_type, callback, context, self.result_dispatcher
        )

    def resolve_no_longer_needed(self, instance_name: str) -> None:
        pass

    # --- publish ---

    def publish_service(
        self,
        service: DnssdService | None,
        callback: PublishCallback | None = None,
        context: Any = None,
    ) -> None:
        """Publishes a complete service record in one backend call.

        Publishing again replaces the record; there are no incremental updates.
        """
        if service is None:
            raise InvalidArgumentError("Publish requires a service")
        binding = self.binding
        if binding.publish is None:
            raise IncorrectStateError("Backend publish entry point is not bound")

        request = marshal_publish_request(service)
        log = self.logger.bind(operation="publish", instance_name=request.name, full_type=request.full_type)
        self.coordinator.call_backend(
            "publish",
            binding.publish,
            request.name,
            request.host_name,
            request.full_type,
            request.port,
            request.keys,
            request.values,
            request.subtypes,
        )
        log.info("Service published", port=request.port, txt_entries=len(request.keys), subtypes=len(request.subtypes))

        if callback is not None:
            self.coordinator.deliver(callback, context, request.full_type, request.name, None)

    def finalize_service_update(self) -> None:
        pass

    def remove_services(self) -> None:
        """Withdraws everything previously published through the backend."""
        binding = self.binding
        if binding.remove_services is None:
            raise IncorrectStateError("Backend remove_services entry point is not bound")
        self.coordinator.call_backend("remove_services", binding.remove_services)
        self.logger.info("Published services removed", operation="remove_services")

    def reconfirm_record(self, hostname: str, address: Any, interface: str | None = None) -> None:
        raise UnsupportedError("Record reconfirmation is not supported")
