"""
Result marshaller: turns raw backend deliveries into DnssdService records and
hands them to the caller's callback, and marshals services for publish.

Resolve and browse deliveries arrive on backend-owned threads. Each one ends
in exactly one callback invocation (made under the coordinator lock), unless
the delivery carries no callback at all, in which case it is logged and
dropped. Malformed input is reported as InvalidArgumentError; anything else
that fails while building the result is reported as BackendFaultError.

TXT entries built for a resolve are owned by a TextEntryArena that lives only
as long as the callback invocation: when the callback returns, every key and
data copy is released and the record's entry list is emptied, whether or not
the record was complete.
"""
import ipaddress
from collections.abc import Callable, Iterable
from typing import Any

import structlog

from ..config import DnssdLimits
from ..exceptions import (
    BackendFaultError,
    DnssdError,
    IncorrectStateError,
    InvalidArgumentError,
    OutOfMemoryError,
    UnknownResourceIdError,
)
from ..models.common import DnssdServiceProtocol
from ..models.service import DnssdService, PublishRequest, TextEntry
from .binding import BackendBinding
from .codec import decode_protocol, encode_full_type
from .coordinator import DispatchCoordinator

logger = structlog.get_logger(__name__)

MAX_ENTRY_COUNT = 0xFFFFFFFF # counts and sizes cross the backend as 32-bit values

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address


class TextEntryArena:
    """Owns the key and data copies made for one resolve delivery."""

    def __init__(self) -> None:
        self.entries: list[TextEntry] = []
        self.keys_allocated = 0
        self.data_allocated = 0
        self.keys_released = 0
        self.data_released = 0

    def add(self, key: str, data: Any) -> TextEntry:
        entry = TextEntry(key=self._copy_key(key))
        self.entries.append(entry)
        if data is not None:
            entry.data = self._copy_data(data)
        return entry

    def _copy_key(self, key: str | bytes) -> str:
        if isinstance(key, str):
            owned = key
        elif isinstance(key, bytes):
            try:
                owned = key.decode("utf-8")
            except UnicodeDecodeError as e:
                raise InvalidArgumentError(f"TXT key is not valid UTF-8: {key!r}") from e
        else:
            raise InvalidArgumentError(f"TXT key must be str or bytes, got {type(key).__name__}")
        self.keys_allocated += 1
        return owned

    def _copy_data(self, data: Any) -> bytes:
        if isinstance(data, (bytes, bytearray, memoryview)):
            owned = bytes(data)
        else:
            # Sequences of signed byte values (-128..127) are reinterpreted as unsigned.
            try:
                owned = bytes(b & 0xFF for b in data)
            except TypeError as e:
                raise InvalidArgumentError(f"TXT value is not a byte sequence: {type(data).__name__}") from e
        self.data_allocated += 1
        return owned

    def release(self) -> None:
        for entry in self.entries:
            self.keys_released += 1
            if entry.data is not None:
                self.data_released += 1
        self.entries.clear()


def parse_address(address: str) -> tuple[IPAddress, str | None]:
    """Parses "192.168.1.5" or "fe80::1%wlan0" into (address, interface)."""
    try:
        ip = ipaddress.ip_address(address)
    except ValueError as e:
        raise InvalidArgumentError(f"Unparseable address: {address!r}") from e
    return ip, getattr(ip, "scope_id", None)


def _utf8_length(value: str) -> int:
    if not isinstance(value, str):
        raise InvalidArgumentError(f"Expected a name, got {type(value).__name__}")
    try:
        return len(value.encode("utf-8"))
    except UnicodeEncodeError as e:
        raise InvalidArgumentError(f"Name is not encodable as UTF-8: {value!r}") from e


def _truncate_utf8(value: str, max_length: int) -> str:
    return value.encode("utf-8")[:max_length].decode("utf-8", errors="ignore")


def marshal_publish_request(service: DnssdService) -> PublishRequest:
    """Flattens a service into the parallel key/value/subtype arrays the backend publishes.

    Raises:
        InvalidArgumentError: more TXT entries or subtypes, or a larger TXT
            value, than a 32-bit count can describe.
    """
    if len(service.text_entries) > MAX_ENTRY_COUNT:
        raise InvalidArgumentError("Too many TXT entries to publish")
    if len(service.subtypes) > MAX_ENTRY_COUNT:
        raise InvalidArgumentError("Too many subtypes to publish")

    keys: list[str] = []
    values: list[bytes] = []
    for entry in service.text_entries:
        data = entry.data if entry.data is not None else b""
        if len(data) > MAX_ENTRY_COUNT:
            raise InvalidArgumentError(f"TXT value for {entry.key!r} is too large")
        keys.append(entry.key)
        values.append(bytes(data))

    return PublishRequest(
        name=service.name,
        host_name=service.host_name,
        full_type=encode_full_type(service.type, service.protocol),
        port=service.port,
        keys=keys,
        values=values,
        subtypes=list(service.subtypes),
    )


class ResultMarshaller:
    def __init__(
        self,
        coordinator: DispatchCoordinator,
        limits: DnssdLimits,
        binding: BackendBinding | None = None,
        arena_factory: Callable[[], TextEntryArena] = TextEntryArena,
    ):
        self.coordinator = coordinator
        self.limits = limits
        self.binding = binding or BackendBinding()
        self._arena_factory = arena_factory

    # --- resolve path ---

    def handle_resolve(
        self,
        instance_name: str | None,
        service_type: str | None,
        host_name: str | None,
        address: str | None,
        port: int | None,
        text_entries: Any,
        callback_handle: Callable[..., Any] | None,
        context_handle: Any,
    ) -> None:
        log = logger.bind(instance_name=instance_name, service_type=service_type)
        if callback_handle is None:
            log.error("Resolve result delivered without a callback")
            return

        if address is None or not port:
            log.warning("Resolve result has no address or port", address=address, port=port)
            self.coordinator.deliver(
                callback_handle, context_handle, None, [], UnknownResourceIdError("Resolve returned no address or port")
            )
            return

        arena = self._arena_factory()
        try:
            try:
                service, ip = self._build_resolved_service(
                    instance_name or "", service_type or "", host_name or "", address, port, text_entries, arena
                )
            except DnssdError as e:
                log.warning("Discarding resolve result", error=str(e))
                self.coordinator.deliver(callback_handle, context_handle, None, [], e)
            except Exception as e:
                log.exception("Unexpected error building resolve result")
                self.coordinator.deliver(
                    callback_handle, context_handle, None, [], BackendFaultError("handle_resolve", str(e))
                )
            else:
                self.coordinator.deliver(callback_handle, context_handle, service, [ip], None)
        finally:
            arena.release()

    def _build_resolved_service(
        self,
        instance_name: str,
        service_type: str,
        host_name: str,
        address: str,
        port: int,
        text_entries: Any,
        arena: TextEntryArena,
    ) -> tuple[DnssdService, IPAddress]:
        limits = self.limits
        if _utf8_length(instance_name) > limits.instance_name_max_length:
            raise InvalidArgumentError(f"Instance name exceeds {limits.instance_name_max_length} bytes")
        if _utf8_length(service_type) > limits.type_and_protocol_max_length:
            raise InvalidArgumentError(f"Service type exceeds {limits.type_and_protocol_max_length} bytes")
        if not 0 < port <= 0xFFFF:
            raise InvalidArgumentError(f"Port out of range: {port}")

        ip, interface = parse_address(address)
        base_type, protocol = decode_protocol(service_type, limits.service_type_max_length)

        service = DnssdService(
            name=instance_name,
            host_name=_truncate_utf8(host_name, limits.host_name_max_length),
            type=base_type,
            protocol=protocol,
            port=port,
            interface=interface,
        )
        if text_entries is not None:
            self._collect_text_entries(text_entries, arena)
            # Assigned after validation so the record shares the arena's list.
            service.text_entries = arena.entries
        return service, ip

    def _collect_text_entries(self, text_entries: Any, arena: TextEntryArena) -> None:
        binding = self.binding
        if not binding.has_text_accessor:
            raise IncorrectStateError("No text accessor bound")

        try:
            keys = binding.text_entry_keys(text_entries)
        except Exception as e:
            logger.exception("Text accessor raised", entry_point="text_entry_keys")
            raise BackendFaultError("text_entry_keys", str(e)) from e

        for index, key in enumerate(keys):
            try:
                data = binding.text_entry_data(text_entries, key)
            except Exception as e:
                logger.exception("Text accessor raised", entry_point="text_entry_data", key=key)
                raise BackendFaultError("text_entry_data", str(e)) from e
            try:
                entry = arena.add(key, data)
            except MemoryError as e:
                logger.error("TXT entry allocation failure", key=key)
                raise OutOfMemoryError("Failed to allocate TXT entry") from e

            if entry.data is None:
                logger.debug("TXT entry", index=index, key=entry.key, value=None)
            else:
                logger.debug("TXT entry", index=index, key=entry.key, value=entry.data.decode("utf-8", errors="replace"))

    # --- browse path ---

    def handle_browse(
        self,
        instance_names: Iterable[str] | None,
        service_type: str | None,
        callback_handle: Callable[..., Any] | None,
        context_handle: Any,
    ) -> None:
        if callback_handle is None:
            logger.error("Browse result delivered without a callback", service_type=service_type)
            return

        try:
            services = self._build_browse_batch(instance_names or [], service_type or "")
        except DnssdError as e:
            # One bad entry discards the whole batch, including entries before it.
            logger.warning("Discarding browse batch", service_type=service_type, error=str(e))
            self.coordinator.deliver(callback_handle, context_handle, [], True, e)
            return
        except Exception as e:
            logger.exception("Unexpected error building browse batch", service_type=service_type)
            self.coordinator.deliver(callback_handle, context_handle, [], True, BackendFaultError("handle_browse", str(e)))
            return

        try:
            # Every batch is delivered as final; there is no "more coming" signal.
            self.coordinator.deliver(callback_handle, context_handle, services, True, None)
        finally:
            services.clear()

    def _build_browse_batch(self, instance_names: Iterable[str], service_type: str) -> list[DnssdService]:
        max_length = self.limits.instance_name_max_length
        base_type, protocol = decode_protocol(service_type, self.limits.service_type_max_length)

        services: list[DnssdService] = []
        for name in instance_names:
            if _utf8_length(name) > max_length:
                raise InvalidArgumentError(f"Instance name exceeds {max_length} bytes: {name!r}")
            services.append(DnssdService(name=name, type=base_type, protocol=protocol))
        return services


class ResultDispatcher:
    """
    The object handed to the backend on every browse and resolve. The backend
    calls `handle_resolve` / `handle_browse` on it, from any thread, when
    results arrive.
    """

    def __init__(self, marshaller: ResultMarshaller):
        self._marshaller = marshaller

    def handle_resolve(
        self,
        instance_name: str | None,
        service_type: str | None,
        host_name: str | None,
        address: str | None,
        port: int | None,
        text_entries: Any,
        callback_handle: Callable[..., Any] | None,
        context_handle: Any,
    ) -> None:
        self._marshaller.handle_resolve(
            instance_name, service_type, host_name, address, port, text_entries, callback_handle, context_handle
        )

    def handle_browse(
        self,
        instance_names: Iterable[str] | None,
        service_type: str | None,
        callback_handle: Callable[..., Any] | None,
        context_handle: Any,
    ) -> None:
        self._marshaller.handle_browse(instance_names, service_type, callback_handle, context_handle)

    def text_entry_keys(self, text_entries: Any) -> list[str]:
        binding = self._marshaller.binding
        if binding.text_entry_keys is None:
            raise IncorrectStateError("No text accessor bound")
        return list(binding.text_entry_keys(text_entries))

    def text_entry_data(self, text_entries: Any, key: str) -> bytes | None:
        binding = self._marshaller.binding
        if binding.text_entry_data is None:
            raise IncorrectStateError("No text accessor bound")
        return binding.text_entry_data(text_entries, key)
