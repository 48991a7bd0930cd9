"""
Discovery backend built on python-zeroconf.

Implements the resolver and browser entry points the bridge binds to. Results
are handed back through the bridge's result dispatcher from zeroconf's own
threads (browse) or from this backend's resolver pool (resolve), never from
the thread that made the call.
"""
import socket
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any

import structlog
from zeroconf import InterfaceChoice, IPVersion, ServiceBrowser, ServiceInfo, ServiceStateChange, Zeroconf

from ..config import ZeroconfConfig
from ..dnssd.codec import split_subtype_query
from .network import get_advertised_addresses, get_interface_ips

logger = structlog.get_logger(__name__)

_IP_VERSIONS = {
    "all": IPVersion.All,
    "v4": IPVersion.V4Only,
    "v6": IPVersion.V6Only,
}


class ZeroconfBackend:
    """
    Host discovery backend for DnssdBridge. Bind it with `bridge.bind(backend)`.
    """

    def __init__(self, zeroconf_config: ZeroconfConfig | None = None, zeroconf: Zeroconf | None = None):
        self.config = zeroconf_config or ZeroconfConfig()
        self.logger = logger.bind(service="ZeroconfBackend")
        self._ip_version = _IP_VERSIONS.get(self.config.ip_version.lower(), IPVersion.All)
        self._zc = zeroconf or Zeroconf(interfaces=self._interface_choice(), ip_version=self._ip_version)
        self._resolver_pool = ThreadPoolExecutor(
            max_workers=self.config.resolver_workers, thread_name_prefix="dnssd-resolve"
        )
        self._lock = threading.Lock() # guards _browsers and _published
        self._browsers: dict[Callable[..., Any], list[ServiceBrowser]] = {}
        self._published: dict[str, ServiceInfo] = {}

    def _interface_choice(self) -> InterfaceChoice | list[str]:
        if not self.config.interfaces:
            return InterfaceChoice.All
        addresses: list[str] = []
        for iface in self.config.interfaces:
            addresses.extend(sorted(get_interface_ips(iface)))
        return addresses or InterfaceChoice.All

    def _qualify(self, full_type: str) -> str:
        """ "_matter._tcp" -> "_matter._tcp.local." """
        return f"{full_type}.{self.config.domain}"

    # --- browser ---

    def browse(self, full_type: str, callback_handle: Callable[..., Any], context_handle: Any, result_dispatcher: Any) -> None:
        subtype, base_full_type = split_subtype_query(full_type)
        qualified_base = self._qualify(base_full_type)
        query_type = f"{subtype}._sub.{qualified_base}" if subtype else qualified_base
        log = self.logger.bind(query_type=query_type)

        def on_service_state_change(
            zeroconf: Zeroconf, service_type: str, name: str, state_change: ServiceStateChange
        ) -> None:
            if state_change is not ServiceStateChange.Added:
                return
            instance_name = name[: -len(qualified_base) - 1] if name.endswith("." + qualified_base) else name
            log.debug("Service instance found", instance_name=instance_name)
            result_dispatcher.handle_browse([instance_name], base_full_type, callback_handle, context_handle)

        browser = ServiceBrowser(self._zc, query_type, handlers=[on_service_state_change])
        with self._lock:
            self._browsers.setdefault(callback_handle, []).append(browser)
        log.info("Browsing")

    def stop_browse(self, callback_handle: Callable[..., Any]) -> None:
        with self._lock:
            browsers = self._browsers.pop(callback_handle, [])
        for browser in browsers:
            browser.cancel()
        self.logger.info("Browsing stopped", browsers=len(browsers))

    # --- resolver ---

    def resolve(
        self,
        instance_name: str,
        full_type: str,
        callback_handle: Callable[..., Any],
        context_handle: Any,
        result_dispatcher: Any,
    ) -> None:
        self._resolver_pool.submit(
            self._resolve_blocking, instance_name, full_type, callback_handle, context_handle, result_dispatcher
        )

    def _resolve_blocking(
        self,
        instance_name: str,
        full_type: str,
        callback_handle: Callable[..., Any],
        context_handle: Any,
        result_dispatcher: Any,
    ) -> None:
        qualified_type = self._qualify(full_type)
        log = self.logger.bind(instance_name=instance_name, service_type=qualified_type)
        host_name = address = text_entries = None
        port = 0
        try:
            info = ServiceInfo(qualified_type, f"{instance_name}.{qualified_type}")
            if info.request(self._zc, self.config.resolve_timeout_ms):
                addresses = info.parsed_addresses(IPVersion.V4Only) or info.parsed_addresses()
                address = addresses[0] if addresses else None
                port = info.port or 0
                host_name = (info.server or "").removesuffix("." + self.config.domain)
                text_entries = {
                    (k.decode("utf-8", errors="replace") if isinstance(k, bytes) else k): v
                    for k, v in info.properties.items()
                }
                log.debug("Resolved", address=address, port=port, host_name=host_name)
            else:
                log.warning("Resolve request timed out or returned no info")
        except Exception as e:
            log.exception("Error resolving service", error=str(e))
        # Exactly one delivery per request; a missing address/port reports the failure.
        result_dispatcher.handle_resolve(
            instance_name, full_type, host_name, address, port, text_entries, callback_handle, context_handle
        )

    def publish(
        self,
        name: str,
        host_name: str,
        full_type: str,
        port: int,
        keys: list[str],
        values: list[bytes],
        subtypes: list[str],
    ) -> None:
        qualified_type = self._qualify(full_type)
        server = f"{host_name or socket.gethostname()}.{self.config.domain}"
        info = ServiceInfo(
            qualified_type,
            f"{name}.{qualified_type}",
            port=port,
            properties=dict(zip(keys, values)),
            server=server,
            parsed_addresses=get_advertised_addresses(self.config.interfaces, self.config.ip_version),
        )
        log = self.logger.bind(instance_name=name, service_type=qualified_type)

        with self._lock:
            previous = self._published.pop(name, None)
        if previous is not None:
            log.debug("Replacing previously published service")
            self._zc.unregister_service(previous)

        self._zc.register_service(info)
        with self._lock:
            self._published[name] = info
        if subtypes:
            # zeroconf's registry is keyed by instance name, so only the base PTR is announced.
            log.warning("Subtype records are not announced by this backend", subtypes=subtypes)
        log.info("Service registered", server=server, port=port)

    def remove_services(self) -> None:
        with self._lock:
            published = list(self._published.values())
            self._published.clear()
        for info in published:
            self._zc.unregister_service(info)
        self.logger.info("Published services removed", count=len(published))

    def close(self) -> None:
        with self._lock:
            browsers = [b for group in self._browsers.values() for b in group]
            self._browsers.clear()
        for browser in browsers:
            browser.cancel()
        self.remove_services()
        self._resolver_pool.shutdown(wait=True)
        self._zc.close()
        self.logger.info("Zeroconf backend closed")
