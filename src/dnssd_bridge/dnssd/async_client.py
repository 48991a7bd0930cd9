"""
Asyncio facade over DnssdBridge.

Bridge callbacks run on backend-owned threads; results are copied there and
handed to the event loop with `call_soon_threadsafe`. Call-outs to the bridge
run in the loop's default executor so a blocking backend never stalls the loop.
"""
import asyncio
import functools
from collections.abc import AsyncGenerator
from typing import Any, NamedTuple

import structlog

from ..models.common import DnssdServiceProtocol, IPAddressType
from ..models.service import DnssdService
from .bridge import DnssdBridge

logger = structlog.get_logger(__name__)


class ResolveResult(NamedTuple):
    service: DnssdService
    addresses: list


def _call_threadsafe(loop: asyncio.AbstractEventLoop, fn: Any, *args: Any) -> None:
    try:
        loop.call_soon_threadsafe(fn, *args)
    except RuntimeError:
        # The loop is gone; a delivery that raced stop_browse or a timeout.
        logger.debug("Dropping result delivered after its event loop closed")


class AsyncDnssdClient:
    def __init__(self, bridge: DnssdBridge):
        self.bridge = bridge
        self.logger = logger.bind(service="AsyncDnssdClient")

    async def resolve(
        self,
        service: DnssdService,
        interface: str | None = None,
        timeout: float | None = None,
    ) -> ResolveResult:
        """Resolves one instance. Raises the DnssdError the backend result carried, if any."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future[ResolveResult] = loop.create_future()

        def set_outcome(result: ResolveResult | None, error: Exception | None) -> None:
            if future.done():
                return
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(result)

        def on_resolved(context: Any, resolved: DnssdService | None, addresses: list, error: Exception | None) -> None:
            # TXT entries are released when this callback returns, so copy now.
            result = None if resolved is None else ResolveResult(resolved.model_copy(deep=True), list(addresses))
            _call_threadsafe(loop, set_outcome, result, error)

        await loop.run_in_executor(None, functools.partial(self.bridge.resolve, service, interface, on_resolved, None))
        return await asyncio.wait_for(future, timeout)

    async def browse(
        self,
        type_: str,
        protocol: DnssdServiceProtocol | str = DnssdServiceProtocol.TCP,
        address_type: IPAddressType | str = IPAddressType.ANY,
        interface: str | None = None,
    ) -> AsyncGenerator[list[DnssdService], None]:
        """Yields browse batches until the consumer stops iterating, then stops the session.

        Batches the bridge rejected (malformed names or type) are logged and skipped.
        """
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[list[DnssdService]] = asyncio.Queue()
        log = self.logger.bind(type=type_, protocol=str(protocol))

        def on_browse(context: Any, services: list[DnssdService], finished: bool, error: Exception | None) -> None:
            if error is not None:
                log.warning("Browse batch rejected", error=str(error))
                return
            batch = [s.model_copy(deep=True) for s in services]
            _call_threadsafe(loop, queue.put_nowait, batch)

        browse_started = loop.run_in_executor(
            None, functools.partial(self.bridge.browse, type_, protocol, address_type, interface, on_browse, None)
        )
        try:
            session_id = await asyncio.shield(browse_started)
        except asyncio.CancelledError:
            # The executor call still completes; stop the session it creates.
            browse_started.add_done_callback(functools.partial(self._stop_orphaned_browse, loop))
            raise
        try:
            while True:
                yield await queue.get()
        finally:
            log.debug("Stopping browse", session_id=session_id)
            await loop.run_in_executor(None, self.bridge.stop_browse, session_id)

    def _stop_orphaned_browse(self, loop: asyncio.AbstractEventLoop, browse_started: asyncio.Future) -> None:
        if browse_started.cancelled() or browse_started.exception() is not None:
            return
        session_id = browse_started.result()
        self.logger.debug("Stopping browse abandoned during start", session_id=session_id)
        loop.run_in_executor(None, self.bridge.stop_browse, session_id)

    async def publish(self, service: DnssdService) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.bridge.publish_service, service)

    async def remove_services(self) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.bridge.remove_services)
