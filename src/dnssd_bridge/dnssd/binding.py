"""
Discovery backend capability binding.

The backend is any object (or pair of objects) exposing:

    resolver.resolve(instance_name, full_type, callback_handle, context_handle, result_dispatcher)
    resolver.publish(name, host_name, full_type, port, keys, values, subtypes)
    resolver.remove_services()
    browser.browse(full_type, callback_handle, context_handle, result_dispatcher)
    browser.stop_browse(callback_handle)

and, for TXT maps handed back on resolve, a text accessor exposing:

    text_accessor.text_entry_keys(text_entries) -> ordered keys, str or UTF-8 bytes
    text_accessor.text_entry_data(text_entries, key) -> bytes | None

Each entry point is looked up once, at bind time.
"""
from collections.abc import Callable, Mapping
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

RESOLVER_ENTRY_POINTS = ("resolve", "publish", "remove_services")
BROWSER_ENTRY_POINTS = ("browse", "stop_browse")
TEXT_ACCESSOR_ENTRY_POINTS = ("text_entry_keys", "text_entry_data")


class MappingTextAccessor:
    """Reads TXT maps that are plain ``Mapping[str | bytes, bytes | None]`` objects, in insertion order.

    Keys may be str or UTF-8 encoded bytes; anything else is rejected when the
    entry is copied.
    """

    def text_entry_keys(self, text_entries: Mapping[str | bytes, Any]) -> list[str | bytes]:
        return list(text_entries.keys())

    def text_entry_data(self, text_entries: Mapping[str | bytes, Any], key: str | bytes) -> bytes | None:
        return text_entries.get(key)


def _lookup(owner: Any, role: str, name: str) -> Callable[..., Any] | None:
    entry_point = getattr(owner, name, None) if owner is not None else None
    if not callable(entry_point):
        logger.error("Failed to access backend entry point", role=role, entry_point=name)
        return None
    return entry_point


class BackendBinding:
    """Entry points resolved from the host's backend objects. Absent ones stay None."""

    def __init__(self) -> None:
        self.resolve: Callable[..., Any] | None = None
        self.publish: Callable[..., Any] | None = None
        self.remove_services: Callable[..., Any] | None = None
        self.browse: Callable[..., Any] | None = None
        self.stop_browse: Callable[..., Any] | None = None
        self.text_entry_keys: Callable[..., Any] | None = None
        self.text_entry_data: Callable[..., Any] | None = None

    @classmethod
    def bind(cls, resolver: Any, browser: Any = None, text_accessor: Any = None) -> "BackendBinding":
        """Resolves every entry point once. `browser` defaults to `resolver`,
        `text_accessor` to a MappingTextAccessor."""
        binding = cls()
        if browser is None:
            browser = resolver
        if text_accessor is None:
            text_accessor = MappingTextAccessor()

        for name in RESOLVER_ENTRY_POINTS:
            setattr(binding, name, _lookup(resolver, "resolver", name))
        for name in BROWSER_ENTRY_POINTS:
            setattr(binding, name, _lookup(browser, "browser", name))
        for name in TEXT_ACCESSOR_ENTRY_POINTS:
            setattr(binding, name, _lookup(text_accessor, "text_accessor", name))

        logger.info("Discovery backend bound", missing=binding.missing_entry_points())
        return binding

    def missing_entry_points(self) -> list[str]:
        names = RESOLVER_ENTRY_POINTS + BROWSER_ENTRY_POINTS + TEXT_ACCESSOR_ENTRY_POINTS
        return [name for name in names if getattr(self, name) is None]

    @property
    def has_text_accessor(self) -> bool:
        return self.text_entry_keys is not None and self.text_entry_data is not None
