"""
DNS-SD bridge core: codec, session registry, result marshalling, dispatch
coordination and the public operation surface.
"""

from .binding import BackendBinding, MappingTextAccessor
from .bridge import DnssdBridge
from .codec import decode_protocol, encode_full_type, encode_full_type_with_subtype
from .coordinator import DispatchCoordinator, get_default_coordinator
from .marshaller import ResultDispatcher, ResultMarshaller, TextEntryArena
from .registry import SessionRegistry

__all__ = [
    "BackendBinding",
    "DispatchCoordinator",
    "DnssdBridge",
    "MappingTextAccessor",
    "ResultDispatcher",
    "ResultMarshaller",
    "SessionRegistry",
    "TextEntryArena",
    "decode_protocol",
    "encode_full_type",
    "encode_full_type_with_subtype",
    "get_default_coordinator",
]
