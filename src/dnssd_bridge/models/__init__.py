"""
Pydantic models for the DNS-SD bridge.
"""
from .common import BasePydanticModel, DnssdServiceProtocol, IPAddressType
from .service import DnssdService, PublishRequest, TextEntry

__all__ = [
    "BasePydanticModel",
    "DnssdService",
    "DnssdServiceProtocol",
    "IPAddressType",
    "PublishRequest",
    "TextEntry",
]
