from enum import Enum

from pydantic import BaseModel


class BasePydanticModel(BaseModel):
    model_config = {
        "extra": "forbid",
        "populate_by_name": True,
        "use_enum_values": True,
    }

class DnssdServiceProtocol(str, Enum):
    TCP = "tcp"
    UDP = "udp"
    UNKNOWN = "unknown"

    @property
    def suffix(self) -> str:
        """Wire suffix appended to a base type. Anything but UDP is sent as TCP."""
        return "._udp" if self is DnssdServiceProtocol.UDP else "._tcp"

class IPAddressType(str, Enum):
    ANY = "any"
    IPV4 = "ipv4"
    IPV6 = "ipv6"
