from pydantic import Field

from .common import BasePydanticModel, DnssdServiceProtocol, IPAddressType


class TextEntry(BasePydanticModel):
    key: str
    # None marks a key with no value ("absent"), which is not the same as b""
    data: bytes | None = None

class DnssdService(BasePydanticModel):
    name: str = "" # Instance name, e.g. "2906C908D115D362-8FC7772401CD0696"
    host_name: str = ""
    type: str = "" # Base type with the protocol suffix stripped, e.g. "_matter"
    protocol: DnssdServiceProtocol = DnssdServiceProtocol.UNKNOWN
    port: int = Field(default=0, ge=0, le=0xFFFF)
    interface: str | None = None # Interface the address was scoped to, if any
    address_type: IPAddressType = IPAddressType.ANY
    text_entries: list[TextEntry] = Field(default_factory=list)
    subtypes: list[str] = Field(default_factory=list)

class PublishRequest(BasePydanticModel):
    """Marshalled form of a service handed to the backend's publish entry point.

    Built and consumed within a single publish call; never stored.
    """
    name: str
    host_name: str
    full_type: str
    port: int
    keys: list[str] = Field(default_factory=list)
    values: list[bytes] = Field(default_factory=list)
    subtypes: list[str] = Field(default_factory=list)
