"""
Service-type codec: converts between a base type plus protocol and the dotted
wire form exchanged with the discovery backend.

    encode_full_type("_matter", "tcp")                   -> "_matter._tcp"
    encode_full_type_with_subtype("_matter._sub.foo", "tcp") -> "foo,_matter._tcp"
    decode_protocol("_matterc._udp")                     -> ("_matterc", DnssdServiceProtocol.UDP)
"""
import structlog

from ..exceptions import InvalidArgumentError
from ..models.common import DnssdServiceProtocol

logger = structlog.get_logger(__name__)

PROTOCOL_TCP_SUFFIX = "._tcp"
PROTOCOL_UDP_SUFFIX = "._udp"
SUBTYPE_DELIMITER = "._sub."

_SUFFIX_TO_PROTOCOL = {
    PROTOCOL_TCP_SUFFIX: DnssdServiceProtocol.TCP,
    PROTOCOL_UDP_SUFFIX: DnssdServiceProtocol.UDP,
}


def encode_full_type(type_: str, protocol: DnssdServiceProtocol | str) -> str:
    """Appends the protocol suffix. Any protocol other than UDP is encoded as TCP."""
    return f"{type_}{DnssdServiceProtocol(protocol).suffix}"


def encode_full_type_with_subtype(type_: str, protocol: DnssdServiceProtocol | str) -> str:
    """Encodes a browse query, moving a `._sub.` subtype into the backend's
    `<subtype>,<base-type>._tcp|._udp` filter grammar."""
    base_type, delimiter, subtype = type_.partition(SUBTYPE_DELIMITER)
    if not delimiter:
        return encode_full_type(type_, protocol)
    return f"{subtype},{encode_full_type(base_type, protocol)}"


def split_subtype_query(full_type: str) -> tuple[str | None, str]:
    """Inverse of the subtype query grammar: "foo,_matter._tcp" -> ("foo", "_matter._tcp")."""
    subtype, comma, base_full_type = full_type.partition(",")
    if not comma:
        return None, full_type
    return subtype, base_full_type


def decode_protocol(wire_type: str, max_base_length: int | None = None) -> tuple[str, DnssdServiceProtocol]:
    """Splits a wire type at its last dot into (base type, protocol).

    Raises:
        InvalidArgumentError: no dot, a suffix other than exactly `._tcp`/`._udp`,
            or a base type longer than `max_base_length` bytes.
    """
    dot_pos = wire_type.rfind(".")
    if dot_pos < 0:
        raise InvalidArgumentError(f"Service type has no protocol suffix: {wire_type!r}")

    base_type = wire_type[:dot_pos]
    if max_base_length is not None and len(base_type.encode("utf-8")) > max_base_length:
        raise InvalidArgumentError(f"Service type exceeds {max_base_length} bytes: {base_type!r}")

    protocol = _SUFFIX_TO_PROTOCOL.get(wire_type[dot_pos:])
    if protocol is None:
        logger.error("Protocol suffix is neither TCP nor UDP", wire_type=wire_type)
        raise InvalidArgumentError(f"Unknown protocol suffix in {wire_type!r}")
    return base_type, protocol
