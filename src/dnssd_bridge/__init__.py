"""DNS-SD Bridge - exposes DNS-SD browse/resolve/publish over a host-supplied discovery backend.

The bridge owns browse-session bookkeeping, TXT-record reconstruction, the
service-type codec and the locking discipline around backend call-outs. The
mDNS protocol work itself is delegated to whatever backend is bound.
"""

__version__ = "0.1.0"

from .config import BridgeConfig
from .dnssd.bridge import DnssdBridge
from .exceptions import DnssdError

__all__ = ["BridgeConfig", "DnssdBridge", "DnssdError"]
