"""Network interface helpers used to pick the addresses a published service advertises."""

import ipaddress
import platform
import subprocess
from typing import List, Set

import netifaces
import structlog

logger = structlog.get_logger(__name__)

def get_windows_interfaces() -> List[str]:
    """Get network interfaces on Windows using netsh.

    Returns:
        List[str]: List of interface names.
    """
    try:
        output = subprocess.check_output(
            ["netsh", "interface", "show", "interface"],
            universal_newlines=True
        )
        interfaces = []
        for line in output.split('\n'):
            parts = line.split()
            if len(parts) >= 4 and parts[0] == "Enabled":
                interfaces.append(" ".join(parts[3:]))
        return interfaces
    except (subprocess.SubprocessError, OSError) as e:
        logger.error("Failed to get Windows interfaces", error=str(e))
        return []

def get_linux_interfaces() -> List[str]:
    """Get network interfaces on Linux using the ip command, loopback excluded."""
    try:
        output = subprocess.check_output(
            ["ip", "link", "show"],
            universal_newlines=True
        )
        interfaces = []
        for line in output.split('\n'):
            if ": " in line and not line.startswith(" "):
                iface = line.split(": ")[1].split("@")[0]
                if iface != "lo":
                    interfaces.append(iface)
        return interfaces
    except (subprocess.SubprocessError, OSError) as e:
        logger.error("Failed to get Linux interfaces", error=str(e))
        return []

def get_network_interfaces(skip_loopback: bool = True) -> List[str]:
    """Get list of network interfaces in a platform-agnostic way.

    Args:
        skip_loopback: Whether to exclude loopback interfaces.

    Returns:
        List[str]: List of interface names.
    """
    try:
        interfaces = netifaces.interfaces()
        if skip_loopback:
            interfaces = [
                iface for iface in interfaces
                if not iface.lower().startswith(("lo", "loopback"))
            ]
        return interfaces
    except Exception as e:
        logger.warning("netifaces discovery failed, trying platform-specific fallback", error=str(e))
        if platform.system() == "Windows":
            return get_windows_interfaces()
        return get_linux_interfaces()

def get_interface_ips(interface: str) -> Set[str]:
    """Get all IP addresses for a given interface, IPv6 scope suffixes stripped."""
    addresses = set()
    try:
        addr_info = netifaces.ifaddresses(interface)
        for family in (netifaces.AF_INET, netifaces.AF_INET6):
            for addr in addr_info.get(family, []):
                if 'addr' in addr:
                    addresses.add(addr['addr'].split('%')[0])
        return addresses
    except (ValueError, KeyError, OSError) as e:
        logger.error("Failed to get addresses for interface", interface=interface, error=str(e))
        return set()

def get_active_interfaces() -> List[str]:
    """Get list of non-loopback interfaces that have at least one IP address."""
    return [
        iface for iface in get_network_interfaces() if get_interface_ips(iface)
    ]

def get_advertised_addresses(interfaces: List[str], ip_version: str = "all") -> List[str]:
    """Addresses of the given interfaces (all active ones if empty), filtered by IP version.

    IPv4 addresses are listed before IPv6 ones.
    """
    addresses: Set[str] = set()
    for iface in interfaces or get_active_interfaces():
        addresses |= get_interface_ips(iface)

    parsed = sorted((ipaddress.ip_address(a) for a in addresses), key=lambda ip: (ip.version, int(ip)))
    if ip_version == "v4":
        parsed = [ip for ip in parsed if ip.version == 4]
    elif ip_version == "v6":
        parsed = [ip for ip in parsed if ip.version == 6]
    return [str(ip) for ip in parsed]
