"""
Select the IP address a request should be geolocated for
"""

import ipaddress
from typing import Iterable, Mapping, Optional, Tuple

from .config import REAL_IP_HEADERS


class UnresolvableAddressError(ValueError):
    """No query parameter, header or peer address supplied an IP to resolve"""


def is_ip_literal(value: Optional[str]) -> bool:
    if not value:
        return False
    try:
        addr = ipaddress.ip_address(value)
    except ValueError:
        return False
    # zone-scoped IPv6 ("fe80::1%eth0") is not a plain literal
    return getattr(addr, "scope_id", None) is None


def split_host_port(addr: str) -> Tuple[str, Optional[str]]:
    """
    Split a peer address into host and port.

    Handles "1.2.3.4:80", "1.2.3.4", "[::1]:80", "[::1]" and bare "::1".
    An unbracketed value with more than one colon is an IPv6 host without port.
    """
    addr = addr.strip()
    if addr.startswith("["):
        end = addr.find("]")
        if end == -1:
            return addr, None
        host = addr[1:end]
        rest = addr[end + 1:]
        port = rest[1:] if rest.startswith(":") and len(rest) > 1 else None
        return host, port
    if addr.count(":") == 1:
        host, port = addr.split(":", 1)
        return host, port or None
    return addr, None


def _header_value(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is None:
        return None
    if name.lower() == "x-forwarded-for":
        # client-most hop comes first
        value = value.split(",")[0]
    value = value.strip()
    return value or None


def resolve_ip(query_ip: Optional[str], headers: Mapping[str, str],
               remote_addr: Optional[str],
               header_names: Iterable[str] = REAL_IP_HEADERS) -> str:
    """
    Pick the address to resolve: a valid ``ip`` query value, then the first
    trusted real-IP header present, then the host part of the peer address.
    """
    if is_ip_literal(query_ip):
        return query_ip

    for name in header_names:
        value = _header_value(headers, name)
        if value:
            return value

    if remote_addr:
        host, _ = split_host_port(remote_addr)
        if host:
            return host

    raise UnresolvableAddressError("unable to find ip address to resolve")
