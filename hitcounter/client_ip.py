"""Client address resolution and optional anonymization."""

from __future__ import annotations

import ipaddress
from collections.abc import Mapping

FORWARDED_FOR_HEADER = "x-forwarded-for"
REAL_IP_HEADER = "x-real-ip"


def resolve_client_address(headers: Mapping[str, str], peer: str | None) -> str:
    """
    Pick the visitor address for a request.

    Preference order is the first X-Forwarded-For entry, then X-Real-IP, then
    the transport peer. Header lookups expect a case-insensitive mapping such
    as Starlette's Headers.
    """

    forwarded = headers.get(FORWARDED_FOR_HEADER)
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = (headers.get(REAL_IP_HEADER) or "").strip()
    if real_ip:
        return real_ip

    return (peer or "").strip()


def _anonymize_ipv6(address: str) -> str:
    try:
        parsed = ipaddress.IPv6Address(address)
    except ValueError:
        groups = address.split(":")[:4]
        return f"{':'.join(groups)}::/64"

    if parsed.ipv4_mapped is not None:
        return anonymize_address(str(parsed.ipv4_mapped))
    network = ipaddress.IPv6Network((int(parsed), 64), strict=False)
    return f"{network.network_address}/64"


def anonymize_address(address: str) -> str:
    """Truncate IPv4 to its /24 and IPv6 to its /64; leave anything else untouched."""

    if not address:
        return address

    try:
        ipv4 = ipaddress.IPv4Address(address)
    except ValueError:
        ipv4 = None
    if ipv4 is not None:
        network = ipaddress.IPv4Network(f"{ipv4}/24", strict=False)
        return str(network)

    if ":" in address:
        return _anonymize_ipv6(address)
    return address
