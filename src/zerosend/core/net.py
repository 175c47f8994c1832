"""Client address parsing.

Addresses end up in INET columns, so anything that is not a literal IPv4 or
IPv6 address is treated as absent.
"""

from __future__ import annotations

import ipaddress


def parse_ip(value: str | None) -> str | None:
    """Return ``value`` in canonical form if it is an IP address, else None.

    Surrounding whitespace and IPv6 brackets are ignored; ports and host
    names are not accepted.
    """
    if not value:
        return None
    candidate = value.strip()
    if candidate.startswith("[") and candidate.endswith("]"):
        candidate = candidate[1:-1]
    try:
        return str(ipaddress.ip_address(candidate))
    except ValueError:
        return None
