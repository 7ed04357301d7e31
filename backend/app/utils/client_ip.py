"""
Client IP resolution and allow-list matching for exam admission.

Both functions are pure: they take plain header mappings and strings, never a
framework request object.
"""
import ipaddress
from typing import Iterable, List, Mapping, Optional

UNKNOWN_IP = "unknown"
LOCALHOST = "127.0.0.1"


def normalize_ip(ip: str) -> str:
    """Collapse IPv6 localhost and IPv4-mapped IPv6 addresses to IPv4 form"""
    ip = ip.strip()
    if ip.startswith("[") and ip.endswith("]"):
        ip = ip[1:-1]
    try:
        addr = ipaddress.ip_address(ip)
    except ValueError:
        return ip
    if addr.version == 6:
        if addr.is_loopback:
            return LOCALHOST
        if addr.ipv4_mapped is not None:
            return str(addr.ipv4_mapped)
    return str(addr)


def resolve_client_ip(
    headers: Mapping[str, str],
    connection_ip: Optional[str] = None,
    development: bool = False,
) -> str:
    """
    Pick the client IP from a proxy header chain.

    Precedence: x-client-ip, first x-forwarded-for entry, x-real-ip, then the
    connection address. Header names are matched case-insensitively.
    """
    lowered = {str(k).lower(): v for k, v in headers.items()}

    candidates = [
        lowered.get("x-client-ip"),
        (lowered.get("x-forwarded-for") or "").split(",")[0],
        lowered.get("x-real-ip"),
        connection_ip,
    ]
    client_ip = next((c.strip() for c in candidates if c and c.strip()), UNKNOWN_IP)

    if client_ip == UNKNOWN_IP:
        return LOCALHOST if development else UNKNOWN_IP
    return normalize_ip(client_ip)


def parse_allow_list(allowed: Optional[str]) -> List[str]:
    if not allowed:
        return []
    return [entry.strip() for entry in allowed.split(",") if entry.strip()]


def ip_allowed(client_ip: str, allow_list: Iterable[str]) -> bool:
    """Exact address match, or membership when an entry is a CIDR network"""
    try:
        addr = ipaddress.ip_address(client_ip)
    except ValueError:
        addr = None

    for entry in allow_list:
        if "/" in entry:
            if addr is None:
                continue
            try:
                if addr in ipaddress.ip_network(entry, strict=False):
                    return True
            except ValueError:
                continue
        elif normalize_ip(entry) == client_ip:
            return True
    return False
