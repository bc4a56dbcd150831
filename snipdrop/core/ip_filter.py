"""Extract public uploader IP addresses from proxy headers (for notifications only)."""

import ipaddress
from collections.abc import Mapping

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address

# Cloudflare edge ranges; a hop through the proxy is not the uploader.
CLOUDFLARE_NETWORKS = [
    ipaddress.ip_network(net)
    for net in (
        "173.245.48.0/20",
        "103.21.244.0/22",
        "103.22.200.0/22",
        "103.31.4.0/22",
        "141.101.64.0/18",
        "108.162.192.0/18",
        "190.93.240.0/20",
        "188.114.96.0/20",
        "197.234.240.0/22",
        "198.41.128.0/17",
        "162.158.0.0/15",
        "104.16.0.0/13",
        "104.24.0.0/14",
        "172.64.0.0/13",
        "131.0.72.0/22",
        "2400:cb00::/32",
        "2606:4700::/32",
        "2803:f800::/32",
        "2405:b500::/32",
        "2405:8100::/32",
        "2a06:98c0::/29",
        "2c0f:f248::/32",
    )
]

# Checked in this order; the first header carries the most trusted value.
_SINGLE_VALUE_HEADERS = ("cf-connecting-ip", "cf-connecting-ipv6")
_LIST_HEADERS = ("x-forwarded-for",)


def _parse_ip(value: str) -> IPAddress | None:
    value = value.strip().strip('"')
    if value.startswith("[") and "]" in value:
        value = value[1 : value.index("]")]
    try:
        return ipaddress.ip_address(value)
    except ValueError:
        return None


def _forwarded_candidates(value: str) -> list[str]:
    """Pull the for= tokens out of an RFC 7239 Forwarded header."""
    candidates = []
    for element in value.split(","):
        for pair in element.split(";"):
            key, _, token = pair.strip().partition("=")
            if key.lower() == "for" and token:
                candidates.append(token)
    return candidates


def is_private_ip(ip: IPAddress) -> bool:
    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_unspecified
        or ip.is_multicast
        or ip.is_reserved
    )


def is_proxy_ip(ip: IPAddress) -> bool:
    return any(ip.version == net.version and ip in net for net in CLOUDFLARE_NETWORKS)


def extract_ip_addresses(headers: Mapping[str, str]) -> list[IPAddress]:
    """Return public, non-proxy client addresses found in *headers*, in order, without duplicates."""
    candidates: list[str] = []
    for name in _SINGLE_VALUE_HEADERS:
        if headers.get(name):
            candidates.append(headers[name])
    for name in _LIST_HEADERS:
        if headers.get(name):
            candidates.extend(headers[name].split(","))
    if headers.get("forwarded"):
        candidates.extend(_forwarded_candidates(headers["forwarded"]))
    if headers.get("x-real-ip"):
        candidates.append(headers["x-real-ip"])

    result: list[IPAddress] = []
    for candidate in candidates:
        ip = _parse_ip(candidate)
        if ip is None or is_private_ip(ip) or is_proxy_ip(ip):
            continue
        if ip not in result:
            result.append(ip)
    return result
