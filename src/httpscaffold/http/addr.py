"""
Network address helpers.

Addresses travel through the server as "host:port" strings, the same
shape used for the listen address in Options and for the remote address
on each Request. IPv6 hosts are bracketed: "[::1]:8080".
"""

import ipaddress
from typing import Tuple


def split_host_port(hostport: str) -> Tuple[str, str]:
    """
    Split "host:port" (or "[v6host]:port") into host and port.

    The port is returned as a string and may be empty ("host:").

    Raises:
        ValueError: If the string has no port or has stray brackets/colons.

    Example:
        split_host_port("127.0.0.1:8080")  → ("127.0.0.1", "8080")
        split_host_port("[::1]:443")       → ("::1", "443")
        split_host_port(":8080")           → ("", "8080")
    """
    if hostport.startswith("["):
        end = hostport.find("]")
        if end < 0:
            raise ValueError(f"missing ']' in address: {hostport!r}")
        host = hostport[1:end]
        rest = hostport[end + 1:]
        if not rest.startswith(":"):
            raise ValueError(f"missing port in address: {hostport!r}")
        port = rest[1:]
    else:
        host, sep, port = hostport.rpartition(":")
        if not sep:
            raise ValueError(f"missing port in address: {hostport!r}")
        if ":" in host:
            raise ValueError(f"too many colons in address: {hostport!r}")

    if "[" in port or "]" in port:
        raise ValueError(f"unexpected bracket in address: {hostport!r}")

    return host, port


def join_host_port(host: str, port: int) -> str:
    """Inverse of split_host_port. IPv6 hosts get brackets."""
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def client_ip(remote_addr: str) -> str:
    """
    Extract the client IP from a remote "host:port" address.

    - The port is stripped.
    - If the address cannot be split, the raw string is returned.
    - IPv4-mapped IPv6 addresses (::ffff:10.0.0.1) are shown as IPv4.

    Example:
        client_ip("10.0.0.1:52341")          → "10.0.0.1"
        client_ip("[::ffff:10.0.0.1]:52341") → "10.0.0.1"
        client_ip("garbage")                 → "garbage"
    """
    try:
        host, _ = split_host_port(remote_addr)
    except ValueError:
        return remote_addr

    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        return host

    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        return str(ip.ipv4_mapped)
    return str(ip)
