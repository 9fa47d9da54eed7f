"""Conversions between dotted IPv4 strings and their network-order bytes."""

from __future__ import annotations

import ipaddress

IP_LEN = 4


def get_ip_bytes(ip_str: str) -> bytes:
    """Return the four network-order bytes of a dotted IPv4 address.

    Raises ValueError if ``ip_str`` is not a valid IPv4 address.
    """
    if not isinstance(ip_str, str):
        raise ValueError(f"invalid IPv4 address: {ip_str!r}")
    try:
        return ipaddress.IPv4Address(ip_str).packed
    except ValueError as exc:
        raise ValueError(f"invalid IPv4 address: {ip_str!r}") from exc


def ip_bytes_to_string(ip_bytes: bytes) -> str:
    """Return the dotted form of the first four bytes of ``ip_bytes``.

    Raises ValueError if fewer than four bytes are given.
    """
    raw = bytes(ip_bytes[:IP_LEN])
    if len(raw) != IP_LEN:
        raise ValueError(f"need {IP_LEN} bytes for an IPv4 address, got {len(raw)}")
    return str(ipaddress.IPv4Address(raw))