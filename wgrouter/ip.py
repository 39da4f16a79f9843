"""Minimal parsing of IPv4 and IPv6 headers for cryptokey routing."""

from __future__ import annotations

import ipaddress
import struct

VERSION_IP4 = 4
VERSION_IP6 = 6

_IPV4_HEADER = struct.Struct("!2xH8x4s4s")
_IPV6_HEADER = struct.Struct("!4xH2x16s16s")

IPV6_HEADER_SIZE = _IPV6_HEADER.size

Address = ipaddress.IPv4Address | ipaddress.IPv6Address


def _parse(packet: bytes) -> tuple[int, int, Address, Address] | None:
    if not packet:
        return None
    version = packet[0] >> 4
    if version == VERSION_IP4 and len(packet) >= _IPV4_HEADER.size:
        length, src, dst = _IPV4_HEADER.unpack_from(packet)
        return version, length, ipaddress.IPv4Address(src), ipaddress.IPv4Address(dst)
    if version == VERSION_IP6 and len(packet) >= _IPV6_HEADER.size:
        length, src, dst = _IPV6_HEADER.unpack_from(packet)
        return (
            version,
            length + IPV6_HEADER_SIZE,
            ipaddress.IPv6Address(src),
            ipaddress.IPv6Address(dst),
        )
    return None


def inner_length(packet: bytes) -> int | None:
    """Length of the IP packet as stated by its header, or None if unparsable."""
    parsed = _parse(packet)
    return parsed[1] if parsed else None


def source_address(packet: bytes) -> Address | None:
    """Source address of the IP packet, or None if unparsable."""
    parsed = _parse(packet)
    return parsed[2] if parsed else None


def destination_address(packet: bytes) -> Address | None:
    """Destination address of the IP packet, or None if unparsable."""
    parsed = _parse(packet)
    return parsed[3] if parsed else None