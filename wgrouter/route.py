"""Longest-prefix-match tables mapping allowed subnets to peers."""

from __future__ import annotations

import ipaddress
import threading
from typing import Generic, TypeVar

from .ip import Address, destination_address, source_address

T = TypeVar("T")


class _PrefixTable(Generic[T]):
    """Prefixes of one address family, grouped by prefix length."""

    def __init__(self, bits: int) -> None:
        self.bits = bits
        self.entries: dict[int, dict[int, T]] = {}

    def _mask(self, cidr: int) -> int:
        return ((1 << cidr) - 1) << (self.bits - cidr)

    def insert(self, address: int, cidr: int, value: T) -> None:
        self.entries.setdefault(cidr, {})[address & self._mask(cidr)] = value

    def delete(self, network: int, cidr: int) -> None:
        table = self.entries.get(cidr)
        if table is not None:
            table.pop(network, None)
            if not table:
                del self.entries[cidr]

    def longest_match(self, address: int) -> T | None:
        for cidr in sorted(self.entries, reverse=True):
            value = self.entries[cidr].get(address & self._mask(cidr))
            if value is not None:
                return value
        return None

    def collect(self, value: T) -> list[tuple[int, int]]:
        return sorted(
            (network, cidr)
            for cidr, table in self.entries.items()
            for network, stored in table.items()
            if stored == value
        )


class RoutingTable(Generic[T]):
    """Maps IPv4 and IPv6 subnets to values and looks up packets by address."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._tables: dict[int, _PrefixTable[T]] = {4: _PrefixTable(32), 6: _PrefixTable(128)}

    def insert(self, ip, cidr: int, value: T) -> None:
        """Map ``ip/cidr`` to ``value``; host bits of ``ip`` are cleared."""
        address = ipaddress.ip_address(ip)
        if not 0 <= cidr <= address.max_prefixlen:
            raise ValueError(f"invalid prefix length {cidr} for {address}")
        with self._lock:
            self._tables[address.version].insert(int(address), cidr, value)

    def list(self, value: T) -> list[tuple[Address, int]]:
        """All subnets mapped to ``value``, IPv4 before IPv6."""
        with self._lock:
            return [
                (ipaddress.ip_address(network) if version == 4
                 else ipaddress.IPv6Address(network), cidr)
                for version in (4, 6)
                for network, cidr in self._tables[version].collect(value)
            ]

    def remove(self, value: T) -> None:
        """Remove every subnet mapped to ``value``."""
        with self._lock:
            for table in self._tables.values():
                for network, cidr in table.collect(value):
                    table.delete(network, cidr)

    def _lookup(self, address: Address | None) -> T | None:
        if address is None:
            return None
        with self._lock:
            return self._tables[address.version].longest_match(int(address))

    def get_route(self, packet: bytes) -> T | None:
        """The value whose subnet best matches the packet's destination."""
        return self._lookup(destination_address(packet))

    def check_route(self, peer: T, packet: bytes) -> bool:
        """Whether the packet's source address is routed to ``peer``."""
        found = self._lookup(source_address(packet))
        return found is not None and found == peer