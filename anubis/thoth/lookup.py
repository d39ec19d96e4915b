"""IP-to-ASN lookup messages and a prefix-caching lookup service."""

from __future__ import annotations

import ipaddress
import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, Generic, Optional, Protocol, TypeVar, Union

logger = logging.getLogger(__name__)

V = TypeVar("V")

_Network = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]

_RESERVED_PREFIXES = (
    "10.0.0.0/8",  # RFC 1918
    "172.16.0.0/12",  # RFC 1918
    "192.168.0.0/16",  # RFC 1918
    "127.0.0.0/8",  # Loopback
    "169.254.0.0/16",  # Link-local
    "100.64.0.0/10",  # CGNAT
    "192.0.0.0/24",  # Protocol assignments
    "192.0.2.0/24",  # TEST-NET-1
    "198.18.0.0/15",  # Benchmarking
    "198.51.100.0/24",  # TEST-NET-2
    "203.0.113.0/24",  # TEST-NET-3
    "240.0.0.0/4",  # Reserved
    "255.255.255.255/32",  # Broadcast
    "fc00::/7",  # Unique local address
    "fe80::/10",  # Link-local
    "::1/128",  # Loopback
    "::/128",  # Unspecified
    "100::/64",  # Discard-only
    "2001:db8::/32",  # Documentation
)


@dataclass(frozen=True)
class LookupRequest:
    """A request for information about one IP address."""

    ip_address: str


@dataclass
class LookupResponse:
    """What is known about an IP address's routing and origin."""

    announced: bool = False
    as_number: int = 0
    cidr: list[str] = field(default_factory=list)
    country_code: str = ""
    description: str = ""


class LookupError_(Exception):
    """Raised when an IP-to-ASN lookup cannot be answered."""


class _IPToASNService(Protocol):
    def lookup(
        self, request: LookupRequest, timeout: Optional[float] = None
    ) -> LookupResponse: ...


class PrefixTable(Generic[V]):
    """Longest-prefix-match table from IP networks to values."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._routes: Dict[int, Dict[int, Dict[_Network, V]]] = {4: {}, 6: {}}

    def insert(self, prefix, value: V) -> None:
        """Store ``value`` for ``prefix``; host bits are masked off.

        Raises ValueError if ``prefix`` is not a network.
        """
        network = ipaddress.ip_network(str(prefix), strict=False)
        with self._lock:
            self._routes[network.version].setdefault(network.prefixlen, {})[network] = value

    def lookup(self, address) -> Optional[V]:
        """Return the value of the most specific prefix holding ``address``, or None."""
        addr = ipaddress.ip_address(str(address))
        with self._lock:
            by_length = self._routes[addr.version]
            for length in sorted(by_length, reverse=True):
                network = ipaddress.ip_network((addr, length), strict=False)
                bucket = by_length[length]
                if network in bucket:
                    return bucket[network]
        return None

    def __len__(self) -> int:
        with self._lock:
            return sum(
                len(bucket) for routes in self._routes.values() for bucket in routes.values()
            )


class IPToASNWithCache:
    """Lookup service that answers from cached prefixes before asking another service."""

    def __init__(self, next_service: _IPToASNService) -> None:
        self.next = next_service
        self.table: PrefixTable[LookupResponse] = PrefixTable()
        for prefix in _RESERVED_PREFIXES:
            self.table.insert(prefix, LookupResponse(announced=False))

    def lookup(
        self, request: LookupRequest, timeout: Optional[float] = None
    ) -> LookupResponse:
        try:
            addr = ipaddress.ip_address(request.ip_address)
        except ValueError as exc:
            raise LookupError_(f"input is not an IP address: {exc}") from exc

        cached = self.table.lookup(addr)
        if cached is not None:
            return cached

        response = self.next.lookup(request, timeout=timeout)

        errors = []
        for cidr in response.cidr:
            try:
                self.table.insert(cidr, response)
            except ValueError as exc:
                errors.append(str(exc))
        if errors:
            logger.error("errors parsing IP prefixes: %s", "; ".join(errors))

        return response