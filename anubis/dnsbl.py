"""Lookups against the DroneBL DNS blocklist."""

from __future__ import annotations

import enum
import ipaddress
import socket
from typing import Union

_Address = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

_ZONE = ".dnsbl.dronebl.org"

_NOT_FOUND_ERRNOS = frozenset(
    code
    for code in (getattr(socket, "EAI_NONAME", None), getattr(socket, "EAI_NODATA", None))
    if code is not None
)


class DroneBLResponse(enum.IntEnum):
    """Listing class reported by DroneBL for an address."""

    ALL_GOOD = 0
    IRC_DRONE = 3
    BOTTLER = 5
    UNKNOWN_SPAMBOT_OR_DRONE = 6
    DDOS_DRONE = 7
    SOCKS_PROXY = 8
    HTTP_PROXY = 9
    PROXY_CHAIN = 10
    OPEN_PROXY = 11
    OPEN_DNS_RESOLVER = 12
    BRUTE_FORCE_ATTACKERS = 13
    OPEN_WINGATE_PROXY = 14
    COMPROMISED_ROUTER = 15
    AUTO_ROOTING_WORMS = 16
    AUTO_DETECTED_BOT_IP = 17
    UNKNOWN = 255

    @classmethod
    def _missing_(cls, value):
        # DroneBL may answer with codes that have no name; keep them as values.
        if isinstance(value, int) and 0 <= value <= 255:
            member = int.__new__(cls, value)
            member._name_ = f"DroneBLResponse({value})"
            member._value_ = value
            return member
        return None

    def __str__(self) -> str:
        return _LABELS.get(self._value_, self._name_)


_LABELS = {
    0: "AllGood",
    3: "IRCDrone",
    5: "Bottler",
    6: "UnknownSpambotOrDrone",
    7: "DDOSDrone",
    8: "SOCKSProxy",
    9: "HTTPProxy",
    10: "ProxyChain",
    11: "OpenProxy",
    12: "OpenDNSResolver",
    13: "BruteForceAttackers",
    14: "OpenWingateProxy",
    15: "CompromisedRouter",
    16: "AutoRootingWorms",
    17: "AutoDetectedBotIP",
    255: "Unknown",
}


def _as_address(ip) -> _Address:
    if isinstance(ip, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return ip
    return ipaddress.ip_address(ip)


def reverse(ip) -> str:
    """Return the reversed DNS label form of an address (octets for IPv4, nibbles for IPv6)."""
    addr = _as_address(ip)
    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is not None:
        addr = addr.ipv4_mapped
    if isinstance(addr, ipaddress.IPv4Address):
        return ".".join(reversed(str(addr).split(".")))
    return ".".join(f"{byte & 0x0F:x}.{byte >> 4:x}" for byte in reversed(addr.packed))


def lookup(ip_str: str) -> DroneBLResponse:
    """Query DroneBL for ``ip_str``.

    Raises ValueError if the input is not an IP address, and socket errors
    other than "name not found" as they come.
    """
    try:
        addr = ipaddress.ip_address(ip_str)
    except ValueError:
        raise ValueError("dnsbl: input is not an IP address") from None

    name = reverse(addr) + _ZONE
    try:
        infos = socket.getaddrinfo(name, None)
    except socket.gaierror as exc:
        if exc.errno in _NOT_FOUND_ERRNOS:
            return DroneBLResponse.ALL_GOOD
        raise

    for family, _type, _proto, _canon, sockaddr in infos:
        if family == socket.AF_INET:
            last_octet = int(str(sockaddr[0]).rsplit(".", 1)[1])
            return DroneBLResponse(last_octet)

    return DroneBLResponse.UNKNOWN_SPAMBOT_OR_DRONE