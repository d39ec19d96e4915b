"""Policy checkers that match requests by the ASN or country of their address."""

from __future__ import annotations

import logging
from typing import Iterable, Mapping, Optional

from anubis.hashing import fast_hash
from anubis.thoth.lookup import LookupRequest, LookupResponse

logger = logging.getLogger(__name__)

_LOOKUP_TIMEOUT = 0.5


def _real_ip(headers: Mapping[str, str]) -> str:
    value = headers.get("X-Real-Ip")
    if value is not None:
        return value
    return next(
        (val for key, val in headers.items() if key.lower() == "x-real-ip"),
        "",
    )


def _lookup(service, headers: Mapping[str, str]) -> Optional[LookupResponse]:
    try:
        return service.lookup(
            LookupRequest(ip_address=_real_ip(headers)), timeout=_LOOKUP_TIMEOUT
        )
    except TimeoutError as exc:
        logger.debug("error contacting thoth: %s", exc, extra={"actionable": False})
    except Exception as exc:  # every failure means "no match"
        logger.error(
            "error contacting thoth, please contact support: %s",
            exc,
            extra={"actionable": True},
        )
    return None


class ASNChecker:
    """Matches requests whose X-Real-Ip belongs to one of a set of autonomous systems."""

    def __init__(self, ip_to_asn, asns: Iterable[int]) -> None:
        asn_list = [int(asn) for asn in asns]
        self.ip_to_asn = ip_to_asn
        self.asns = frozenset(asn_list)
        self._hash = fast_hash("ASNChecker\n" + "".join(f"AS {asn}\n" for asn in asn_list))

    def check(self, headers: Mapping[str, str]) -> bool:
        info = _lookup(self.ip_to_asn, headers)
        if info is None or not info.announced:
            return False
        return (info.as_number & 0xFFFFFFFF) in self.asns

    def hash(self) -> str:
        return self._hash


class GeoIPChecker:
    """Matches requests whose X-Real-Ip is located in one of a set of countries."""

    def __init__(self, ip_to_asn, countries: Iterable[str]) -> None:
        country_list = list(countries)
        self.ip_to_asn = ip_to_asn
        self.countries = frozenset(country_list)
        self._hash = "GeoIPChecker\n" + "".join(f"{cc}\n" for cc in country_list)

    def check(self, headers: Mapping[str, str]) -> bool:
        info = _lookup(self.ip_to_asn, headers)
        if info is None or not info.announced:
            return False
        return info.country_code.lower() in self.countries

    def hash(self) -> str:
        return self._hash