"""Client for the IP information service and the current-client context."""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterable, Iterator, Optional

from anubis.thoth.checkers import ASNChecker, GeoIPChecker


class Client:
    """Holds the IP-to-ASN service and the connection behind it."""

    def __init__(self, ip_to_asn=None, connection=None) -> None:
        self.ip_to_asn = ip_to_asn
        self._connection = connection

    def asn_checker_for(self, asns: Iterable[int]) -> ASNChecker:
        """Return a checker matching addresses in any of ``asns``."""
        return ASNChecker(self.ip_to_asn, asns)

    def geoip_checker_for(self, countries: Iterable[str]) -> GeoIPChecker:
        """Return a checker matching addresses located in any of ``countries``."""
        return GeoIPChecker(self.ip_to_asn, countries)

    def with_ip_to_asn_service(self, impl) -> None:
        """Replace the IP-to-ASN service."""
        self.ip_to_asn = impl

    def close(self) -> None:
        """Close the underlying connection, if any."""
        connection, self._connection = self._connection, None
        if connection is not None:
            connection.close()

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def auth_metadata(token: str) -> list[tuple[str, str]]:
    """Return the request metadata that authenticates calls with ``token``."""
    return [("authorization", f"Bearer {token}")]


_current: ContextVar[Optional[Client]] = ContextVar("anubis_thoth_client", default=None)


@contextmanager
def use_client(client: Client) -> Iterator[Client]:
    """Make ``client`` the current client for the ``with`` block."""
    token = _current.set(client)
    try:
        yield client
    finally:
        _current.reset(token)


def from_context() -> Optional[Client]:
    """Return the current client, or None when none is set."""
    return _current.get()