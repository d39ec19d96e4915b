"""In-memory IP-to-ASN service with a fixed set of answers."""

from __future__ import annotations

import ipaddress
from contextlib import contextmanager
from typing import Iterator, Mapping, Optional

from anubis.thoth.client import Client, use_client
from anubis.thoth.lookup import LookupError_, LookupRequest, LookupResponse


class NotFoundError(LookupError_):
    """The address has no known answer."""


class MockIPToASNService:
    """IP-to-ASN service answering from a dictionary keyed by address."""

    def __init__(self, responses: Optional[Mapping[str, LookupResponse]] = None) -> None:
        self.responses = dict(responses or {})

    def lookup(
        self, request: LookupRequest, timeout: Optional[float] = None
    ) -> LookupResponse:
        try:
            ipaddress.ip_address(request.ip_address)
        except ValueError as exc:
            raise LookupError_(str(exc)) from exc
        try:
            return self.responses[request.ip_address]
        except KeyError:
            raise NotFoundError("IP address not found in mock") from None


def mock_ip_to_asn_service() -> MockIPToASNService:
    """Return a mock service with a handful of well-known answers."""
    return MockIPToASNService(
        {
            "127.0.0.1": LookupResponse(announced=False),
            "::1": LookupResponse(announced=False),
            "10.10.10.10": LookupResponse(
                announced=True,
                as_number=13335,
                cidr=["1.1.1.0/24"],
                country_code="US",
                description="Cloudflare",
            ),
            "2.2.2.2": LookupResponse(
                announced=True,
                as_number=420,
                cidr=["2.2.2.0/24"],
                country_code="CA",
                description="test canada",
            ),
            "1.1.1.1": LookupResponse(
                announced=True,
                as_number=13335,
                cidr=["1.1.1.0/24"],
                country_code="US",
                description="Cloudflare",
            ),
        }
    )


@contextmanager
def with_mock_thoth() -> Iterator[Client]:
    """Make a client backed by the mock service current for the ``with`` block."""
    client = Client()
    client.with_ip_to_asn_service(mock_ip_to_asn_service())
    with use_client(client):
        yield client