import pytest

from anubis.thoth.lookup import (
    IPToASNWithCache,
    LookupError_,
    LookupRequest,
    LookupResponse,
    PrefixTable,
)


class CountingService:
    def __init__(self, response):
        self.response = response
        self.calls = []

    def lookup(self, request, timeout=None):
        self.calls.append((request.ip_address, timeout))
        return self.response


def test_prefix_table_longest_match():
    table = PrefixTable()
    table.insert("10.0.0.0/8", "wide")
    table.insert("10.1.0.0/16", "narrow")
    assert table.lookup("10.1.2.3") == "narrow"
    assert table.lookup("10.2.0.1") == "wide"
    assert table.lookup("11.0.0.1") is None
    assert len(table) == 2


def test_prefix_table_keeps_families_apart():
    table = PrefixTable()
    table.insert("2001:db8::/32", "doc")
    assert table.lookup("2001:db8::1") == "doc"
    assert table.lookup("1.1.1.1") is None


def test_prefix_table_masks_host_bits():
    table = PrefixTable()
    table.insert("192.0.2.77/24", "net")
    assert table.lookup("192.0.2.1") == "net"


def test_prefix_table_rejects_garbage():
    with pytest.raises(ValueError):
        PrefixTable().insert("bogus", 1)


@pytest.mark.parametrize("ip", ["10.1.2.3", "127.0.0.1", "::1", "fe80::1", "192.168.0.5"])
def test_reserved_addresses_answered_locally(ip):
    service = CountingService(LookupResponse(announced=True))
    cache = IPToASNWithCache(service)
    response = cache.lookup(LookupRequest(ip_address=ip))
    assert response.announced is False
    assert service.calls == []


def test_responses_are_cached_by_prefix():
    response = LookupResponse(announced=True, as_number=64500, cidr=["8.8.8.0/24"])
    service = CountingService(response)
    cache = IPToASNWithCache(service)

    assert cache.lookup(LookupRequest(ip_address="8.8.8.8")) is response
    assert len(service.calls) == 1
    assert cache.lookup(LookupRequest(ip_address="8.8.8.9")) is response
    assert len(service.calls) == 1
    cache.lookup(LookupRequest(ip_address="8.8.9.1"))
    assert len(service.calls) == 2


def test_timeout_passed_through():
    service = CountingService(LookupResponse(announced=True))
    cache = IPToASNWithCache(service)
    cache.lookup(LookupRequest(ip_address="8.8.8.8"), timeout=0.25)
    assert service.calls == [("8.8.8.8", 0.25)]


def test_invalid_address_raises():
    service = CountingService(LookupResponse())
    cache = IPToASNWithCache(service)
    with pytest.raises(LookupError_):
        cache.lookup(LookupRequest(ip_address="taco"))
    assert service.calls == []


def test_bad_cidr_does_not_fail_lookup():
    response = LookupResponse(announced=True, cidr=["bogus", "8.8.4.0/24"])
    service = CountingService(response)
    cache = IPToASNWithCache(service)
    assert cache.lookup(LookupRequest(ip_address="8.8.4.1")) is response
    assert cache.table.lookup("8.8.4.4") is response