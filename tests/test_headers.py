import pytest

from anubis.headers import (
    CantParseRemoteIPError,
    CantSplitHostPortError,
    XFFComputePreferences,
    XFFError,
    compute_xff_header,
    no_browsing,
    no_store_cache,
    parse_xff,
    remote_x_real_ip,
    split_host_port,
    unchanging_cache,
    x_forwarded_for_to_x_real_ip,
    x_forwarded_for_update,
)

ALL = XFFComputePreferences(
    strip_private=True, strip_loopback=True, strip_cgnat=True, strip_llu=True, flatten=True
)


def _recording_app(seen, headers=None):
    def app(environ, start_response):
        seen.update(environ)
        start_response("200 OK", list(headers or [("Content-Type", "text/plain")]))
        return [b"ok"]

    return app


def _run(app, **environ):
    base = {"REQUEST_METHOD": "GET", "SCRIPT_NAME": "", "PATH_INFO": "/"}
    base.update(environ)
    captured = {}

    def start_response(status, headers, exc_info=None):
        captured["status"] = status
        captured["headers"] = headers
        return lambda data: None

    body = b"".join(app(base, start_response))
    return captured["status"], captured["headers"], body


@pytest.mark.parametrize(
    "remote_addr, orig, pref, result",
    [
        ("127.0.0.1:80", "1.1.1.1,10.0.0.1", XFFComputePreferences(strip_private=True), "1.1.1.1,127.0.0.1"),
        ("127.0.0.1:80", "1.1.1.1,10.0.0.1", XFFComputePreferences(strip_private=False), "1.1.1.1,10.0.0.1,127.0.0.1"),
        ("127.0.0.1:80", "1.1.1.1,10.0.0.1,127.0.0.1", XFFComputePreferences(strip_loopback=True), "1.1.1.1,10.0.0.1"),
        ("100.64.0.1:80", "1.1.1.1,10.0.0.1,100.64.0.1", XFFComputePreferences(strip_cgnat=True), "1.1.1.1,10.0.0.1"),
        ("169.254.0.1:80", "1.1.1.1,10.0.0.1,169.254.0.1", XFFComputePreferences(strip_llu=True), "1.1.1.1,10.0.0.1"),
        ("169.254.0.1:80", "1.1.1.1,10.0.0.1,fe80::", XFFComputePreferences(strip_llu=True), "1.1.1.1,10.0.0.1"),
        ("127.0.0.1:80", "1.1.1.1,10.0.0.1,fe80::,100.64.0.1,169.254.0.1", ALL, "1.1.1.1"),
        ("127.0.0.1:80", "1.1.1.1, 10.0.0.1, fe80::, 100.64.0.1, 169.254.0.1", ALL, "1.1.1.1"),
        ("127.0.0.1:80", "", ALL, ""),
    ],
    ids=[
        "StripPrivate",
        "NoStripPrivate",
        "StripLoopback",
        "StripCGNAT",
        "StripLinkLocalUnicastIPv4",
        "StripLinkLocalUnicastIPv6",
        "Flatten",
        "TrimSpaces",
        "no-xff-dont-panic",
    ],
)
def test_compute_xff_header(remote_addr, orig, pref, result):
    assert compute_xff_header(remote_addr, orig, pref) == result


def test_compute_xff_header_invalid_ip_port():
    with pytest.raises(CantSplitHostPortError):
        compute_xff_header("fe80::", "", XFFComputePreferences())


def test_compute_xff_header_invalid_remote_ip():
    with pytest.raises(CantParseRemoteIPError):
        compute_xff_header("anubis:80", "", XFFComputePreferences())


def test_xff_errors_share_base():
    with pytest.raises(XFFError):
        compute_xff_header("anubis:80", "", XFFComputePreferences())


def test_compute_xff_stops_at_unparseable_segment():
    result = compute_xff_header("8.8.8.8:80", "1.1.1.1,garbage,9.9.9.9", XFFComputePreferences())
    assert result == "9.9.9.9,8.8.8.8"


def test_split_host_port():
    assert split_host_port("[::1]:80") == ("::1", "80")
    assert split_host_port("127.0.0.1:8080") == ("127.0.0.1", "8080")
    with pytest.raises(ValueError):
        split_host_port("fe80::")
    with pytest.raises(ValueError):
        split_host_port("localhost")


def test_x_forwarded_for_update_ignore_unix():
    seen = {}
    status, _, _ = _run(x_forwarded_for_update(True, _recording_app(seen)), REMOTE_ADDR="@")
    assert status == "200 OK"
    assert seen["REMOTE_ADDR"] == "@"
    assert "HTTP_X_FORWARDED_FOR" not in seen


def test_x_forwarded_for_update_add_to_chain():
    seen = {}
    _run(
        x_forwarded_for_update(True, _recording_app(seen)),
        REMOTE_ADDR="127.0.0.1",
        REMOTE_PORT="54321",
        HTTP_X_FORWARDED_FOR="1.1.1.1,10.20.30.40",
    )
    assert seen["HTTP_X_FORWARDED_FOR"] == "1.1.1.1"


def test_x_forwarded_for_update_removes_empty_chain():
    seen = {}
    _run(
        x_forwarded_for_update(True, _recording_app(seen)),
        REMOTE_ADDR="127.0.0.1",
        REMOTE_PORT="54321",
        HTTP_X_FORWARDED_FOR="10.0.0.1",
    )
    assert "HTTP_X_FORWARDED_FOR" not in seen


def test_x_forwarded_for_update_ipv6_remote():
    seen = {}
    _run(
        x_forwarded_for_update(False, _recording_app(seen)),
        REMOTE_ADDR="2001:4860::1",
        REMOTE_PORT="443",
    )
    assert seen["HTTP_X_FORWARDED_FOR"] == "2001:4860::1"


def test_unchanging_cache_devel_is_passthrough():
    app = _recording_app({})
    assert unchanging_cache(app, "devel") is app


def test_unchanging_cache_sets_header():
    _, headers, _ = _run(unchanging_cache(_recording_app({}), "v1.0.0"))
    assert ("Cache-Control", "public, max-age=31536000") in headers


def test_unchanging_cache_keeps_app_header():
    app = _recording_app({}, [("Cache-Control", "no-store")])
    _, headers, _ = _run(unchanging_cache(app, "v1.0.0"))
    assert [v for k, v in headers if k == "Cache-Control"] == ["no-store"]


def test_remote_x_real_ip_disabled():
    app = _recording_app({})
    assert remote_x_real_ip(False, "tcp", app) is app


def test_remote_x_real_ip_unix():
    seen = {}
    _run(remote_x_real_ip(True, "unix", _recording_app(seen)), REMOTE_ADDR="")
    assert seen["HTTP_X_REAL_IP"] == "127.0.0.1"


def test_remote_x_real_ip_tcp():
    seen = {}
    _run(remote_x_real_ip(True, "tcp", _recording_app(seen)), REMOTE_ADDR="203.0.113.9")
    assert seen["HTTP_X_REAL_IP"] == "203.0.113.9"


def test_parse_xff():
    assert parse_xff("10.0.0.1, 8.8.8.8, 1.1.1.1") == "8.8.8.8"
    assert parse_xff("garbage") == ""
    assert parse_xff("127.0.0.1,192.168.0.1") == ""


def test_x_forwarded_for_to_x_real_ip_sets_value():
    seen = {}
    _run(x_forwarded_for_to_x_real_ip(_recording_app(seen)), HTTP_X_FORWARDED_FOR="8.8.8.8")
    assert seen["HTTP_X_REAL_IP"] == "8.8.8.8"


def test_x_forwarded_for_to_x_real_ip_keeps_existing():
    seen = {}
    _run(
        x_forwarded_for_to_x_real_ip(_recording_app(seen)),
        HTTP_X_FORWARDED_FOR="8.8.8.8",
        HTTP_X_REAL_IP="1.1.1.1",
    )
    assert seen["HTTP_X_REAL_IP"] == "1.1.1.1"


def test_no_store_cache():
    _, headers, _ = _run(no_store_cache(_recording_app({})))
    assert ("Cache-Control", "no-store") in headers


def test_no_browsing_blocks_directories():
    status, _, body = _run(no_browsing(_recording_app({})), PATH_INFO="/static/")
    assert status.startswith("404")
    assert body == b"404 page not found\n"


def test_no_browsing_allows_files():
    status, _, body = _run(no_browsing(_recording_app({})), PATH_INFO="/static/app.js")
    assert status == "200 OK"
    assert body == b"ok"