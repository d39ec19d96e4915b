import gzip
import mimetypes

import pytest

from anubis.compression import gzip_middleware, register_mime_types


def _app(environ, start_response):
    start_response("200 OK", [("Content-Type", "text/plain"), ("Content-Length", "11")])
    return [b"hello ", b"world"]


def _writing_app(environ, start_response):
    write = start_response("200 OK", [("Content-Type", "text/plain")])
    write(b"first ")
    return [b"second"]


def _run(app, **environ):
    captured = {}
    written = []

    def start_response(status, headers, exc_info=None):
        captured["status"] = status
        captured["headers"] = headers
        return written.append

    result = app(dict(environ), start_response)
    try:
        body = b"".join(result)
    finally:
        getattr(result, "close", lambda: None)()
    return captured["status"], captured["headers"], b"".join(written) + body


def test_gzip_round_trip():
    status, headers, body = _run(gzip_middleware(6, _app), HTTP_ACCEPT_ENCODING="gzip, deflate")
    assert status == "200 OK"
    assert ("Content-Encoding", "gzip") in headers
    assert all(k.lower() != "content-length" for k, _ in headers)
    assert gzip.decompress(body) == b"hello world"


def test_no_gzip_without_accept_encoding():
    _, headers, body = _run(gzip_middleware(6, _app))
    assert body == b"hello world"
    assert all(k != "Content-Encoding" for k, _ in headers)


def test_write_callable_is_compressed():
    _, _, body = _run(gzip_middleware(9, _writing_app), HTTP_ACCEPT_ENCODING="gzip")
    assert gzip.decompress(body) == b"first second"


@pytest.mark.parametrize("level", [-2, -1, 0, 1, 9])
def test_all_levels_round_trip(level):
    _, _, body = _run(gzip_middleware(level, _app), HTTP_ACCEPT_ENCODING="gzip")
    assert gzip.decompress(body) == b"hello world"


def test_invalid_level():
    with pytest.raises(ValueError):
        gzip_middleware(42, _app)


def test_body_close_is_forwarded():
    closed = []

    class Body(list):
        def close(self):
            closed.append(True)

    def app(environ, start_response):
        start_response("200 OK", [])
        return Body([b"x"])

    status, headers, body = _run(gzip_middleware(6, app), HTTP_ACCEPT_ENCODING="gzip")
    assert status == "200 OK"
    assert ("Content-Encoding", "gzip") in headers
    assert gzip.decompress(body) == b"x"
    assert closed == [True]


def test_mjs_mime_type():
    register_mime_types()

    def app(environ, start_response):
        content_type, _ = mimetypes.guess_type("module.mjs")
        start_response("200 OK", [("Content-Type", content_type or "")])
        return [b"export default 1;"]

    status, headers, body = _run(gzip_middleware(6, app), HTTP_ACCEPT_ENCODING="gzip")
    assert status == "200 OK"
    assert ("Content-Type", "text/javascript") in headers
    assert gzip.decompress(body) == b"export default 1;"