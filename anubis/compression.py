"""Gzip response compression middleware and MIME type registration."""

from __future__ import annotations

import mimetypes
import zlib
from typing import Callable, Iterable


def register_mime_types() -> None:
    """Register MIME types the standard tables lack."""
    mimetypes.add_type("text/javascript", ".mjs")


register_mime_types()


def _new_compressor(level: int):
    if level == -2:
        return zlib.compressobj(wbits=31, strategy=zlib.Z_HUFFMAN_ONLY)
    return zlib.compressobj(level=level, wbits=31)


class _GzipBody:
    def __init__(self, body: Iterable[bytes], compressor) -> None:
        self._body = body
        self._compressor = compressor

    def __iter__(self):
        for chunk in self._body:
            out = self._compressor.compress(chunk)
            if out:
                yield out
        yield self._compressor.flush()

    def close(self) -> None:
        close = getattr(self._body, "close", None)
        if close is not None:
            close()


def gzip_middleware(level: int, app: Callable[..., Iterable[bytes]]):
    """Gzip-compress responses for clients that accept gzip."""
    if not -2 <= level <= 9:
        raise ValueError(f"gzip: invalid compression level: {level}")

    def middleware(environ, start_response):
        if "gzip" not in environ.get("HTTP_ACCEPT_ENCODING", ""):
            return app(environ, start_response)

        compressor = _new_compressor(level)

        def _start_response(status, headers, exc_info=None):
            headers = [
                (key, value)
                for key, value in headers
                if key.lower() not in ("content-encoding", "content-length")
            ]
            headers.append(("Content-Encoding", "gzip"))
            write = start_response(status, headers, exc_info)

            def gzip_write(data: bytes) -> None:
                out = compressor.compress(data)
                if out:
                    write(out)

            return gzip_write

        return _GzipBody(app(environ, _start_response), compressor)

    return middleware