"""Fetching and caching Open Graph tags from the protected origin."""

from __future__ import annotations

import http.client
import logging
import re
import socket
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Optional, Union
from urllib.parse import SplitResult, quote, unquote, urlsplit

from anubis.ogtags.parse import Element, extract_og_tags, parse_html

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 8 << 20
HTTP_TIMEOUT = 5.0
USER_AGENT = "Anubis-OGTag-Fetcher/1.0"

_PATH_SAFE = "$&+,/:;=@"
_VALID_ESCAPED = re.compile(r"(?:[A-Za-z0-9\-._~!$&'()*+,;=:@/\[\]]|%[0-9A-Fa-f]{2})*")
_MEDIA_TYPE = re.compile(r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+/[!#$%&'*+\-.^_`|~0-9A-Za-z]+")


@dataclass
class OpenGraphConfig:
    """Open Graph passthrough settings; ``time_to_live`` is in seconds."""

    enabled: bool = False
    time_to_live: float = 0.0
    consider_host: bool = False
    override: dict[str, str] = field(default_factory=dict)


class TTLStore:
    """Thread-safe in-memory key-value store whose entries expire."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._data: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> Any:
        """Return the value for ``key``; raise KeyError if missing or expired."""
        with self._lock:
            expires, value = self._data[key]
            if time.monotonic() >= expires:
                del self._data[key]
                raise KeyError(key)
            return value

    def set(self, key: str, value: Any, ttl: float) -> None:
        with self._lock:
            self._data[key] = (time.monotonic() + ttl, value)


class OGHandledError(Exception):
    """A fetch failure that was already dealt with and yields no tags."""


class ContentTooLargeError(ValueError):
    """The fetched page exceeded the size limit."""


class _UnixHTTPConnection(http.client.HTTPConnection):
    def __init__(self, socket_path: str, timeout: float) -> None:
        super().__init__("unix", timeout=timeout)
        self._socket_path = socket_path

    def connect(self) -> None:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(self.timeout)
        try:
            sock.connect(self._socket_path)
        except OSError:
            sock.close()
            raise
        self.sock = sock


def _escaped_path(path: str) -> str:
    if _VALID_ESCAPED.fullmatch(path):
        return path
    return quote(path, safe=_PATH_SAFE)


def _parse_target(target: str) -> SplitResult:
    if not target:
        return urlsplit("http://localhost")
    try:
        parsed = urlsplit(target)
    except ValueError as exc:
        logger.debug("og: failed to parse target URL %r: %s", target, exc)
        parsed = SplitResult("http", target, "", "", "")
        if "://" not in target and not target.startswith("unix:"):
            parsed = urlsplit("http://" + target)
    return parsed


class OGTagCache:
    """Fetches approved Open Graph tags from the origin and caches them."""

    def __init__(self, target: str, conf: OpenGraphConfig, backend: Optional[TTLStore] = None) -> None:
        self.cache = backend if backend is not None else TTLStore()
        self._prefix = "ogtags:"
        self.target = _parse_target(target)
        self.approved_tags = ["description", "keywords", "author"]
        self.approved_prefixes = ["og:", "twitter:", "fediverse:"]
        self.og_passthrough = conf.enabled
        self.og_time_to_live = conf.time_to_live
        self.og_cache_consider_host = conf.consider_host
        self.og_override = dict(conf.override or {})
        self.timeout = HTTP_TIMEOUT
        self.max_content_length = MAX_CONTENT_LENGTH
        self.unix_prefix = "http://unix"

    @property
    def target_url(self) -> str:
        return self.target.geturl()

    def get_target(self, url: Union[str, SplitResult]) -> str:
        """Return the origin URL to fetch for the request URL ``url``."""
        parts = urlsplit(url) if isinstance(url, str) else url
        path = _escaped_path(parts.path)
        query = f"?{parts.query}" if parts.query else ""
        if self.target.scheme == "unix":
            return f"{self.unix_prefix}{path}{query}"
        return f"{self.target.scheme}://{self.target.netloc}{path}{query}"

    def generate_cache_key(self, target: str, original_host: str) -> str:
        if self.og_cache_consider_host:
            return f"{target}|{original_host}"
        return target

    def _set(self, key: str, value: dict, ttl: float) -> None:
        self.cache.set(self._prefix + key, dict(value), ttl)

    def check_cache(self, cache_key: str) -> Optional[dict[str, str]]:
        """Return the cached tags for ``cache_key``, or None on a miss."""
        try:
            tags = self.cache.get(self._prefix + cache_key)
        except KeyError:
            logger.debug("cache miss: %s", cache_key)
            return None
        logger.debug("cache hit: %s", tags)
        return dict(tags)

    def _connection(self, parts: SplitResult) -> http.client.HTTPConnection:
        if self.target.scheme == "unix":
            return _UnixHTTPConnection(self.target.path, self.timeout)
        if parts.scheme == "https":
            return http.client.HTTPSConnection(parts.netloc, timeout=self.timeout)
        return http.client.HTTPConnection(parts.netloc, timeout=self.timeout)

    def fetch_html_document(self, url: str, original_host: str, cache_key: str) -> Element:
        """Fetch and parse the page at ``url``, sending ``original_host`` as Host."""
        parts = urlsplit(url)
        path = (parts.path or "/") + (f"?{parts.query}" if parts.query else "")
        headers = {"X-Forwarded-Proto": "https", "User-Agent": USER_AGENT}
        if original_host:
            headers["Host"] = original_host
        conn = self._connection(parts)
        try:
            try:
                conn.request("GET", path, headers=headers)
                resp = conn.getresponse()
            except TimeoutError:
                logger.debug("og: request timed out: %s", url)
                self._set(cache_key, {}, self.og_time_to_live / 2)
                raise
            except http.client.HTTPException as exc:
                raise ConnectionError(f"http get failed: {exc}") from exc

            if resp.status != 200:
                logger.debug("og: received non-OK status code %d for %s", resp.status, url)
                self._set(cache_key, {}, self.og_time_to_live)
                raise OGHandledError("page not found")

            content_type = resp.getheader("Content-Type", "")
            if not content_type:
                raise ValueError("missing Content-Type header")
            media_type = content_type.split(";", 1)[0].strip().lower()
            if not _MEDIA_TYPE.fullmatch(media_type):
                raise OGHandledError(f"malformed Content-Type header: {content_type}")
            if media_type not in ("text/html", "application/xhtml+xml"):
                raise OGHandledError(f"unsupported Content-Type: {media_type}")

            charset = "utf-8"
            match = re.search(r"charset=\"?([\w\-]+)", content_type, re.I)
            if match:
                charset = match.group(1)
            try:
                body = resp.read(self.max_content_length + 1)
            except http.client.HTTPException as exc:
                raise ConnectionError(f"failed to read body: {exc}") from exc
            if len(body) > self.max_content_length:
                raise ContentTooLargeError(
                    f"content too large: exceeded {self.max_content_length} bytes"
                )
            try:
                text = body.decode(charset, "replace")
            except LookupError:
                text = body.decode("utf-8", "replace")
            return parse_html(text)
        finally:
            conn.close()

    def extract_og_tags(self, doc: Element) -> dict[str, str]:
        return extract_og_tags(doc, self.approved_tags, self.approved_prefixes)

    def get_og_tags(self, url, original_host: str) -> Optional[dict[str, str]]:
        """Return the Open Graph tags for ``url``, or None when none could be had."""
        if url is None:
            raise ValueError("nil URL provided, cannot fetch OG tags")
        if self.og_override:
            return dict(self.og_override)

        target = self.get_target(url)
        cache_key = self.generate_cache_key(target, original_host)
        cached = self.check_cache(cache_key)
        if cached is not None:
            return cached

        try:
            doc = self.fetch_html_document(target, original_host, cache_key)
        except ConnectionRefusedError:
            logger.debug("connection refused, returning empty tags")
            return None
        except OGHandledError:
            return None

        tags = self.extract_og_tags(doc)
        self._set(cache_key, tags, self.og_time_to_live)
        return tags