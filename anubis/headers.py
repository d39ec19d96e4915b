"""WSGI middleware that manages forwarding and caching headers."""

from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass
from typing import Callable, Iterable

logger = logging.getLogger(__name__)

WSGIApp = Callable[..., Iterable[bytes]]

CGNAT = ipaddress.ip_network("100.64.0.0/10")

_PRIVATE_NETWORKS = tuple(
    ipaddress.ip_network(net)
    for net in ("10.0.0.0/8", "172.16.0.0/12", "192.168.0.0/16", "fc00::/7")
)


@dataclass(frozen=True)
class XFFComputePreferences:
    """Which addresses to drop from an X-Forwarded-For chain, and whether to flatten it."""

    strip_private: bool = False
    strip_loopback: bool = False
    strip_cgnat: bool = False
    strip_llu: bool = False
    flatten: bool = False


class XFFError(ValueError):
    """Raised when an X-Forwarded-For header cannot be computed."""


class CantSplitHostPortError(XFFError):
    """The remote address is not in host:port form."""


class CantParseRemoteIPError(XFFError):
    """The host part of the remote address is not an IP address."""


def split_host_port(addr: str) -> tuple[str, str]:
    """Split ``host:port`` or ``[host]:port`` into its host and port."""
    if addr.startswith("["):
        end = addr.find("]")
        if end < 0:
            raise ValueError(f"address {addr}: missing ']' in address")
        host, rest = addr[1:end], addr[end + 1 :]
        if not rest.startswith(":"):
            raise ValueError(f"address {addr}: missing port in address")
        port = rest[1:]
        if "[" in host or "]" in port or "[" in port:
            raise ValueError(f"address {addr}: unexpected bracket in address")
        return host, port

    if ":" not in addr:
        raise ValueError(f"address {addr}: missing port in address")
    host, _, port = addr.rpartition(":")
    if ":" in host:
        raise ValueError(f"address {addr}: too many colons in address")
    if "[" in addr or "]" in addr:
        raise ValueError(f"address {addr}: unexpected bracket in address")
    return host, port


def _join_host_port(host: str, port: str) -> str:
    return f"[{host}]:{port}" if ":" in host else f"{host}:{port}"


def _unmapped(addr: ipaddress.IPv4Address | ipaddress.IPv6Address):
    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is not None:
        return addr.ipv4_mapped
    return addr


def _is_private(addr) -> bool:
    addr = _unmapped(addr)
    return any(addr in net for net in _PRIVATE_NETWORKS)


def _is_loopback(addr) -> bool:
    return _unmapped(addr).is_loopback


def _is_link_local_unicast(addr) -> bool:
    return _unmapped(addr).is_link_local


def _is_public(addr) -> bool:
    addr = _unmapped(addr)
    return not (
        _is_private(addr)
        or addr.is_loopback
        or addr.is_link_local
        or addr.is_unspecified
        or addr in CGNAT
    )


def parse_xff(header: str) -> str:
    """Return the first public IP address listed in an X-Forwarded-For value, or ''."""
    for segment in header.split(","):
        candidate = segment.strip()
        try:
            addr = ipaddress.ip_address(candidate)
        except ValueError:
            continue
        if _is_public(addr):
            return candidate
    return ""


def compute_xff_header(
    remote_addr: str, orig_xff_header: str, pref: XFFComputePreferences
) -> str:
    """Append the remote address to an X-Forwarded-For chain, then strip and flatten it."""
    try:
        remote_ip, _ = split_host_port(remote_addr)
    except ValueError as exc:
        raise CantSplitHostPortError(f"unable to split host and port: {exc}") from exc
    try:
        parsed_remote = ipaddress.ip_address(remote_ip)
    except ValueError as exc:
        raise CantParseRemoteIPError(f"unable to parse remote IP: {exc}") from exc

    chain = [part.strip() for part in orig_xff_header.split(",")] if orig_xff_header else []
    chain.append(str(parsed_remote))

    kept: list[str] = []
    for segment in reversed(chain):
        try:
            addr = ipaddress.ip_address(segment)
        except ValueError as exc:
            # The rest of the chain cannot be trusted once a segment is unreadable.
            logger.debug("failed to parse XFF segment: %s", exc)
            break
        if pref.strip_private and _is_private(addr):
            continue
        if pref.strip_loopback and _is_loopback(addr):
            continue
        if pref.strip_llu and _is_link_local_unicast(addr):
            continue
        if pref.strip_cgnat and addr in CGNAT:
            continue
        kept.append(str(addr))
    kept.reverse()

    if not kept:
        return ""
    if pref.flatten:
        return kept[-1]
    return ",".join(kept)


def _with_default_header(app: WSGIApp, name: str, value: str) -> WSGIApp:
    lowered = name.lower()

    def middleware(environ, start_response):
        def _start_response(status, headers, exc_info=None):
            if not any(key.lower() == lowered for key, _ in headers):
                headers = [*headers, (name, value)]
            return start_response(status, headers, exc_info)

        return app(environ, _start_response)

    return middleware


def unchanging_cache(app: WSGIApp, version: str) -> WSGIApp:
    """Cache responses for a year unless running a development build."""
    if version == "devel":
        return app
    return _with_default_header(app, "Cache-Control", "public, max-age=31536000")


def remote_x_real_ip(use_remote_address: bool, bind_network: str, app: WSGIApp) -> WSGIApp:
    """Set X-Real-Ip from the connection's remote address when enabled."""
    if not use_remote_address:
        logger.debug("skipping middleware, useRemoteAddress is empty")
        return app

    if bind_network == "unix":

        def unix_middleware(environ, start_response):
            # Local sockets have no remote address; localhost is a sensible stand-in.
            environ["HTTP_X_REAL_IP"] = "127.0.0.1"
            return app(environ, start_response)

        return unix_middleware

    def middleware(environ, start_response):
        environ["HTTP_X_REAL_IP"] = environ.get("REMOTE_ADDR", "")
        return app(environ, start_response)

    return middleware


def x_forwarded_for_to_x_real_ip(app: WSGIApp) -> WSGIApp:
    """Set X-Real-Ip from X-Forwarded-For when it is not already set."""

    def middleware(environ, start_response):
        xff = environ.get("HTTP_X_FORWARDED_FOR", "")
        if not environ.get("HTTP_X_REAL_IP") and xff:
            ip = parse_xff(xff)
            logger.debug("setting x-real-ip: %s", ip)
            environ["HTTP_X_REAL_IP"] = ip
        return app(environ, start_response)

    return middleware


def x_forwarded_for_update(strip_private: bool, app: WSGIApp) -> WSGIApp:
    """Add the remote address to the X-Forwarded-For chain and flatten it."""
    pref = XFFComputePreferences(
        strip_private=strip_private,
        strip_loopback=True,
        strip_cgnat=True,
        strip_llu=True,
        flatten=True,
    )

    def middleware(environ, start_response):
        remote = environ.get("REMOTE_ADDR", "")
        if remote != "@":
            remote_addr = _join_host_port(remote, environ.get("REMOTE_PORT") or "0")
            try:
                header = compute_xff_header(
                    remote_addr, environ.get("HTTP_X_FORWARDED_FOR", ""), pref
                )
            except XFFError as exc:
                logger.debug("computing X-Forwarded-For header failed: %s", exc)
            else:
                if header:
                    environ["HTTP_X_FORWARDED_FOR"] = header
                else:
                    environ.pop("HTTP_X_FORWARDED_FOR", None)
        return app(environ, start_response)

    return middleware


def no_store_cache(app: WSGIApp) -> WSGIApp:
    """Mark responses as not to be stored by caches."""
    return _with_default_header(app, "Cache-Control", "no-store")


def no_browsing(app: WSGIApp) -> WSGIApp:
    """Answer 404 for any path ending in a slash, preventing directory listings."""

    def middleware(environ, start_response):
        path = environ.get("SCRIPT_NAME", "") + environ.get("PATH_INFO", "")
        if (path or "/").endswith("/"):
            start_response(
                "404 Not Found",
                [
                    ("Content-Type", "text/plain; charset=utf-8"),
                    ("X-Content-Type-Options", "nosniff"),
                ],
            )
            return [b"404 page not found\n"]
        return app(environ, start_response)

    return middleware