# anubis

Building blocks for screening requests in front of a WSGI application:
middleware for forwarded and caching headers, gzip compression, a DNS
blocklist lookup, IP-to-ASN and country checks, and an Open Graph tag
cache. The package depends on the standard library alone.

## Modules

- `anubis.headers`: WSGI middleware factories.
  - `x_forwarded_for_update(strip_private, app)` appends the connection's
    address to `X-Forwarded-For`. It then drops loopback, link-local and
    CGNAT addresses, and private ones when `strip_private` is true. Only
    the last remaining address is kept. Unix-socket peers (`REMOTE_ADDR` of
    `"@"`) are left alone.
  - `x_forwarded_for_to_x_real_ip(app)` sets `X-Real-Ip` when it is unset.
    It uses the first public address in `X-Forwarded-For` (`parse_xff`).
  - `remote_x_real_ip(use_remote_address, bind_network, app)` sets
    `X-Real-Ip` from `REMOTE_ADDR`. It uses `127.0.0.1` when
    `bind_network` is `"unix"`.
  - `no_store_cache(app)` adds `Cache-Control: no-store`.
    `unchanging_cache(app, version)` adds a one-year public cache header
    unless `version` is `"devel"`. Neither overrides a `Cache-Control` the
    application set itself.
  - `no_browsing(app)` answers 404 for any path ending in `/`.
  - `compute_xff_header(remote_addr, orig_xff_header, pref)` is the chain
    logic behind these, driven by an `XFFComputePreferences`. A bad
    `remote_addr` raises `CantSplitHostPortError`, and a remote host that
    is not an IP raises `CantParseRemoteIPError`. Both are subclasses of
    `XFFError`. `split_host_port` splits `host:port` and `[host]:port`.
- `anubis.compression`: `gzip_middleware(level, app)` gzips responses for
  clients that send `Accept-Encoding: gzip`. Levels run from -2 to 9, and
  any other level raises `ValueError`. Importing the module calls
  `register_mime_types()`, which maps `.mjs` to `text/javascript` in
  `mimetypes`.
- `anubis.hashing`: `sha256sum(text)` returns a hex SHA-256.
  `xxh64(data, seed)` is a pure-Python 64-bit xxHash. `fast_hash(text)`
  returns its hex form.
- `anubis.logsetup`: `init_logging(level)` sends JSON log lines to
  standard error. An unknown level falls back to info with a warning.
  `request_logger(environ)` returns a logger adapter that carries the
  user agent, language, priority and forwarding headers.
  `ErrorLogFilter` is a stream that swallows anything mentioning
  "context canceled". `filtered_http_logger()` returns a stderr logger
  that writes through it.
- `anubis.health`: `HealthServer` maps service names to a `ServingStatus`.
  The shared instance is used through `set_health(service, status)` and
  `get_health(service)`, which returns `(status, known)`.
- `anubis.docker`: `unbreak_docker()` runs
  `docker network connect bridge <hostname>`. It returns whether that
  succeeded and never raises.
- `anubis.dnsbl`: `reverse(ip)` gives the reversed DNS label form of an
  address. `lookup(ip_str)` queries `dnsbl.dronebl.org` through the system
  resolver and returns a `DroneBLResponse`. "Name not found" means
  `ALL_GOOD`. A bad address raises `ValueError`.
- `anubis.thoth`:
  - `lookup` holds `LookupRequest`, `LookupResponse`, `LookupError_`,
    `PrefixTable` (longest-prefix match) and `IPToASNWithCache`.
    `IPToASNWithCache` answers reserved and private ranges as
    unannounced. It also caches every CIDR returned by the service it
    wraps.
  - `checkers` holds `ASNChecker` and `GeoIPChecker`. Their
    `check(headers)` looks up `X-Real-Ip` and reports whether the
    announced address is in one of the given ASNs or countries (lower-case
    codes). Any lookup failure counts as no match.
  - `client` holds `Client`, which has `asn_checker_for`,
    `geoip_checker_for`, `with_ip_to_asn_service` and `close`. It also
    holds `auth_metadata(token)`, plus `use_client` and `from_context` to
    set and read the current client.
  - `mock` holds `MockIPToASNService`, `mock_ip_to_asn_service()`, which
    has a few fixed answers, and the `with_mock_thoth()` context manager.
- `anubis.ogtags`:
  - `parse` holds `parse_html`, which builds an `Element` tree, plus
    `is_og_meta_tag`, `extract_meta_tag_info` and `extract_og_tags`.
  - `cache` holds `OGTagCache`, `OpenGraphConfig`, `TTLStore`,
    `OGHandledError` and `ContentTooLargeError`. `OGTagCache` fetches a
    page from the target, which may be `http://`, `https://` or `unix:`.
    It keeps `og:`, `twitter:` and `fediverse:` properties plus
    `description`, `keywords` and `author`, and caches them for
    `time_to_live` seconds. A configured `override` is returned as is.
    Pages that answer non-200 or are not HTML yield `None`. Bodies over
    8 MiB raise `ContentTooLargeError`.

## Example

```python
from anubis.headers import XFFComputePreferences, compute_xff_header, x_forwarded_for_update

prefs = XFFComputePreferences(strip_private=True, strip_loopback=True, flatten=True)
compute_xff_header("127.0.0.1:80", "1.1.1.1, 10.0.0.1", prefs)  # "1.1.1.1"


def hello(environ, start_response):
    start_response("200 OK", [("Content-Type", "text/plain")])
    return [environ.get("HTTP_X_FORWARDED_FOR", "").encode()]


app = x_forwarded_for_update(True, hello)
```

```python
from anubis.thoth.mock import with_mock_thoth

with with_mock_thoth() as client:
    checker = client.asn_checker_for([13335])
    checker.check({"X-Real-Ip": "1.1.1.1"})  # True
```

```python
from anubis.ogtags.cache import OGTagCache, OpenGraphConfig, TTLStore

cache = OGTagCache("http://localhost:3000", OpenGraphConfig(enabled=True, time_to_live=300), TTLStore())
tags = cache.get_og_tags("/blog/post?id=1", "example.com")
```

## What it does not do

This is a library of parts, not a running service. The package does not
include:

- a command or server to start;
- a challenge page or proof-of-work flow;
- a policy file format or rule engine;
- persistent storage, since the only store is the in-memory `TTLStore`;
- a network client for a remote IP-to-ASN service. A `Client` uses
  whatever lookup service it is given, such as the mock.
- a network health endpoint. The health registry is in-process only.

## Running the tests

```
pip install -e ".[test]"
pytest
```