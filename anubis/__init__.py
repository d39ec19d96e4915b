"""WSGI middleware and helpers for screening requests: headers, compression, hashing, logging, health, DNSBL, IP-to-ASN checks and Open Graph tags."""

__version__ = "0.1.0"