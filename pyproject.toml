[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "anubis"
version = "0.1.0"
description = "WSGI middleware and helpers for screening web requests: forwarded-header handling, gzip compression, DNSBL lookups, IP-to-ASN checks and Open Graph tag caching."
requires-python = ">=3.10"
dependencies = []
keywords = ["wsgi", "middleware", "bot-protection", "x-forwarded-for", "dnsbl", "opengraph", "xxhash"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Middleware",
    "Topic :: Security",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["anubis"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
