"""In-process health status registry for services."""

from __future__ import annotations

import enum
import threading


class ServingStatus(enum.IntEnum):
    """Health status of a service."""

    UNKNOWN = 0
    SERVING = 1
    NOT_SERVING = 2
    SERVICE_UNKNOWN = 3


class HealthServer:
    """Thread-safe map of service names to serving status."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._statuses: dict[str, ServingStatus] = {"": ServingStatus.SERVING}

    def set_serving_status(self, service: str, status: ServingStatus) -> None:
        with self._lock:
            self._statuses[service] = ServingStatus(status)

    def check(self, service: str) -> ServingStatus:
        """Return the status of ``service``; raise LookupError if it is unknown."""
        with self._lock:
            try:
                return self._statuses[service]
            except KeyError:
                raise LookupError(f"unknown service {service!r}") from None


HEALTH_SERVER = HealthServer()


def set_health(service: str, status: ServingStatus) -> None:
    """Record the status of ``service`` in the shared health server."""
    HEALTH_SERVER.set_serving_status(service, status)


def get_health(service: str) -> tuple[ServingStatus, bool]:
    """Return the status of ``service`` and whether it is known."""
    try:
        return HEALTH_SERVER.check(service), True
    except LookupError:
        return ServingStatus.UNKNOWN, False