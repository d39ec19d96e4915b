"""Development helper that joins this container to Docker's bridge network."""

from __future__ import annotations

import socket
import subprocess


def unbreak_docker() -> bool:
    """Connect this host's container to the default bridge network.

    Returns True when the docker command ran and succeeded; failures are ignored.
    """
    try:
        hostname = socket.gethostname()
    except OSError:
        return False
    try:
        result = subprocess.run(
            ["docker", "network", "connect", "bridge", hostname],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=False,
        )
    except OSError:
        return False
    return result.returncode == 0