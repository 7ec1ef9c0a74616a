"""Host port allocation for container port mappings.

A port is only known to be free at the moment it is probed; another process
may grab it before the container binds it. Callers treat a bind failure at
container start as retryable and ask for a fresh set.
"""

from __future__ import annotations

import random
import socket

from omgexec.errors import ProvisioningError
from omgexec.logger import logger


def is_port_free(port: int, host: str = "") -> bool:
    """Return True if *port* can be bound on *host* right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


class PortAllocator:
    """Pick distinct, currently-unbound host ports from ``[low, high)``."""

    def __init__(
        self,
        low: int = 2000,
        high: int = 17000,
        *,
        max_probes: int = 50,
        rng: random.Random | None = None,
    ) -> None:
        self.low = low
        self.high = high
        self.max_probes = max_probes
        self._rng = rng or random.Random()

    def allocate(self, count: int) -> list[int]:
        """Return *count* pairwise-distinct ports that were bindable when probed.

        Raises:
            ProvisioningError: no free port turned up within the probe budget.
        """
        if count < 0:
            raise ValueError("count must be non-negative")
        ports: list[int] = []
        budget = self.max_probes * count
        probes = 0
        while len(ports) < count:
            if probes >= budget:
                logger.warning(
                    "Port probe budget exhausted",
                    requested=count,
                    found=len(ports),
                    probes=probes,
                )
                raise ProvisioningError(
                    f"Could not find {count} free ports in [{self.low}, {self.high}) "
                    f"after {probes} probes"
                )
            probes += 1
            candidate = self._rng.randrange(self.low, self.high)
            if candidate in ports or not is_port_free(candidate):
                continue
            ports.append(candidate)
        logger.debug("Allocated ports", ports=ports, probes=probes)
        return ports
