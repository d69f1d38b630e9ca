"""
ledger/pool.py

Endpoint Pool: random load distribution across redundant ledger API endpoints.
"""
import logging
import random
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Union

from .types import Endpoint

logger = logging.getLogger(__name__)


# Public block producer API nodes used when no endpoints are configured
DEFAULT_ENDPOINTS = [
    "https://mainnet.meet.one",
    "https://eos.newdex.one",
    "https://eospush.tokenpocket.pro",
    "https://node.betdice.one",
]


class EndpointSelector(ABC):
    """Selection policy over a set of interchangeable endpoints."""

    @abstractmethod
    def select(self) -> Endpoint:
        """Return the endpoint to use for the next call."""
        ...


class EndpointPool(EndpointSelector):
    """
    Pool of redundant ledger endpoints with uniform random selection.

    Features:
    - Each call picks independently (no session affinity)
    - No retry-avoidance of recently failed endpoints; the next cycle
      simply lands on a (probably) different node
    - Thread-safe membership changes

    Health-weighted policies can replace this class behind EndpointSelector
    without touching the dispatcher.
    """

    def __init__(
        self,
        endpoints: Optional[Iterable[Union[str, Endpoint]]] = None,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize EndpointPool.

        Args:
            endpoints: Endpoint URLs or handles (defaults to DEFAULT_ENDPOINTS)
            rng: Random source (injectable for deterministic tests)

        Raises:
            ValueError: If the resulting pool is empty
        """
        self._endpoints: Dict[str, Endpoint] = {}
        self._rng = rng or random.Random()
        self._lock = threading.RLock()
        self._picks = 0

        for endpoint in (DEFAULT_ENDPOINTS if endpoints is None else endpoints):
            self.add_endpoint(endpoint)

        if not self._endpoints:
            raise ValueError("EndpointPool requires at least one endpoint")

    def add_endpoint(self, endpoint: Union[str, Endpoint]) -> Endpoint:
        """Add an endpoint to the pool (idempotent)."""
        if not isinstance(endpoint, Endpoint):
            endpoint = Endpoint(url=endpoint.rstrip("/"))
        with self._lock:
            self._endpoints[endpoint.url] = endpoint
        logger.debug(f"[pool] Added endpoint: {endpoint.url}")
        return endpoint

    def remove_endpoint(self, url: str) -> bool:
        """Remove an endpoint; the last endpoint cannot be removed."""
        with self._lock:
            if url not in self._endpoints or len(self._endpoints) == 1:
                return False
            del self._endpoints[url]
        logger.info(f"[pool] Removed endpoint: {url}")
        return True

    def select(self) -> Endpoint:
        """Pick one endpoint uniformly at random."""
        with self._lock:
            self._picks += 1
            return self._rng.choice(list(self._endpoints.values()))

    def pick(self) -> Endpoint:
        """Alias for select()."""
        return self.select()

    def get_endpoints(self) -> List[Endpoint]:
        """Get list of all endpoints."""
        with self._lock:
            return list(self._endpoints.values())

    def get_status(self) -> Dict[str, Any]:
        """Get pool status."""
        with self._lock:
            return {
                "endpoints": list(self._endpoints.keys()),
                "picks": self._picks,
            }

    def __contains__(self, url: str) -> bool:
        return url in self._endpoints

    def __len__(self) -> int:
        return len(self._endpoints)
