"""
Round-robin pool of network endpoints.

Query endpoints serve account pulls, push endpoints serve account subscriptions.
Callers that open a subscription keep the index they were handed so they can
release it later on the exact same endpoint.
"""
import logging
from typing import Generic, List, Optional, Sequence, Tuple, TypeVar

from onchain_arbitrage_detector.utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SequentialSelector(Generic[T]):
    def __init__(self, sequence: Sequence[T]):
        self.sequence: List[T] = list(sequence)
        self.index = 0

    def select(self, idx: Optional[int] = None) -> Optional[Tuple[T, int]]:
        if not self.sequence:
            return None

        if idx is None:
            # read and advance with no await in between, so concurrent tasks never share a slot
            idx = self.index % len(self.sequence)
            self.index += 1
        return self.sequence[idx], idx

    def __len__(self) -> int:
        return len(self.sequence)


class ConnectionPool:
    """
    Holds the query-capable and push-capable endpoints of the process.
    Endpoints are never mutated, only handed out.
    """

    def __init__(self, https_connections: Sequence, wss_connections: Sequence):
        self.https_connections = SequentialSelector(https_connections)
        self.wss_connections = SequentialSelector(wss_connections)

    def require_endpoints(self) -> "ConnectionPool":
        """
        Raise ConfigurationError when either endpoint list is empty.
        Called once at startup so the problem never surfaces at request time.
        """
        if len(self.https_connections) == 0:
            raise ConfigurationError("no query (https) endpoint configured")
        if len(self.wss_connections) == 0:
            raise ConfigurationError("no push (wss) endpoint configured")
        logger.info("Connection pool ready: %d query endpoints, %d push endpoints",
                    len(self.https_connections), len(self.wss_connections))
        return self

    def get_https_connection(self, idx: Optional[int] = None):
        """Return (endpoint, index) or None when no query endpoint exists"""
        return self.https_connections.select(idx)

    def get_wss_connection(self, idx: Optional[int] = None):
        """Return (endpoint, index) or None when no push endpoint exists"""
        return self.wss_connections.select(idx)
