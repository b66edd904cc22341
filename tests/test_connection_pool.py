"""
Endpoint pool tests: round-robin distribution, explicit index selection and
the startup check for empty endpoint lists.
"""
from collections import Counter

import pytest

from onchain_arbitrage_detector.utils.connection_pool import ConnectionPool, SequentialSelector
from onchain_arbitrage_detector.utils.exceptions import ConfigurationError


def test_round_robin_visits_every_endpoint_evenly():
    pool = ConnectionPool(["h0", "h1", "h2"], ["w0"])
    counts = Counter(pool.get_https_connection()[0] for _ in range(10))
    assert set(counts) == {"h0", "h1", "h2"}
    assert all(count in (3, 4) for count in counts.values())


def test_round_robin_returns_the_index_drawn_from():
    pool = ConnectionPool(["h0", "h1"], ["w0", "w1", "w2"])
    drawn = [pool.get_wss_connection() for _ in range(4)]
    assert drawn == [("w0", 0), ("w1", 1), ("w2", 2), ("w0", 0)]


def test_explicit_index_selects_that_endpoint_without_advancing():
    pool = ConnectionPool(["h0", "h1", "h2"], ["w0"])
    assert pool.get_https_connection(0) == ("h0", 0)
    assert pool.get_https_connection(2) == ("h2", 2)
    assert pool.get_https_connection(0) == ("h0", 0)
    # the cursor did not move
    assert pool.get_https_connection() == ("h0", 0)


def test_empty_sequence_selects_nothing():
    assert SequentialSelector([]).select() is None
    assert ConnectionPool([], []).get_https_connection() is None


def test_require_endpoints_rejects_empty_lists():
    with pytest.raises(ConfigurationError):
        ConnectionPool([], ["w0"]).require_endpoints()
    with pytest.raises(ConfigurationError):
        ConnectionPool(["h0"], []).require_endpoints()

    pool = ConnectionPool(["h0"], ["w0"])
    assert pool.require_endpoints() is pool
