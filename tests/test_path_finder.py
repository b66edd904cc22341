"""
Arbitrage path enumeration tests over constant-product registries.
"""
import pytest

from fakes import FakeNetwork, FakeWallet, constant_product_pool, constant_product_registry
from onchain_arbitrage_detector.algorithms.exhaustive_dfs_algorithm import (
    ExhaustiveDFSArbitrage,
    calculate_path_amount_out,
    format_path,
)
from onchain_arbitrage_detector.utils.data_structures import ArbPathNode


def triangle_registry(network, directions=None):
    return constant_product_registry(network, [
        constant_product_pool(network, "A", "B", 10, 10, directions=directions),
        constant_product_pool(network, "B", "C", 10, 10, directions=directions),
        constant_product_pool(network, "C", "A", 10, 10, directions=directions),
    ])


def assert_valid_cycles(paths, origin, max_hops):
    for path in paths:
        assert 1 <= len(path) <= max_hops
        assert path[0].from_token == origin
        assert path[-1].to_token == origin
        for hop, next_hop in zip(path, path[1:]):
            assert hop.to_token == next_hop.from_token
        pool_ids = [node.pool_id for node in path]
        assert len(pool_ids) == len(set(pool_ids))


def test_triangle_has_exactly_one_three_hop_cycle():
    network = FakeNetwork()
    registry = triangle_registry(network, directions=["a_to_b"])
    finder = ExhaustiveDFSArbitrage(max_hops=3)

    paths = finder.find_arb_paths("A", [registry], FakeWallet(["A", "B", "C"]))

    assert len(paths) == 1
    assert [(node.from_token, node.to_token) for node in paths[0]] == [("A", "B"), ("B", "C"), ("C", "A")]
    assert len({node.pool_id for node in paths[0]}) == 3
    assert not [path for path in paths if len(path) == 2]


def test_bidirectional_triangle_yields_both_orientations():
    network = FakeNetwork()
    registry = triangle_registry(network)
    paths = ExhaustiveDFSArbitrage(max_hops=3).find_arb_paths("A", [registry], FakeWallet(["A", "B", "C"]))

    assert sorted(tuple(node.to_token for node in path) for path in paths) == [("B", "C", "A"), ("C", "B", "A")]
    assert_valid_cycles(paths, "A", 3)


def test_max_hops_bounds_cycle_length():
    network = FakeNetwork()
    registry = triangle_registry(network)
    assert ExhaustiveDFSArbitrage(max_hops=2).find_arb_paths("A", [registry], FakeWallet(["A", "B", "C"])) == []


def test_same_pool_is_never_used_twice():
    network = FakeNetwork()
    registry = constant_product_registry(network, [constant_product_pool(network, "USDC", "USDT", 10, 10)])
    finder = ExhaustiveDFSArbitrage(max_hops=3)

    assert finder.find_arb_paths("USDC", [registry], FakeWallet(["USDC", "USDT"])) == []
    assert finder.paths_pruned > 0


def test_parallel_pools_form_two_hop_cycles():
    network = FakeNetwork()
    registry = constant_product_registry(network, [
        constant_product_pool(network, "USDC", "USDT", 10, 10),
        constant_product_pool(network, "USDC", "USDT", 10, 10),
    ])
    paths = ExhaustiveDFSArbitrage(max_hops=3).find_arb_paths("USDC", [registry], FakeWallet(["USDC", "USDT"]))

    assert len(paths) == 2
    assert_valid_cycles(paths, "USDC", 3)


def test_search_continues_past_the_origin():
    network = FakeNetwork()
    registry = constant_product_registry(network, [
        constant_product_pool(network, "USDC", "USDT", 10, 10) for _ in range(4)
    ])
    finder = ExhaustiveDFSArbitrage(max_hops=4)
    paths = finder.find_arb_paths("USDC", [registry], FakeWallet(["USDC", "USDT"]))

    two_hop = [path for path in paths if len(path) == 2]
    four_hop = [path for path in paths if len(path) == 4]
    # ordered pairs of distinct pools, then orderings of all four pools
    assert len(two_hop) == 12
    assert len(four_hop) == 24
    assert len(paths) == 36
    assert finder.get_algorithm_stats()["cycles_found"] == 36
    assert_valid_cycles(paths, "USDC", 4)


def test_cycles_span_several_registries():
    network = FakeNetwork()
    first = constant_product_registry(network, [
        constant_product_pool(network, "USDC", "SOL", 10, 10),
        constant_product_pool(network, "SOL", "USDT", 10, 10),
    ])
    second = constant_product_registry(network, [
        constant_product_pool(network, "USDT", "USDC", 10, 10),
        constant_product_pool(network, "SOL", "USDC", 10, 10),
    ])
    paths = ExhaustiveDFSArbitrage(max_hops=3).find_arb_paths(
        "USDC", [first, second], FakeWallet(["USDC", "USDT", "SOL"]))

    assert_valid_cycles(paths, "USDC", 3)
    # USDC-SOL has one pool in each registry, so it closes a two-hop cycle in both orders
    two_hop = {tuple(node.to_token for node in path) for path in paths if len(path) == 2}
    assert two_hop == {("SOL", "USDC")}
    assert len([path for path in paths if len(path) == 2]) == 2
    assert [path for path in paths if len(path) == 3]


def test_wallet_without_intermediate_token_finds_nothing():
    network = FakeNetwork()
    registry = triangle_registry(network, directions=["a_to_b"])
    assert ExhaustiveDFSArbitrage(max_hops=3).find_arb_paths("A", [registry], FakeWallet(["A", "B"])) == []


def test_invalid_max_hops():
    with pytest.raises(ValueError):
        ExhaustiveDFSArbitrage(max_hops=0)


def test_default_max_hops_is_three():
    assert ExhaustiveDFSArbitrage().max_hops == 3


def make_node(pool_id, from_token, to_token, quote):
    async def noop():
        return None

    return ArbPathNode(
        pool_id=pool_id,
        from_token=from_token,
        to_token=to_token,
        get_amount_out=quote,
        get_arb_instruction=noop,
        activate=noop,
        register_update_callback=lambda callback: None,
        prefetch=noop,
    )


def test_path_helpers():
    path = [
        make_node("p1", "USDC", "SOL", lambda amount: amount * 2),
        make_node("p2", "SOL", "USDC", lambda amount: amount - 3),
    ]
    assert format_path(path) == ["p1:USDC->SOL", "p2:SOL->USDC"]
    assert calculate_path_amount_out(path, 10) == 17
