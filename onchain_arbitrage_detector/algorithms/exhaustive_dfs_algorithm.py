'''
Exhaustive DFS over live venue registries
This module enumerates every arbitrage cycle that starts and ends at one origin
token, across the pools of all registered venues.
'''

import logging
from typing import Dict, List, Sequence, Tuple

from onchain_arbitrage_detector.configs.strategy_config import get_strategy_config
from onchain_arbitrage_detector.utils.data_structures import ArbPathNode

logger = logging.getLogger(__name__)


def format_path(path: Sequence[ArbPathNode]) -> List[str]:
    """Render each hop as poolId:FROM->TO"""
    return [f"{node.pool_id}:{node.from_token}->{node.to_token}" for node in path]


def calculate_path_amount_out(path: Sequence[ArbPathNode], amount_in: int) -> int:
    """Feed amount_in through every hop of the path"""
    amount = amount_in
    for node in path:
        amount = node.get_amount_out(amount)
    return amount


class ExhaustiveDFSArbitrage:
    """
    Bounded-depth DFS over the union of all venue registries.

    A pool may appear at most once per path. When a paired token is the origin,
    the path closing through it is recorded and the search still continues past it.
    """

    def __init__(self, max_hops: int = None):
        """
        Initialize algorithm

        Args:
            max_hops: Maximum swaps in one cycle
        """
        config = get_strategy_config("exhaustive_dfs")
        self.max_hops = config["max_hops"]

        if max_hops is not None:
            self.max_hops = max_hops
        if self.max_hops < 1:
            raise ValueError(f"max_hops must be positive, got {self.max_hops}")
        self.algorithm_name = "ExhaustiveDFSArbitrage"

        # Initialize counters
        self.paths_explored = 0
        self.paths_pruned = 0
        self.cycles_found = 0

    def find_arb_paths(self, origin_token: str, registries: Sequence, wallet) -> List[List[ArbPathNode]]:
        """
        All cycles origin_token -> ... -> origin_token of at most max_hops swaps.

        Args:
            origin_token: token symbol the cycles start and end at
            registries: venue registries to search
            wallet: wallet collaborator, pairs it cannot trade are skipped

        Returns:
            List[List[ArbPathNode]]: unordered list of cycles
        """
        self.paths_explored = 0
        self.paths_pruned = 0
        self.cycles_found = 0

        result_paths: List[List[ArbPathNode]] = []
        # (registry index, from, to) -> nodes; each registry is asked once per pair
        edge_cache: Dict[Tuple[int, str, str], List[ArbPathNode]] = {}

        def candidate_nodes(registry_idx: int, registry, from_token: str, to_token: str) -> List[ArbPathNode]:
            key = (registry_idx, from_token, to_token)
            if key not in edge_cache:
                edge_cache[key] = registry.get_arb_paths(from_token, to_token, wallet)
            return edge_cache[key]

        def uses_pool(stack: List[ArbPathNode], node: ArbPathNode) -> bool:
            return any(visited.pool_id == node.pool_id for visited in stack)

        def dfs_recursive(current_token: str, stack: List[ArbPathNode]):
            self.paths_explored += 1
            if len(stack) >= self.max_hops:
                return

            for registry_idx, registry in enumerate(registries):
                # a token pair served by several pools is listed once per pool
                for paired_token in dict.fromkeys(registry.get_paired_tokens(current_token)):
                    for node in candidate_nodes(registry_idx, registry, current_token, paired_token):
                        if uses_pool(stack, node):
                            self.paths_pruned += 1
                            continue

                        if paired_token == origin_token:
                            result_paths.append(stack + [node])
                            self.cycles_found += 1

                        stack.append(node)
                        dfs_recursive(paired_token, stack)
                        stack.pop()

        dfs_recursive(origin_token, [])

        logger.info("[%s] %s: %d nodes explored, %d pool reuses skipped, %d cycles",
                    self.algorithm_name, origin_token, self.paths_explored, self.paths_pruned, self.cycles_found)
        return result_paths

    def get_algorithm_stats(self) -> Dict:
        """Get algorithm statistics"""
        return {
            "algorithm_name": self.algorithm_name,
            "max_hops": self.max_hops,
            "paths_explored": self.paths_explored,
            "paths_pruned": self.paths_pruned,
            "cycles_found": self.cycles_found,
        }
