'''
Build a networkX token graph for one venue.

Every pool of the venue becomes one directed edge per direction it can be
traded in, keyed by the pool id, so parallel pools on the same token pair stay
distinct edges. The graph is the venue registry's traversal index.
'''

import logging
import networkx as nx
from typing import Dict, List, Optional, Union
from pathlib import Path

from onchain_arbitrage_detector.utils.connection_pool import ConnectionPool
from onchain_arbitrage_detector.utils.data_structures import ArbPathNode, RegistryConfig
from onchain_arbitrage_detector.utils.exceptions import ConfigurationError
from onchain_arbitrage_detector.utils.pool_state import PoolState

logger = logging.getLogger(__name__)


class VenueRegistry:
    """
    All pools of one venue, indexed by token pair.

    Args:
        plugin: venue plugin
        connection_pool: endpoint pool shared by every account cache
        config_path: venue JSON config, loaded through the plugin
        registry_config: already parsed config, used instead of config_path
    """

    def __init__(self,
                 plugin,
                 connection_pool: ConnectionPool,
                 config_path: Optional[Union[str, Path]] = None,
                 registry_config: Optional[RegistryConfig] = None):
        if registry_config is None:
            if config_path is None:
                raise ConfigurationError(f"[{plugin.name}] needs a config path or a parsed config")
            registry_config = plugin.load_config(config_path)

        self.plugin = plugin
        self.name = plugin.name
        self.program_id = registry_config.program_id
        self.pool_states: List[PoolState] = []
        self.graph = nx.MultiDiGraph()

        for pool_config in registry_config.pools:
            if any(pool_state.pool_id == pool_config.pool_id for pool_state in self.pool_states):
                raise ConfigurationError(f"[{self.name}] duplicate pool {pool_config.pool_id}")

            pool_state = PoolState(plugin, self.program_id, pool_config, connection_pool)
            self.pool_states.append(pool_state)
            if pool_config.a_to_b:
                self.graph.add_edge(pool_config.token_a, pool_config.token_b,
                                    key=pool_config.pool_id, pool_state=pool_state, a_to_b=True)
            if pool_config.b_to_a:
                self.graph.add_edge(pool_config.token_b, pool_config.token_a,
                                    key=pool_config.pool_id, pool_state=pool_state, a_to_b=False)

        logger.info("[%s] registry built: %d pools, %d tokens, %d directed edges",
                    self.name, len(self.pool_states), self.graph.number_of_nodes(), self.graph.number_of_edges())

    def get_paired_tokens(self, token: str) -> List[str]:
        """Tokens reachable from token through one pool; one entry per pool, duplicates included"""
        if token not in self.graph:
            return []
        return [to_token for _, to_token in self.graph.out_edges(token)]

    def get_arb_paths(self, from_token: str, to_token: str, wallet) -> List[ArbPathNode]:
        """
        One ArbPathNode per pool that swaps from_token -> to_token.
        Returns an empty list when the wallet lacks a token account for either side.
        """
        if wallet.get_token_account(from_token) is None or wallet.get_token_account(to_token) is None:
            logger.warning("%s-%s is not available for wallet %s", from_token, to_token, wallet.owner)
            return []

        edges = self.graph.get_edge_data(from_token, to_token) or {}
        return [
            self._make_node(edge["pool_state"], from_token, to_token, edge["a_to_b"], wallet)
            for edge in edges.values()
        ]

    def _make_node(self, pool_state: PoolState, from_token: str, to_token: str,
                   a_to_b: bool, wallet) -> ArbPathNode:
        return ArbPathNode(
            pool_id=pool_state.pool_id,
            from_token=from_token,
            to_token=to_token,
            get_amount_out=lambda amount_in: pool_state.get_amount_out(amount_in, a_to_b),
            get_arb_instruction=lambda: pool_state.get_swap_instruction(a_to_b, wallet),
            activate=pool_state.start,
            register_update_callback=pool_state.register_update_callback,
            prefetch=lambda: pool_state.prefetch(a_to_b),
            venue=self.name,
        )

    def get_graph_stats(self) -> Dict[str, int]:
        return {
            "pools": len(self.pool_states),
            "tokens": self.graph.number_of_nodes(),
            "directed_edges": self.graph.number_of_edges(),
        }

    async def stop(self) -> None:
        for pool_state in self.pool_states:
            if pool_state.active:
                await pool_state.stop()
