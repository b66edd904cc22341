"""
This module ties the live components into one arbitrage loop:
- the exhaustive DFS enumerates cycles for every origin token
- every pool of every cycle is activated and watched
- on any update of a pool, the cycles through it are re-priced by the trade-size
  search and profitable ones are handed to the transaction executor
"""

import asyncio
import functools
import json
import logging
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Set, Tuple, Union

from onchain_arbitrage_detector.algorithms.exhaustive_dfs_algorithm import (
    ExhaustiveDFSArbitrage,
    calculate_path_amount_out,
    format_path,
)
from onchain_arbitrage_detector.algorithms.trade_size_optimizer import TradeSizeOptimizer
from onchain_arbitrage_detector.configs.strategy_config import get_strategy_config
from onchain_arbitrage_detector.utils.data_structures import ArbPathNode, PathEvaluation, TradeSearchResult
from onchain_arbitrage_detector.utils.exceptions import ArbitrageEngineError

logger = logging.getLogger(__name__)

# (path, amount_in) -> transaction id or None
Executor = Callable[[List[ArbPathNode], int], Awaitable[Optional[str]]]


class LiveArbitrageDetector:
    """Live arbitrage loop - Main Coordinator"""

    def __init__(self,
                 registries: Sequence,
                 wallet,
                 executor: Optional[Executor] = None,
                 min_profit: int = None,
                 max_hops: int = None,
                 min_amount_in: int = None,
                 granularity: int = None,
                 max_amount_in: int = None,
                 routes_dir: Optional[Union[str, Path]] = None):
        """
        Initialize the live detector

        Args:
            registries: venue registries to search
            wallet: wallet collaborator
            executor: builds and submits the transaction for a profitable path
            min_profit: submit only when the optimal profit exceeds this
            max_hops: Maximum swaps in one cycle
            min_amount_in: floor of the trade-size search
            granularity: resolution of the trade-size search
            max_amount_in: optional ceiling of the trade-size search
            routes_dir: where <origin>_routes.json and <origin>_profit.txt are written
        """
        config = get_strategy_config("live_arbitrage")
        self.min_profit = config["min_profit"]
        if min_profit is not None:
            self.min_profit = min_profit

        self.registries = list(registries)
        self.wallet = wallet
        self.executor = executor
        self.routes_dir = Path(routes_dir) if routes_dir is not None else None

        self.path_finder = ExhaustiveDFSArbitrage(max_hops=max_hops)
        self.optimizer = TradeSizeOptimizer(
            min_amount_in=min_amount_in, granularity=granularity, max_amount_in=max_amount_in)

        self.paths_by_origin: Dict[str, List[List[ArbPathNode]]] = {}
        self.last_evaluations: Dict[Tuple[str, ...], PathEvaluation] = {}
        self.submitted: List[PathEvaluation] = []
        self._in_flight: Set[Tuple[str, ...]] = set()

    def find_paths(self, origin_token: str) -> List[List[ArbPathNode]]:
        """Enumerate cycles for one origin and write them to the routes file when configured"""
        paths = self.path_finder.find_arb_paths(origin_token, self.registries, self.wallet)
        self.paths_by_origin[origin_token] = paths
        logger.info("%s: %d arbitrage paths", origin_token, len(paths))

        if self.routes_dir is not None:
            self.routes_dir.mkdir(parents=True, exist_ok=True)
            routes_file = self.routes_dir / f"{origin_token}_routes.json"
            with open(routes_file, "w") as f:
                json.dump([format_path(path) for path in paths], f, indent=2)
            logger.info("Routes written to %s", routes_file)
        return paths

    def evaluate_path(self, path: List[ArbPathNode]) -> TradeSearchResult:
        """Trade-size search on the current cached state of every hop"""
        return self.optimizer.optimize(lambda amount_in: calculate_path_amount_out(path, amount_in) - amount_in)

    async def activate_path(self, origin_token: str, path: List[ArbPathNode]) -> None:
        for node in path:
            await node.activate()
            node.register_update_callback(functools.partial(self._on_node_update, origin_token, path))

    async def start(self, origin_tokens: Optional[Sequence[str]] = None) -> int:
        """
        Enumerate and activate the cycles of every origin token.
        Returns the number of paths that are live.
        """
        if origin_tokens is None:
            origin_tokens = get_strategy_config("live_arbitrage")["origin_tokens"]

        live = 0
        for origin_token in origin_tokens:
            for path in self.find_paths(origin_token):
                try:
                    await self.activate_path(origin_token, path)
                    live += 1
                except ArbitrageEngineError as e:
                    logger.error("Could not activate %s: %s", format_path(path), e)
        logger.info("%d arbitrage paths live", live)
        return live

    async def stop(self) -> None:
        for registry in self.registries:
            await registry.stop()

    async def _on_node_update(self, origin_token: str, path: List[ArbPathNode], _pool_state=None) -> None:
        await self.process_path(origin_token, path)

    async def process_path(self, origin_token: str, path: List[ArbPathNode]) -> Optional[PathEvaluation]:
        """
        Re-price one path and submit it when it clears min_profit.
        Engine and executor failures are logged, never raised.
        """
        hops = format_path(path)
        key = tuple(hops)
        try:
            result = self.evaluate_path(path)
        except ArbitrageEngineError as e:
            logger.error("Evaluation of %s failed: %s", hops, e)
            return None

        evaluation = PathEvaluation(hops, result.optimal_amount_in, result.optimal_profit)
        self.last_evaluations[key] = evaluation

        if result.optimal_profit <= self.min_profit:
            logger.info("update %s", json.dumps(evaluation.to_dict()))
            return evaluation

        if self.executor is None:
            logger.info("profitable %s", json.dumps(evaluation.to_dict()))
            return evaluation

        if key in self._in_flight:
            logger.debug("Submission already in flight for %s", hops)
            return evaluation

        self._in_flight.add(key)
        try:
            return await self._submit(origin_token, path, hops)
        finally:
            self._in_flight.discard(key)

    async def _submit(self, origin_token: str, path: List[ArbPathNode], hops: List[str]) -> Optional[PathEvaluation]:
        try:
            await asyncio.gather(*(node.prefetch() for node in path))
            result = self.evaluate_path(path)
            if result.optimal_profit <= self.min_profit:
                logger.info("Profit on %s vanished after prefetch (%d)", hops, result.optimal_profit)
                return PathEvaluation(hops, result.optimal_amount_in, result.optimal_profit)

            tx_id = await self.executor(path, result.optimal_amount_in)
        except ArbitrageEngineError as e:
            logger.error("Submission of %s failed: %s", hops, e)
            return None
        except Exception:
            logger.exception("Executor failed for %s", hops)
            return None

        evaluation = PathEvaluation(hops, result.optimal_amount_in, result.optimal_profit, tx_id=tx_id)
        self.last_evaluations[tuple(hops)] = evaluation
        if tx_id is not None:
            self.submitted.append(evaluation)
        profit_log = json.dumps(evaluation.to_dict())
        logger.info("profit %s", profit_log)

        if self.routes_dir is not None:
            self.routes_dir.mkdir(parents=True, exist_ok=True)
            with open(self.routes_dir / f"{origin_token}_profit.txt", "a") as f:
                f.write(profit_log + "\n")
        return evaluation

    def get_algorithm_stats(self) -> Dict:
        return {
            "origins": {origin: len(paths) for origin, paths in self.paths_by_origin.items()},
            "evaluated_paths": len(self.last_evaluations),
            "submitted": len(self.submitted),
            "path_search": self.path_finder.get_algorithm_stats(),
        }
