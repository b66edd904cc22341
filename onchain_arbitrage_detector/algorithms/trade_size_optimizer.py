'''
Trade-size search for one arbitrage path.

The profit curve of a path, profit(x) = path_out(x) - x, is assumed to rise and
then fall. The search brackets the peak by doubling the input from the floor and
then narrows the bracket by ternary steps until it is no wider than the
granularity. Each evaluation can hit several pool quote functions, so every
input is evaluated at most once.
'''

import logging
from typing import Callable, Dict, Optional

from onchain_arbitrage_detector.configs.strategy_config import get_strategy_config
from onchain_arbitrage_detector.utils.data_structures import TradeSearchResult
from onchain_arbitrage_detector.utils.exceptions import SearchDomainError

logger = logging.getLogger(__name__)


class _MemoizedProfit:
    def __init__(self, profit_fn: Callable[[int], int]):
        self.profit_fn = profit_fn
        self.values: Dict[int, int] = {}

    def __call__(self, amount_in: int) -> int:
        if amount_in not in self.values:
            self.values[amount_in] = self.profit_fn(amount_in)
        return self.values[amount_in]

    @property
    def evaluations(self) -> int:
        return len(self.values)


def find_optimal_trade(min_amount_in: int,
                       profit_fn: Callable[[int], int],
                       granularity: int,
                       max_amount_in: Optional[int] = None) -> TradeSearchResult:
    """
    Find the input amount with the highest profit.

    Args:
        min_amount_in: floor of the search domain
        profit_fn: input amount -> profit, assumed unimodal
        granularity: bracket width at which narrowing stops, must be positive
        max_amount_in: optional ceiling of the search domain

    Returns:
        TradeSearchResult: best observed input and its profit

    Raises:
        SearchDomainError: on a non-positive granularity or an empty domain
    """
    if granularity <= 0:
        raise SearchDomainError(f"granularity must be positive, got {granularity}")
    if min_amount_in < 0:
        raise SearchDomainError(f"min_amount_in must be non-negative, got {min_amount_in}")
    if max_amount_in is not None and max_amount_in < min_amount_in:
        raise SearchDomainError(f"max_amount_in {max_amount_in} is below min_amount_in {min_amount_in}")

    profit = _MemoizedProfit(profit_fn)

    floor_profit = profit(min_amount_in)
    if floor_profit < 0:
        return TradeSearchResult(min_amount_in, floor_profit, profit.evaluations)

    def next_upper(amount: int) -> int:
        upper = max(2 * amount, amount + granularity)
        if max_amount_in is not None:
            upper = min(upper, max_amount_in)
        return upper

    # exponential bracketing: [lower, upper] with mid the best point seen so far
    lower = mid = min_amount_in
    upper = next_upper(mid)
    while upper > mid and profit(upper) > profit(mid):
        lower, mid = mid, upper
        upper = next_upper(mid)

    # ternary narrowing
    while upper - lower > granularity:
        step = max(1, (upper - lower) // 3)
        cut_low = lower + step
        cut_high = upper - step
        if profit(cut_low) < profit(cut_high):
            lower = cut_low
        else:
            upper = cut_high

    if profit(upper) > profit(lower):
        best = upper
    else:
        best = lower

    logger.debug("Trade search [%d, %d] -> %d (profit %d, %d evaluations)",
                 lower, upper, best, profit(best), profit.evaluations)
    return TradeSearchResult(best, profit(best), profit.evaluations)


class TradeSizeOptimizer:
    """
    find_optimal_trade bound to configured search parameters.
    """

    def __init__(self,
                 min_amount_in: int = None,
                 granularity: int = None,
                 max_amount_in: int = None):
        config = get_strategy_config("trade_size_optimizer")
        self.min_amount_in = config["min_amount_in"]
        self.granularity = config["granularity"]
        self.max_amount_in = config["max_amount_in"]

        if min_amount_in is not None:
            self.min_amount_in = min_amount_in
        if granularity is not None:
            self.granularity = granularity
        if max_amount_in is not None:
            self.max_amount_in = max_amount_in

    def optimize(self, profit_fn: Callable[[int], int]) -> TradeSearchResult:
        return find_optimal_trade(self.min_amount_in, profit_fn, self.granularity, self.max_amount_in)
