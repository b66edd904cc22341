"""
Trade-size search tests on known profit curves.
"""
import pytest

from onchain_arbitrage_detector.algorithms.trade_size_optimizer import TradeSizeOptimizer, find_optimal_trade
from onchain_arbitrage_detector.utils.exceptions import SearchDomainError


def parabola(peak, top):
    return lambda x: -(x - peak) ** 2 + top


class CountingProfit:
    def __init__(self, profit_fn):
        self.profit_fn = profit_fn
        self.calls = []

    def __call__(self, amount_in):
        self.calls.append(amount_in)
        return self.profit_fn(amount_in)


@pytest.mark.parametrize("peak", [1_000_000, 1_234_567, 5_000_000, 77_777_777, 250_000_000])
def test_finds_parabola_peak_within_granularity(peak):
    granularity = 10_000
    profit = parabola(peak, 10 ** 17)
    result = find_optimal_trade(1_000_000, profit, granularity)

    assert abs(result.optimal_amount_in - peak) <= granularity
    assert result.optimal_profit == profit(result.optimal_amount_in)


def test_peak_beyond_unprofitable_floor_is_not_searched():
    # profit at the floor is -(76_777_777 ** 2) + 10 ** 15 < 0
    profit = CountingProfit(parabola(77_777_777, 10 ** 15))
    result = find_optimal_trade(1_000_000, profit, 10_000)

    assert result.optimal_amount_in == 1_000_000
    assert result.optimal_profit < 0
    assert profit.calls == [1_000_000]


def test_floor_unprofitable_returns_immediately():
    profit = CountingProfit(lambda x: -5 - x)
    result = find_optimal_trade(1_000_000, profit, 10_000)

    assert (result.optimal_amount_in, result.optimal_profit) == (1_000_000, -1_000_005)
    assert profit.calls == [1_000_000]
    assert result.evaluations == 1


def test_no_amount_is_evaluated_twice():
    profit = CountingProfit(parabola(3_333_333, 10 ** 14))
    result = find_optimal_trade(1_000_000, profit, 1_000)

    assert len(profit.calls) == len(set(profit.calls))
    assert result.evaluations == len(profit.calls)


def test_decreasing_profit_keeps_the_floor():
    result = find_optimal_trade(1_000_000, lambda x: 2_000_000 - x, 10_000)
    assert result.optimal_amount_in == 1_000_000
    assert result.optimal_profit == 1_000_000


def test_flat_zero_profit():
    result = find_optimal_trade(1_000_000, lambda x: 0, 10_000)
    assert (result.optimal_amount_in, result.optimal_profit) == (1_000_000, 0)


def test_zero_floor_still_brackets():
    result = find_optimal_trade(0, parabola(50_000, 10 ** 10), 100)
    assert abs(result.optimal_amount_in - 50_000) <= 100


def test_ceiling_caps_the_search():
    result = find_optimal_trade(1_000_000, lambda x: x, 10_000, max_amount_in=3_000_000)
    assert result.optimal_amount_in == 3_000_000
    assert result.optimal_profit == 3_000_000


@pytest.mark.parametrize("granularity", [0, -1])
def test_non_positive_granularity_is_rejected(granularity):
    with pytest.raises(SearchDomainError):
        find_optimal_trade(1_000_000, lambda x: 0, granularity)


def test_invalid_domain_is_rejected():
    with pytest.raises(SearchDomainError):
        find_optimal_trade(-1, lambda x: 0, 10)
    with pytest.raises(SearchDomainError):
        find_optimal_trade(100, lambda x: 0, 10, max_amount_in=50)


def test_optimizer_uses_configured_defaults():
    optimizer = TradeSizeOptimizer()
    assert optimizer.min_amount_in == 1_000_000
    assert optimizer.granularity == 10_000
    assert optimizer.max_amount_in is None

    result = TradeSizeOptimizer(min_amount_in=0, granularity=10).optimize(parabola(500, 10 ** 6))
    assert abs(result.optimal_amount_in - 500) <= 10
