"""
Strategy Configuration for the live arbitrage engine
This module centralizes path search and trade-size search parameters.
Amounts are integer base units of the origin token.
"""

from typing import Dict, Any


# Default configuration template
DEFAULT_CONFIG = {
    # Path search
    "max_hops": 3,                  # Maximum swaps in one cycle
    "origin_tokens": ["USDC", "USDT"],

    # Trade-size search
    "min_amount_in": 1_000_000,     # Lower bound of the search domain
    "max_amount_in": None,          # Optional upper bound of the search domain
    "granularity": 10_000,          # Stop narrowing once the bracket is this narrow

    # Submission
    "min_profit": 500,              # Submit only above this profit (base units)
}

# Component-specific configurations
STRATEGY_CONFIGS = {
    "exhaustive_dfs": {
        "max_hops": 3,
    },

    "trade_size_optimizer": {
        "min_amount_in": 1_000_000,
        "granularity": 10_000,
    },

    "live_arbitrage": {
        "min_profit": 500,
    },
}


def get_strategy_config(name: str) -> Dict[str, Any]:
    """
    Get configuration for a component

    Args:
        name: Name of the component

    Returns:
        Dict[str, Any]: Default configuration merged with the component's overrides

    Raises:
        KeyError: If the name is not found
    """
    if name not in STRATEGY_CONFIGS:
        raise KeyError(f"Unknown strategy: {name}. "
                       f"Available: {list(STRATEGY_CONFIGS.keys())}")

    config = DEFAULT_CONFIG.copy()
    config.update(STRATEGY_CONFIGS[name])
    return config
