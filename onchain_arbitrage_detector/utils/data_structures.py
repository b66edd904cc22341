"""
Data structures for live on-chain arbitrage detection.
This module defines the records shared between the account cache, the venue
registries, the path search and the trade-size optimizer.
"""
from typing import Any, Awaitable, Callable, Dict, List, Optional
from dataclasses import dataclass, field
from datetime import datetime

from solders.instruction import Instruction
from solders.pubkey import Pubkey


@dataclass
class Token:
    symbol: str  # token symbol, used as the graph node
    mint: Pubkey  # mint address
    decimals: int  # mint decimals


@dataclass
class PoolConfig:
    pool_id: str  # address of the pool's primary account
    token_a: str  # symbol of token A
    token_b: str  # symbol of token B
    accounts: Dict[str, str] = field(default_factory=dict)  # venue-specific named addresses
    a_to_b: bool = True  # pool can be traded A -> B
    b_to_a: bool = True  # pool can be traded B -> A
    extra: Dict[str, Any] = field(default_factory=dict)  # venue-specific scalars (fees, decimals)

    def __post_init__(self):
        if not self.pool_id or not self.token_a or not self.token_b:
            raise ValueError(f"pool config needs pool_id, token_a and token_b: {self}")
        if self.token_a == self.token_b:
            raise ValueError(f"pool {self.pool_id} trades {self.token_a} against itself")


@dataclass
class RegistryConfig:
    program_id: Pubkey  # venue program
    pools: List[PoolConfig]


@dataclass
class ArbPathNode:
    """
    One hop of an arbitrage path: swap from_token -> to_token on one pool.
    Every callable is bound to the pool's live cached state.
    """
    pool_id: str
    from_token: str
    to_token: str
    get_amount_out: Callable[[int], int]
    get_arb_instruction: Callable[[], Awaitable[Instruction]]
    activate: Callable[[], Awaitable[None]]
    register_update_callback: Callable[[Callable], None]
    prefetch: Callable[[], Awaitable[None]]
    venue: str = ""

    def __repr__(self) -> str:
        return f"{self.pool_id}:{self.from_token}->{self.to_token}"


@dataclass
class TradeSearchResult:
    optimal_amount_in: int  # input amount with the best observed profit
    optimal_profit: int  # path output minus input at optimal_amount_in
    evaluations: int = 0  # distinct profit evaluations performed


@dataclass
class PathEvaluation:
    path: List[str]  # formatted hops, see format_path
    optimal_amount_in: int
    optimal_profit: int
    timestamp: datetime = field(default_factory=datetime.now)
    tx_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "optimalAmountIn": str(self.optimal_amount_in),
            "optimalProfit": str(self.optimal_profit),
            "timestamp": self.timestamp.isoformat(timespec="seconds"),
            "txId": self.tx_id,
        }
