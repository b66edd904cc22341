"""
Venue plugin contract.

A venue plugin tells the engine how one DEX program is configured, how its
accounts decode, which auxiliary accounts a pool needs for the current price,
how to quote a swap and how to build the swap instruction. The registry and the
pool state aggregate never look inside a venue's accounts themselves.
"""
import json
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Union
from pathlib import Path

from solders.instruction import Instruction
from solders.pubkey import Pubkey

from onchain_arbitrage_detector.utils.data_structures import PoolConfig, RegistryConfig
from onchain_arbitrage_detector.utils.exceptions import ConfigurationError
from onchain_arbitrage_detector.utils.live_account import LiveAccount

if TYPE_CHECKING:
    from onchain_arbitrage_detector.utils.pool_state import PoolState
    from onchain_arbitrage_detector.utils.wallet import WalletTokenAccounts

logger = logging.getLogger(__name__)

DIRECTION_NAMES = {"a_to_b", "b_to_a"}


def parse_directions(entry: Dict[str, Any]) -> Dict[str, bool]:
    """Read the optional "directions" list of a pool entry, both directions by default"""
    directions = entry.get("directions")
    if directions is None:
        return {"a_to_b": True, "b_to_a": True}
    unknown = set(directions) - DIRECTION_NAMES
    if unknown or not directions:
        raise ConfigurationError(f"invalid directions {directions!r}, expected a subset of {sorted(DIRECTION_NAMES)}")
    return {"a_to_b": "a_to_b" in directions, "b_to_a": "b_to_a" in directions}


class VenuePlugin(ABC):
    """
    Base class for venue plugins.

    Args:
        arb_program_id: id of the on-chain arbitrage program whose swap entrypoints
            the venue's instructions target
    """

    name: str = "venue"

    def __init__(self, arb_program_id: Pubkey):
        self.arb_program_id = arb_program_id

    def load_config(self, config_path: Union[str, Path]) -> RegistryConfig:
        """
        Load {"programAddress": ..., "pools": [...]} from a JSON file.
        Raises ConfigurationError on a missing or malformed file.
        """
        try:
            with open(config_path, "r", encoding="utf-8") as file:
                raw = json.load(file)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"[{self.name}] cannot read venue config {config_path}: {e}") from e
        return self.parse_config(raw)

    def parse_config(self, raw: Dict[str, Any]) -> RegistryConfig:
        try:
            program_id = Pubkey.from_string(raw["programAddress"])
            pools = [self.parse_pool_config(entry) for entry in raw["pools"]]
        except ConfigurationError:
            raise
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"[{self.name}] malformed venue config: {e!r}") from e

        logger.info("[%s] loaded %d pools for program %s", self.name, len(pools), program_id)
        return RegistryConfig(program_id=program_id, pools=pools)

    @abstractmethod
    def parse_pool_config(self, entry: Dict[str, Any]) -> PoolConfig:
        """Turn one JSON pool entry into a PoolConfig"""

    @abstractmethod
    def create_primary(self, pool_state: "PoolState") -> LiveAccount:
        """Build the pool's primary account cache"""

    def create_constant_accounts(self, pool_state: "PoolState") -> Dict[str, LiveAccount]:
        """Auxiliary accounts that live as long as the pool"""
        return {}

    def window_update(self, primary_state: Any, a_to_b: bool) -> List[str]:
        """Names of the window accounts needed to quote one direction from primary_state"""
        return []

    def prefetch_names(self, primary_state: Any, a_to_b: bool) -> List[str]:
        return self.window_update(primary_state, a_to_b)

    def create_window_account(self, pool_state: "PoolState", name: str) -> LiveAccount:
        raise NotImplementedError(f"[{self.name}] has no window accounts, asked for {name}")

    @abstractmethod
    def compute_quote(self, pool_state: "PoolState", amount_in: int, a_to_b: bool) -> int:
        """Amount out for amount_in on the cached state. May raise on inconsistent state."""

    @abstractmethod
    async def build_instruction(self, pool_state: "PoolState", a_to_b: bool,
                                wallet: "WalletTokenAccounts") -> Instruction:
        """Swap instruction for one hop of an arbitrage transaction"""
