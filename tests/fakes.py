"""
In-memory network endpoints and builders shared by the tests.
"""
import struct
from collections import namedtuple
from typing import Callable, Dict, List, Optional

from solders.pubkey import Pubkey

from onchain_arbitrage_detector.utils.connection_pool import ConnectionPool
from onchain_arbitrage_detector.utils.data_structures import PoolConfig, RegistryConfig
from onchain_arbitrage_detector.utils.graph_structure import VenueRegistry
from onchain_arbitrage_detector.venues.concentrated_liquidity import ClmmVenue, ConcentratedLiquidityVenue
from onchain_arbitrage_detector.venues.constant_product import ConstantProductVenue


class FakeQueryEndpoint:
    def __init__(self, default: Optional[bytes] = None):
        self.accounts: Dict[Pubkey, bytes] = {}
        self.default = default
        self.failing = set()
        self.pulls: List[Pubkey] = []

    async def pull(self, address: Pubkey) -> Optional[bytes]:
        self.pulls.append(address)
        if address in self.failing:
            raise ConnectionError(f"pull refused for {address}")
        return self.accounts.get(address, self.default)


class FakePushEndpoint:
    def __init__(self):
        self.subscriptions: Dict[int, tuple] = {}
        self.subscribe_calls = 0
        self.unsubscribe_calls = 0
        self.fail_subscribe = False
        self.fail_unsubscribe = False
        self._next_handle = 0

    async def subscribe(self, address: Pubkey, on_change: Callable) -> int:
        self.subscribe_calls += 1
        if self.fail_subscribe:
            raise ConnectionError("subscribe refused")
        self._next_handle += 1
        self.subscriptions[self._next_handle] = (address, on_change)
        return self._next_handle

    async def unsubscribe(self, handle: int) -> None:
        self.unsubscribe_calls += 1
        if self.fail_unsubscribe:
            raise ConnectionError("unsubscribe refused")
        del self.subscriptions[handle]

    def subscribed_addresses(self) -> List[Pubkey]:
        return [address for address, _ in self.subscriptions.values()]

    async def push(self, address: Pubkey, data: bytes) -> None:
        for subscribed, on_change in list(self.subscriptions.values()):
            if subscribed == address:
                await on_change(data)


class FakeNetwork:
    """One query and one push endpoint sharing the same account store"""

    def __init__(self, default: Optional[bytes] = None):
        self.query = FakeQueryEndpoint(default)
        self.push = FakePushEndpoint()
        self.pool = ConnectionPool([self.query], [self.push])

    def set(self, address: Pubkey, data: bytes) -> None:
        self.query.accounts[address] = data

    async def update(self, address: Pubkey, data: bytes) -> None:
        self.set(address, data)
        await self.push.push(address, data)


def token_account_data(amount: int) -> bytes:
    """SPL token account layout with only the amount field filled"""
    return bytes(64) + amount.to_bytes(8, "little") + bytes(93)


def u64(value: int) -> bytes:
    return struct.pack("<Q", value)


# concentrated-liquidity test layouts: the pool carries (tick, spacing), a tick array a u64
TestWhirlpool = namedtuple("TestWhirlpool", ["tick_current_index", "tick_spacing"])


def whirlpool_data(tick: int, spacing: int) -> bytes:
    return struct.pack("<iH", tick, spacing)


def decode_whirlpool(data: bytes) -> TestWhirlpool:
    return TestWhirlpool(*struct.unpack("<iH", data[:6]))


def decode_u64(data: bytes) -> int:
    return struct.unpack("<Q", data[:8])[0]


def linear_swap_quote(pool, tick_arrays, amount_in: int, a_to_b: bool) -> int:
    """Output equals input, requires every tick array to be loaded"""
    assert len(tick_arrays) == 3
    return amount_in


def constant_product_pool(network: FakeNetwork, token_a: str, token_b: str,
                          reserve_a: int, reserve_b: int, fee_bps: int = 0,
                          directions=None) -> Dict:
    """Pool entry of the constant-product venue with both reserves stored on the fake network"""
    entry = {
        "pool": str(Pubkey.new_unique()),
        "tokenA": token_a,
        "tokenB": token_b,
        "reserveA": str(Pubkey.new_unique()),
        "reserveB": str(Pubkey.new_unique()),
        "authority": str(Pubkey.new_unique()),
        "adminTokenA": str(Pubkey.new_unique()),
        "adminTokenB": str(Pubkey.new_unique()),
        "feeBps": fee_bps,
    }
    if directions is not None:
        entry["directions"] = directions
    network.set(Pubkey.from_string(entry["reserveA"]), token_account_data(reserve_a))
    network.set(Pubkey.from_string(entry["reserveB"]), token_account_data(reserve_b))
    return entry


def constant_product_registry(network: FakeNetwork, entries: List[Dict],
                              arb_program_id: Optional[Pubkey] = None) -> VenueRegistry:
    plugin = ConstantProductVenue(arb_program_id or Pubkey.new_unique())
    raw = {"programAddress": str(Pubkey.new_unique()), "pools": entries}
    return VenueRegistry(plugin, network.pool, registry_config=plugin.parse_config(raw))


def concentrated_venue(swap_quote=linear_swap_quote, arb_program_id: Optional[Pubkey] = None):
    return ConcentratedLiquidityVenue(arb_program_id or Pubkey.new_unique(),
                                      decode_whirlpool, decode_u64, swap_quote)


def clmm_fee_quote(pool, tick_arrays, amount_in: int, a_to_b: bool, amm_config: int) -> int:
    """Output is the input less the fee rate (parts per million) held in the fee config"""
    assert len(tick_arrays) == 3
    return amount_in * (1_000_000 - amm_config) // 1_000_000


def clmm_venue(arb_program_id: Optional[Pubkey] = None, swap_quote=clmm_fee_quote, **options) -> ClmmVenue:
    return ClmmVenue(arb_program_id or Pubkey.new_unique(), decode_whirlpool, decode_u64, swap_quote,
                     amm_config_decoder=decode_u64, bitmap_extension_decoder=decode_u64, **options)


def clmm_pool_entry(network: FakeNetwork, token_a: str = "SOL", token_b: str = "USDC",
                    tick: int = 0, spacing: int = 1, fee_rate: int = 2_500) -> Dict:
    """CLMM pool entry with the pool and its fee config stored on the fake network"""
    entry = {
        "poolState": str(Pubkey.new_unique()),
        "tokenA": token_a,
        "tokenB": token_b,
        "ammConfig": str(Pubkey.new_unique()),
        "tokenAVault": str(Pubkey.new_unique()),
        "tokenBVault": str(Pubkey.new_unique()),
        "observationState": str(Pubkey.new_unique()),
    }
    network.set(Pubkey.from_string(entry["poolState"]), whirlpool_data(tick, spacing))
    network.set(Pubkey.from_string(entry["ammConfig"]), u64(fee_rate))
    return entry


def concentrated_pool_config(token_a: str = "SOL", token_b: str = "USDC", **kwargs) -> PoolConfig:
    return PoolConfig(
        pool_id=str(Pubkey.new_unique()),
        token_a=token_a,
        token_b=token_b,
        accounts={
            "tokenVaultA": str(Pubkey.new_unique()),
            "tokenVaultB": str(Pubkey.new_unique()),
            "oracle": str(Pubkey.new_unique()),
        },
        **kwargs,
    )


class FakeWallet:
    def __init__(self, symbols):
        self.owner = Pubkey.new_unique()
        self.token_accounts = {symbol: Pubkey.new_unique() for symbol in symbols}

    def get_token_account(self, symbol: str) -> Optional[Pubkey]:
        return self.token_accounts.get(symbol)


def registry_config(pools: List[PoolConfig]) -> RegistryConfig:
    return RegistryConfig(program_id=Pubkey.new_unique(), pools=pools)
