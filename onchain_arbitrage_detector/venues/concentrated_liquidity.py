"""
Concentrated-liquidity venues with a sliding window of tick arrays.

Liquidity is split into tick arrays of a fixed number of ticks each. Quoting a
swap needs the tick array holding the current tick and the next two in the
swap direction, so the set of watched tick arrays moves with the price. The
curve math and the account layouts are supplied by the caller: these venues only
decide which tick arrays must be live and how the swap instruction is wired.

Two window shapes are provided:
- ConcentratedLiquidityVenue: 88-tick arrays, B to A counted from one spacing
  above the current tick, each direction watching its own three arrays.
- ClmmVenue: 60-tick arrays, both directions counted from the current tick,
  a symmetric window of five arrays, plus the pool's fee config and tick array
  bitmap extension as constant accounts.
"""
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from spl.token.constants import TOKEN_PROGRAM_ID

from onchain_arbitrage_detector.utils.data_structures import PoolConfig
from onchain_arbitrage_detector.utils.live_account import LiveAccount, to_pubkey
from onchain_arbitrage_detector.utils.transaction import build_anchor_instruction, swap_state_address
from onchain_arbitrage_detector.venues.base import VenuePlugin, parse_directions

logger = logging.getLogger(__name__)

TICK_ARRAY_SIZE = 88
CLMM_TICK_ARRAY_SIZE = 60
TICK_ARRAY_PREFIX = "tickArray"
A_TO_B_OFFSETS = (0, -1, -2)
B_TO_A_OFFSETS = (0, 1, 2)
CLMM_WINDOW_OFFSETS = (-2, -1, 0, 1, 2)

# name -> (pool state -> address, decoder)
ConstantAccount = Tuple[Callable[[Any], Pubkey], Callable[[bytes], Any]]


def tick_array_start_index(tick_current_index: int, tick_spacing: int, a_to_b: bool, offset: int,
                           tick_array_size: int = TICK_ARRAY_SIZE, shift_b_to_a: bool = True) -> int:
    """Start tick of the tick array `offset` arrays away from the one holding the current price"""
    target = tick_current_index + tick_spacing if shift_b_to_a and not a_to_b else tick_current_index
    full_tick_array_size = tick_array_size * tick_spacing
    current_start = target - target % full_tick_array_size
    return current_start + full_tick_array_size * offset


def tick_array_key(start_index: int) -> str:
    return f"{TICK_ARRAY_PREFIX}{start_index}"


def start_index_from_key(name: str) -> int:
    if not name.startswith(TICK_ARRAY_PREFIX):
        raise ValueError(f"not a tick array key: {name}")
    return int(name[len(TICK_ARRAY_PREFIX):])


def tick_array_address(program_id: Pubkey, pool_address: Pubkey, start_index: int) -> Pubkey:
    address, _bump = Pubkey.find_program_address(
        [b"tick_array", bytes(pool_address), str(start_index).encode("utf-8")], program_id)
    return address


def clmm_tick_array_address(program_id: Pubkey, pool_address: Pubkey, start_index: int) -> Pubkey:
    """The start index is seeded as a big-endian i32"""
    address, _bump = Pubkey.find_program_address(
        [b"tick_array", bytes(pool_address), start_index.to_bytes(4, "big", signed=True)], program_id)
    return address


def clmm_bitmap_extension_address(program_id: Pubkey, pool_address: Pubkey) -> Pubkey:
    address, _bump = Pubkey.find_program_address(
        [b"pool_tick_array_bitmap_extension", bytes(pool_address)], program_id)
    return address


class ConcentratedLiquidityVenue(VenuePlugin):
    """
    Args:
        arb_program_id: arbitrage program id
        pool_decoder: bytes -> pool state exposing tick_current_index and tick_spacing
        tick_array_decoder: bytes -> tick array state
        swap_quote: (pool state, [tick arrays in swap order], amount_in, a_to_b) -> amount_out
        name: venue label used in logs
        tick_array_size: ticks per tick array
        a_to_b_offsets, b_to_a_offsets: tick arrays a swap walks, in swap order
        window_offsets: tick arrays watched whatever the direction; None watches
            the swap arrays of each supported direction
        shift_b_to_a: count B to A from one spacing above the current tick
        address_fn: (program id, pool, start index) -> tick array address
        constant_accounts: extra accounts that live as long as the pool

    Pool entry:
        {"pool", "tokenA", "tokenB", "tokenVaultA", "tokenVaultB", "oracle", "directions" (optional)}
    """

    swap_method = "orca_swap"
    tick_array_size = TICK_ARRAY_SIZE
    a_to_b_offsets: Sequence[int] = A_TO_B_OFFSETS
    b_to_a_offsets: Sequence[int] = B_TO_A_OFFSETS
    window_offsets: Optional[Sequence[int]] = None
    shift_b_to_a = True

    def __init__(self,
                 arb_program_id: Pubkey,
                 pool_decoder: Callable[[bytes], Any],
                 tick_array_decoder: Callable[[bytes], Any],
                 swap_quote: Callable[..., int],
                 name: str = "concentrated_liquidity",
                 tick_array_size: Optional[int] = None,
                 a_to_b_offsets: Optional[Sequence[int]] = None,
                 b_to_a_offsets: Optional[Sequence[int]] = None,
                 window_offsets: Optional[Sequence[int]] = None,
                 shift_b_to_a: Optional[bool] = None,
                 address_fn: Callable[[Pubkey, Pubkey, int], Pubkey] = tick_array_address,
                 constant_accounts: Optional[Dict[str, ConstantAccount]] = None):
        super().__init__(arb_program_id)
        self.pool_decoder = pool_decoder
        self.tick_array_decoder = tick_array_decoder
        self.swap_quote = swap_quote
        self.name = name
        self.address_fn = address_fn
        self.constant_accounts = dict(constant_accounts or {})

        if tick_array_size is not None:
            self.tick_array_size = tick_array_size
        if a_to_b_offsets is not None:
            self.a_to_b_offsets = tuple(a_to_b_offsets)
        if b_to_a_offsets is not None:
            self.b_to_a_offsets = tuple(b_to_a_offsets)
        if window_offsets is not None:
            self.window_offsets = tuple(window_offsets)
        if shift_b_to_a is not None:
            self.shift_b_to_a = shift_b_to_a

    def parse_pool_config(self, entry: Dict[str, Any]) -> PoolConfig:
        directions = parse_directions(entry)
        return PoolConfig(
            pool_id=entry["pool"],
            token_a=entry["tokenA"],
            token_b=entry["tokenB"],
            accounts={key: entry[key] for key in ("tokenVaultA", "tokenVaultB", "oracle")},
            a_to_b=directions["a_to_b"],
            b_to_a=directions["b_to_a"],
        )

    def create_primary(self, pool_state) -> LiveAccount:
        return LiveAccount(pool_state.pool_id, pool_state.connection_pool, self.pool_decoder,
                           name=f"{self.name}:{pool_state.pool_id}")

    def create_constant_accounts(self, pool_state) -> Dict[str, LiveAccount]:
        return {
            name: LiveAccount(address_of(pool_state), pool_state.connection_pool, decoder,
                              name=f"{self.name}:{pool_state.pool_id}:{name}")
            for name, (address_of, decoder) in self.constant_accounts.items()
        }

    def start_index(self, primary_state: Any, a_to_b: bool, offset: int) -> int:
        return tick_array_start_index(primary_state.tick_current_index, primary_state.tick_spacing,
                                      a_to_b, offset, self.tick_array_size, self.shift_b_to_a)

    def tick_array_start_indices(self, primary_state: Any, a_to_b: bool) -> List[int]:
        """Tick arrays one swap walks through, in swap order"""
        offsets = self.a_to_b_offsets if a_to_b else self.b_to_a_offsets
        return [self.start_index(primary_state, a_to_b, offset) for offset in offsets]

    def swap_names(self, primary_state: Any, a_to_b: bool) -> List[str]:
        return [tick_array_key(index) for index in self.tick_array_start_indices(primary_state, a_to_b)]

    def window_update(self, primary_state: Any, a_to_b: bool) -> List[str]:
        if self.window_offsets is None:
            return self.swap_names(primary_state, a_to_b)
        return [tick_array_key(self.start_index(primary_state, a_to_b, offset)) for offset in self.window_offsets]

    def prefetch_names(self, primary_state: Any, a_to_b: bool) -> List[str]:
        return self.swap_names(primary_state, a_to_b)

    def create_window_account(self, pool_state, name: str) -> LiveAccount:
        address = self.address_fn(pool_state.program_id, pool_state.pool.address, start_index_from_key(name))
        return LiveAccount(address, pool_state.connection_pool, self.tick_array_decoder,
                           name=f"{self.name}:{pool_state.pool_id}:{name}")

    def swap_tick_arrays(self, pool_state, a_to_b: bool) -> List[Any]:
        primary_state = pool_state.pool.get()
        return [pool_state.account(name).get() for name in self.swap_names(primary_state, a_to_b)]

    def swap_tick_array_addresses(self, pool_state, a_to_b: bool) -> List[Pubkey]:
        return [
            self.address_fn(pool_state.program_id, pool_state.pool.address, index)
            for index in self.tick_array_start_indices(pool_state.pool.get(), a_to_b)
        ]

    def compute_quote(self, pool_state, amount_in: int, a_to_b: bool) -> int:
        if amount_in <= 0:
            return 0
        tick_arrays = self.swap_tick_arrays(pool_state, a_to_b)
        return self.swap_quote(pool_state.pool.get(), tick_arrays, amount_in, a_to_b)

    async def build_instruction(self, pool_state, a_to_b: bool, wallet) -> Instruction:
        config = pool_state.config
        pool_address = pool_state.pool.address
        tick_arrays = self.swap_tick_array_addresses(pool_state, a_to_b)
        owner_a = wallet.get_token_account(config.token_a)
        owner_b = wallet.get_token_account(config.token_b)
        if owner_a is None or owner_b is None:
            raise ValueError(f"wallet lacks a token account for {config.token_a}-{config.token_b}")

        metas = [
            AccountMeta(pubkey=TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
            AccountMeta(pubkey=wallet.owner, is_signer=True, is_writable=False),
            AccountMeta(pubkey=pool_address, is_signer=False, is_writable=True),
            AccountMeta(pubkey=owner_a, is_signer=False, is_writable=True),
            AccountMeta(pubkey=to_pubkey(config.accounts["tokenVaultA"]), is_signer=False, is_writable=True),
            AccountMeta(pubkey=owner_b, is_signer=False, is_writable=True),
            AccountMeta(pubkey=to_pubkey(config.accounts["tokenVaultB"]), is_signer=False, is_writable=True),
        ]
        metas += [AccountMeta(pubkey=address, is_signer=False, is_writable=True) for address in tick_arrays]
        metas += [
            AccountMeta(pubkey=to_pubkey(config.accounts["oracle"]), is_signer=False, is_writable=False),
            AccountMeta(pubkey=swap_state_address(self.arb_program_id), is_signer=False, is_writable=True),
            AccountMeta(pubkey=pool_state.program_id, is_signer=False, is_writable=False),
        ]
        return build_anchor_instruction(self.arb_program_id, self.swap_method, metas, bytes([int(a_to_b)]))


class ClmmVenue(ConcentratedLiquidityVenue):
    """
    CLMM pools: a five-array window around the current tick and two constant
    accounts, the fee config named in the pool entry and the tick array bitmap
    extension derived from the pool address.

    Args:
        amm_config_decoder: bytes -> fee config state
        bitmap_extension_decoder: bytes -> tick array bitmap extension state
        swap_quote: (pool state, [tick arrays in swap order], amount_in, a_to_b, fee config) -> amount_out
        other arguments as ConcentratedLiquidityVenue

    Pool entry:
        {"poolState", "tokenA", "tokenB", "ammConfig", "tokenAVault", "tokenBVault",
         "observationState", "directions" (optional)}
    """

    swap_method = "raydium_swap"
    tick_array_size = CLMM_TICK_ARRAY_SIZE
    window_offsets = CLMM_WINDOW_OFFSETS
    shift_b_to_a = False

    def __init__(self,
                 arb_program_id: Pubkey,
                 pool_decoder: Callable[[bytes], Any],
                 tick_array_decoder: Callable[[bytes], Any],
                 swap_quote: Callable[..., int],
                 amm_config_decoder: Callable[[bytes], Any],
                 bitmap_extension_decoder: Callable[[bytes], Any],
                 name: str = "clmm",
                 **options):
        constant_accounts = {
            "ammConfig": (lambda pool_state: to_pubkey(pool_state.config.accounts["ammConfig"]),
                          amm_config_decoder),
            "tickArrayBitmapExtension": (
                lambda pool_state: clmm_bitmap_extension_address(pool_state.program_id, pool_state.pool.address),
                bitmap_extension_decoder),
        }
        constant_accounts.update(options.pop("constant_accounts", None) or {})
        options.setdefault("address_fn", clmm_tick_array_address)
        super().__init__(arb_program_id, pool_decoder, tick_array_decoder, swap_quote, name=name,
                         constant_accounts=constant_accounts, **options)

    def parse_pool_config(self, entry: Dict[str, Any]) -> PoolConfig:
        directions = parse_directions(entry)
        return PoolConfig(
            pool_id=entry["poolState"],
            token_a=entry["tokenA"],
            token_b=entry["tokenB"],
            accounts={key: entry[key] for key in ("ammConfig", "tokenAVault", "tokenBVault", "observationState")},
            a_to_b=directions["a_to_b"],
            b_to_a=directions["b_to_a"],
        )

    def compute_quote(self, pool_state, amount_in: int, a_to_b: bool) -> int:
        if amount_in <= 0:
            return 0
        tick_arrays = self.swap_tick_arrays(pool_state, a_to_b)
        amm_config = pool_state.account("ammConfig").get()
        return self.swap_quote(pool_state.pool.get(), tick_arrays, amount_in, a_to_b, amm_config)

    async def build_instruction(self, pool_state, a_to_b: bool, wallet) -> Instruction:
        config = pool_state.config
        accounts = config.accounts
        current, *following = self.swap_tick_array_addresses(pool_state, a_to_b)
        user_a = wallet.get_token_account(config.token_a)
        user_b = wallet.get_token_account(config.token_b)
        if user_a is None or user_b is None:
            raise ValueError(f"wallet lacks a token account for {config.token_a}-{config.token_b}")

        vault_a, vault_b = to_pubkey(accounts["tokenAVault"]), to_pubkey(accounts["tokenBVault"])
        user_src, user_dst = (user_a, user_b) if a_to_b else (user_b, user_a)
        input_vault, output_vault = (vault_a, vault_b) if a_to_b else (vault_b, vault_a)

        metas = [
            AccountMeta(pubkey=wallet.owner, is_signer=True, is_writable=True),
            AccountMeta(pubkey=to_pubkey(accounts["ammConfig"]), is_signer=False, is_writable=False),
            AccountMeta(pubkey=pool_state.pool.address, is_signer=False, is_writable=True),
            AccountMeta(pubkey=user_src, is_signer=False, is_writable=True),
            AccountMeta(pubkey=user_dst, is_signer=False, is_writable=True),
            AccountMeta(pubkey=input_vault, is_signer=False, is_writable=True),
            AccountMeta(pubkey=output_vault, is_signer=False, is_writable=True),
            AccountMeta(pubkey=to_pubkey(accounts["observationState"]), is_signer=False, is_writable=True),
            AccountMeta(pubkey=TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
            AccountMeta(pubkey=current, is_signer=False, is_writable=True),
            AccountMeta(pubkey=pool_state.program_id, is_signer=False, is_writable=False),
            AccountMeta(pubkey=swap_state_address(self.arb_program_id), is_signer=False, is_writable=True),
        ]
        # the next tick arrays in swap order ride along as remaining accounts
        metas += [AccountMeta(pubkey=address, is_signer=False, is_writable=True) for address in following]
        return build_anchor_instruction(self.arb_program_id, self.swap_method, metas, bytes([int(a_to_b)]))
