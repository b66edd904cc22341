"""
Two-reserve constant-product venue.

Both reserves are SPL token accounts. Reserve A is the pool's primary account,
reserve B is a constant auxiliary account; the venue has no window.
"""
import logging
from typing import Any, Dict

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from spl.token.constants import TOKEN_PROGRAM_ID

from onchain_arbitrage_detector.utils.data_structures import PoolConfig
from onchain_arbitrage_detector.utils.live_account import LiveAccount, to_pubkey
from onchain_arbitrage_detector.utils.transaction import build_anchor_instruction, swap_state_address
from onchain_arbitrage_detector.venues.base import VenuePlugin, parse_directions

logger = logging.getLogger(__name__)

TOKEN_ACCOUNT_AMOUNT_OFFSET = 64
BPS_DENOMINATOR = 10_000


def decode_token_amount(data: bytes) -> int:
    """Amount field (u64, little endian) of an SPL token account"""
    end = TOKEN_ACCOUNT_AMOUNT_OFFSET + 8
    if len(data) < end:
        raise ValueError(f"token account data too short: {len(data)} bytes")
    return int.from_bytes(data[TOKEN_ACCOUNT_AMOUNT_OFFSET:end], "little")


def constant_product_amount_out(reserve_in: int, reserve_out: int, amount_in: int, fee_bps: int) -> int:
    if amount_in <= 0:
        return 0
    if reserve_in <= 0 or reserve_out <= 0:
        raise ValueError(f"empty reserves ({reserve_in}, {reserve_out})")
    in_after_fee = amount_in * (BPS_DENOMINATOR - fee_bps) // BPS_DENOMINATOR
    return reserve_out * in_after_fee // (reserve_in + in_after_fee)


class ConstantProductVenue(VenuePlugin):
    """
    Pool entry:
        {"pool", "tokenA", "tokenB", "reserveA", "reserveB", "authority",
         "adminTokenA", "adminTokenB", "feeBps", "directions" (optional)}
    """

    name = "constant_product"
    swap_method = "saber_swap"

    def parse_pool_config(self, entry: Dict[str, Any]) -> PoolConfig:
        directions = parse_directions(entry)
        fee_bps = int(entry.get("feeBps", 30))
        if not 0 <= fee_bps < BPS_DENOMINATOR:
            raise ValueError(f"feeBps out of range: {fee_bps}")
        return PoolConfig(
            pool_id=entry["pool"],
            token_a=entry["tokenA"],
            token_b=entry["tokenB"],
            accounts={key: entry[key] for key in ("reserveA", "reserveB", "authority", "adminTokenA", "adminTokenB")},
            a_to_b=directions["a_to_b"],
            b_to_a=directions["b_to_a"],
            extra={"fee_bps": fee_bps},
        )

    def create_primary(self, pool_state) -> LiveAccount:
        config = pool_state.config
        return LiveAccount(config.accounts["reserveA"], pool_state.connection_pool,
                           decode_token_amount, name=f"{self.name}:{config.pool_id}:reserveA")

    def create_constant_accounts(self, pool_state) -> Dict[str, LiveAccount]:
        config = pool_state.config
        return {
            "reserveB": LiveAccount(config.accounts["reserveB"], pool_state.connection_pool,
                                    decode_token_amount, name=f"{self.name}:{config.pool_id}:reserveB"),
        }

    def compute_quote(self, pool_state, amount_in: int, a_to_b: bool) -> int:
        reserve_a = pool_state.pool.get()
        reserve_b = pool_state.account("reserveB").get()
        reserve_in, reserve_out = (reserve_a, reserve_b) if a_to_b else (reserve_b, reserve_a)
        return constant_product_amount_out(reserve_in, reserve_out, amount_in, pool_state.config.extra["fee_bps"])

    async def build_instruction(self, pool_state, a_to_b: bool, wallet) -> Instruction:
        config = pool_state.config
        accounts = config.accounts
        token_in, token_out = (config.token_a, config.token_b) if a_to_b else (config.token_b, config.token_a)
        pool_src, pool_dst = ((accounts["reserveA"], accounts["reserveB"]) if a_to_b
                              else (accounts["reserveB"], accounts["reserveA"]))
        fee_dst = accounts["adminTokenB"] if a_to_b else accounts["adminTokenA"]

        metas = [
            AccountMeta(pubkey=pool_state.program_id, is_signer=False, is_writable=False),
            AccountMeta(pubkey=to_pubkey(config.pool_id), is_signer=False, is_writable=False),
            AccountMeta(pubkey=to_pubkey(accounts["authority"]), is_signer=False, is_writable=False),
            AccountMeta(pubkey=wallet.owner, is_signer=True, is_writable=False),
            AccountMeta(pubkey=_require(wallet.get_token_account(token_in), token_in), is_signer=False, is_writable=True),
            AccountMeta(pubkey=_require(wallet.get_token_account(token_out), token_out), is_signer=False, is_writable=True),
            AccountMeta(pubkey=to_pubkey(pool_src), is_signer=False, is_writable=True),
            AccountMeta(pubkey=to_pubkey(pool_dst), is_signer=False, is_writable=True),
            AccountMeta(pubkey=to_pubkey(fee_dst), is_signer=False, is_writable=True),
            AccountMeta(pubkey=swap_state_address(self.arb_program_id), is_signer=False, is_writable=True),
            AccountMeta(pubkey=TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
        ]
        return build_anchor_instruction(self.arb_program_id, self.swap_method, metas)


def _require(account: Pubkey, symbol: str) -> Pubkey:
    if account is None:
        raise ValueError(f"wallet has no {symbol} token account")
    return account
