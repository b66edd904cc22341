"""
# This module assembles, signs and submits arbitrage transactions.
# An arbitrage transaction runs on the arbitrage program as
#   start_swap(amount_in) -> one swap instruction per hop -> profit_or_revert
# so the whole path reverts on-chain unless the source balance grew.
"""
import asyncio
import hashlib
import logging
import re
import struct
from typing import List, Optional, Sequence

from solders.instruction import AccountMeta, Instruction
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Finalized
from solana.rpc.types import TxOpts

from onchain_arbitrage_detector.utils.data_structures import ArbPathNode

logger = logging.getLogger(__name__)

SWAP_STATE_SEED = b"swap_state"


def anchor_discriminator(method_name: str) -> bytes:
    """First 8 bytes of sha256("global:<method_name>"), the Anchor instruction tag"""
    return hashlib.sha256(f"global:{method_name}".encode("utf-8")).digest()[:8]


def build_anchor_instruction(program_id: Pubkey, method_name: str,
                             accounts: Sequence[AccountMeta], args: bytes = b"") -> Instruction:
    return Instruction(
        program_id=program_id,
        accounts=list(accounts),
        data=anchor_discriminator(method_name) + args,
    )


def swap_state_address(arb_program_id: Pubkey) -> Pubkey:
    address, _bump = Pubkey.find_program_address([SWAP_STATE_SEED], arb_program_id)
    return address


def _token_and_swap_state(arb_program_id: Pubkey, src_token_account: Pubkey) -> List[AccountMeta]:
    return [
        AccountMeta(pubkey=src_token_account, is_signer=False, is_writable=False),
        AccountMeta(pubkey=swap_state_address(arb_program_id), is_signer=False, is_writable=True),
    ]


def start_swap_instruction(arb_program_id: Pubkey, src_token_account: Pubkey, amount_in: int) -> Instruction:
    return build_anchor_instruction(
        arb_program_id, "start_swap",
        _token_and_swap_state(arb_program_id, src_token_account),
        struct.pack("<Q", amount_in))


def profit_or_revert_instruction(arb_program_id: Pubkey, src_token_account: Pubkey) -> Instruction:
    return build_anchor_instruction(
        arb_program_id, "profit_or_revert",
        _token_and_swap_state(arb_program_id, src_token_account))


async def build_arb_instructions(path: List[ArbPathNode], amount_in: int, wallet,
                                 arb_program_id: Pubkey) -> List[Instruction]:
    """
    Build the instruction sequence of one arbitrage path.
    Args:
        path: hops of the path, the first hop's from_token is the source token
        amount_in: input amount in the source token's smallest unit
        wallet: WalletTokenAccounts owning the source token account
        arb_program_id: arbitrage program id
    Returns:
        List[Instruction]: start_swap, one instruction per hop, profit_or_revert
    """
    if not path:
        raise ValueError("cannot build a transaction for an empty path")

    src_token_account = wallet.get_token_account(path[0].from_token)
    if src_token_account is None:
        raise ValueError(f"wallet {wallet.owner} has no {path[0].from_token} token account")

    hop_instructions = await asyncio.gather(*(node.get_arb_instruction() for node in path))
    return ([start_swap_instruction(arb_program_id, src_token_account, amount_in)]
            + list(hop_instructions)
            + [profit_or_revert_instruction(arb_program_id, src_token_account)])


async def build_arb_transaction(path: List[ArbPathNode], amount_in: int, wallet,
                                client: AsyncClient, arb_program_id: Pubkey) -> VersionedTransaction:
    instructions = await build_arb_instructions(path, amount_in, wallet, arb_program_id)
    blockhash_resp = await client.get_latest_blockhash(Finalized)
    message = MessageV0.try_compile(
        payer=wallet.owner,
        instructions=instructions,
        address_lookup_table_accounts=[],
        recent_blockhash=blockhash_resp.value.blockhash,
    )
    return VersionedTransaction(message, [wallet.keypair])


def describe_send_error(error: Exception) -> str:
    """Pull the custom program error code out of an RPC error, if there is one"""
    error_str = str(error)
    match = re.search(r"custom program error: (0x[0-9a-fA-F]+)", error_str)
    if match:
        code = int(match.group(1), 16)
        if code >= 6000:
            return f"arbitrage program error {code} ({match.group(1)})"
        return f"custom program error {match.group(1)}"
    return error_str


class ArbTransactionSender:
    """
    Executor for the live detector: builds, signs and sends one arbitrage
    transaction and returns its signature, or None when sending failed.
    """

    def __init__(self, client: AsyncClient, wallet, arb_program_id: Pubkey, skip_preflight: bool = True):
        self.client = client
        self.wallet = wallet
        self.arb_program_id = arb_program_id
        self.skip_preflight = skip_preflight

    async def __call__(self, path: List[ArbPathNode], amount_in: int) -> Optional[str]:
        transaction = await build_arb_transaction(path, amount_in, self.wallet, self.client, self.arb_program_id)
        try:
            resp = await self.client.send_raw_transaction(
                bytes(transaction), opts=TxOpts(skip_preflight=self.skip_preflight))
        except Exception as e:
            logger.error("Error sending transaction: %s", describe_send_error(e))
            return None
        tx_id = str(resp.value)
        logger.info("Tx sent: https://solscan.io/tx/%s", tx_id)
        return tx_id
