"""
This module provides the wallet used to trade: the signing keypair and the
token account the wallet owns for each known token symbol.
"""
import json
import logging
from typing import Dict, Optional, Union
from pathlib import Path

import base58
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solana.rpc.async_api import AsyncClient
from solana.rpc.types import TokenAccountOpts
from spl.token.constants import TOKEN_PROGRAM_ID

from onchain_arbitrage_detector.utils.exceptions import ConfigurationError
from onchain_arbitrage_detector.utils.token_table import TokenTable

logger = logging.getLogger(__name__)

MINT_OFFSET = 0
MINT_LENGTH = 32


def load_keypair(key: Union[str, Path]) -> Keypair:
    """
    Load a keypair from a JSON byte-array file (solana-keygen format)
    or from a base58 encoded secret key.
    """
    path = Path(key)
    try:
        if path.is_file():
            with open(path, "r", encoding="utf-8") as file:
                return Keypair.from_bytes(bytes(json.load(file)))
        return Keypair.from_bytes(base58.b58decode(str(key)))
    except (OSError, ValueError, TypeError) as e:
        raise ConfigurationError(f"cannot load keypair: {e}") from e


class WalletTokenAccounts:
    """
    Args:
        keypair: signer of arbitrage transactions
        token_accounts: token symbol -> token account address
    """

    def __init__(self, keypair: Keypair, token_accounts: Dict[str, Pubkey]):
        self.keypair = keypair
        self.token_accounts = dict(token_accounts)

    @property
    def owner(self) -> Pubkey:
        return self.keypair.pubkey()

    def get_token_account(self, symbol: str) -> Optional[Pubkey]:
        return self.token_accounts.get(symbol)

    @classmethod
    async def create(cls, client: AsyncClient, keypair: Keypair, token_table: TokenTable) -> "WalletTokenAccounts":
        """Discover the wallet's SPL token accounts whose mint is in the token table"""
        resp = await client.get_token_accounts_by_owner(keypair.pubkey(), TokenAccountOpts(program_id=TOKEN_PROGRAM_ID))
        token_accounts: Dict[str, Pubkey] = {}
        for keyed_account in resp.value:
            data = bytes(keyed_account.account.data)
            mint = Pubkey.from_bytes(data[MINT_OFFSET:MINT_OFFSET + MINT_LENGTH])
            token = token_table.by_mint(mint)
            if token is not None:
                token_accounts[token.symbol] = keyed_account.pubkey

        logger.info("Wallet %s holds token accounts for %s", keypair.pubkey(), sorted(token_accounts))
        return cls(keypair, token_accounts)
