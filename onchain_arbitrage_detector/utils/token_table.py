"""
Token table: symbol <-> mint lookup loaded once at startup from a JSON list of
{"symbol", "mint", "decimals"} entries.
"""
import json
import logging
from typing import Dict, Iterable, List, Optional, Union
from pathlib import Path

from solders.pubkey import Pubkey

from onchain_arbitrage_detector.utils.data_structures import Token
from onchain_arbitrage_detector.utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class TokenTable:
    def __init__(self, tokens: Iterable[Token]):
        self.symbol_map: Dict[str, Token] = {}
        self.mint_map: Dict[str, Token] = {}
        for token in tokens:
            if token.symbol in self.symbol_map:
                raise ConfigurationError(f"duplicate token symbol {token.symbol}")
            self.symbol_map[token.symbol] = token
            self.mint_map[str(token.mint)] = token

    @classmethod
    def from_file(cls, token_file_path: Union[str, Path]) -> "TokenTable":
        try:
            with open(token_file_path, "r", encoding="utf-8") as file:
                entries = json.load(file)
            tokens = [
                Token(symbol=entry["symbol"], mint=Pubkey.from_string(entry["mint"]), decimals=int(entry["decimals"]))
                for entry in entries
            ]
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"cannot load token table {token_file_path}: {e!r}") from e

        logger.info("Loaded %d tokens from %s", len(tokens), token_file_path)
        return cls(tokens)

    def by_symbol(self, symbol: str) -> Optional[Token]:
        return self.symbol_map.get(symbol)

    def by_mint(self, mint: Union[str, Pubkey]) -> Optional[Token]:
        return self.mint_map.get(str(mint))

    def symbols(self) -> List[str]:
        return list(self.symbol_map)

    def __len__(self) -> int:
        return len(self.symbol_map)
