"""
Self-refreshing cache of one on-chain account.

A LiveAccount is created inert. start() pulls the account once, decodes it,
notifies listeners and then opens one push subscription; every pushed update is
decoded and delivered to the listeners in arrival order. stop() releases the
subscription. refresh() re-pulls without touching the subscription.
"""
import asyncio
import functools
import inspect
import logging
from typing import Any, Callable, Generic, List, Optional, Tuple, TypeVar, Union

from solders.pubkey import Pubkey

from onchain_arbitrage_detector.utils.connection_pool import ConnectionPool
from onchain_arbitrage_detector.utils.exceptions import (
    AccountNotLoadedError,
    ArbitrageEngineError,
    ConfigurationError,
    DecodeError,
    NetworkError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def to_pubkey(address: Union[str, Pubkey]) -> Pubkey:
    if isinstance(address, Pubkey):
        return address
    return Pubkey.from_string(str(address))


async def invoke_listeners(listeners: List[Callable], *args, source: Any = None) -> None:
    """
    Call every listener with args, awaiting coroutine results.
    A failing listener is logged and never stops the others.
    """
    for listener in list(listeners):
        try:
            result = listener(*args)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Update listener %r failed for %s", listener, source)


class LiveAccount(Generic[T]):
    """
    Live cache of one account, parameterised by its decoded value type.

    Args:
        address: account address
        connection_pool: endpoint pool used for pulls and subscriptions
        decoder: bytes -> T, raising on malformed data
        name: optional label used in logs
    """

    def __init__(self,
                 address: Union[str, Pubkey],
                 connection_pool: ConnectionPool,
                 decoder: Callable[[bytes], T],
                 name: Optional[str] = None):
        self.address = to_pubkey(address)
        self.connection_pool = connection_pool
        self.decoder = decoder
        self.name = name or str(self.address)

        self._value: Optional[T] = None
        self._loaded = False
        self._listeners: List[Callable[[T], Any]] = []
        self._subscription: Optional[Tuple[Any, int]] = None  # (handle, wss index)
        self._generation = 0
        self._lock = asyncio.Lock()

    def register_on_update(self, listener: Callable[[T], Any]) -> None:
        self._listeners.append(listener)

    @property
    def is_active(self) -> bool:
        return self._subscription is not None

    @property
    def has_value(self) -> bool:
        return self._loaded

    def get(self) -> T:
        if not self._loaded:
            raise AccountNotLoadedError(self.address)
        return self._value

    async def start(self) -> None:
        async with self._lock:
            if self._subscription is not None:
                return

            await self._load()

            selected = self.connection_pool.get_wss_connection()
            if selected is None:
                raise ConfigurationError(f"no push endpoint available for {self.address}")
            endpoint, wss_index = selected
            on_change = functools.partial(self._on_account_change, self._generation)
            try:
                handle = await endpoint.subscribe(self.address, on_change)
            except ArbitrageEngineError:
                raise
            except Exception as e:
                raise NetworkError("subscribe", self.address, e) from e

            self._subscription = (handle, wss_index)
            logger.info("Started live account %s", self.name)

    async def stop(self) -> None:
        async with self._lock:
            if self._subscription is None:
                return

            handle, wss_index = self._subscription
            selected = self.connection_pool.get_wss_connection(wss_index)
            if selected is None:
                raise ConfigurationError(f"push endpoint {wss_index} disappeared")
            endpoint, _ = selected
            try:
                await endpoint.unsubscribe(handle)
            except ArbitrageEngineError:
                raise
            except Exception as e:
                raise NetworkError("unsubscribe", self.address, e) from e

            self._subscription = None
            # late pushes from the released subscription are dropped
            self._generation += 1
            logger.info("Stopped live account %s", self.name)

    async def refresh(self) -> T:
        """Pull, decode and notify without changing subscription state"""
        return await self._load()

    async def _load(self) -> T:
        data = await self._pull()
        value = self._decode(data)
        self._value = value
        self._loaded = True
        await invoke_listeners(self._listeners, value, source=self.name)
        return value

    async def _pull(self) -> Optional[bytes]:
        selected = self.connection_pool.get_https_connection()
        if selected is None:
            raise ConfigurationError(f"no query endpoint available for {self.address}")
        endpoint, _ = selected
        try:
            return await endpoint.pull(self.address)
        except ArbitrageEngineError:
            raise
        except Exception as e:
            raise NetworkError("pull", self.address, e) from e

    def _decode(self, data: Optional[bytes]) -> T:
        if data is None:
            raise DecodeError(self.address, "account does not exist")
        try:
            return self.decoder(data)
        except DecodeError:
            raise
        except Exception as e:
            raise DecodeError(self.address, repr(e)) from e

    async def _on_account_change(self, generation: int, data: Optional[bytes]) -> None:
        if generation != self._generation:
            return
        try:
            value = self._decode(data)
        except DecodeError as e:
            logger.warning("Ignoring pushed update: %s", e)
            return
        self._value = value
        self._loaded = True
        logger.debug("Pushed update for %s", self.name)
        await invoke_listeners(self._listeners, value, source=self.name)

    def __repr__(self) -> str:
        state = "active" if self.is_active else "inert"
        return f"LiveAccount({self.name}, {state})"
