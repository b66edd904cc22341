"""
Pool state aggregate: the live view of one liquidity pool.

The aggregate owns the pool's primary account cache and a mapping of named
auxiliary caches. Some auxiliary accounts are constant for the pool's lifetime;
the others form a window that the venue recomputes from every primary update.
The window is brought up to date before the aggregate notifies its own
listeners, so a quote computed after an update sees the window of that update.
"""
import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, List, Set

from solders.instruction import Instruction
from solders.pubkey import Pubkey

from onchain_arbitrage_detector.utils.connection_pool import ConnectionPool
from onchain_arbitrage_detector.utils.data_structures import PoolConfig
from onchain_arbitrage_detector.utils.exceptions import QuoteComputationError
from onchain_arbitrage_detector.utils.live_account import LiveAccount, invoke_listeners

logger = logging.getLogger(__name__)


class PoolState:
    """
    Args:
        plugin: venue plugin providing accounts, window, pricing and instructions
        program_id: venue program id
        config: pool configuration
        connection_pool: endpoint pool shared by every account cache
    """

    def __init__(self, plugin, program_id: Pubkey, config: PoolConfig, connection_pool: ConnectionPool):
        self.plugin = plugin
        self.program_id = program_id
        self.config = config
        self.connection_pool = connection_pool
        self.active = False

        self.pool: LiveAccount = plugin.create_primary(self)
        self.watched_accounts: Dict[str, LiveAccount] = dict(plugin.create_constant_accounts(self))
        self.constant_keys = frozenset(self.watched_accounts)

        self._listeners: List[Callable[["PoolState"], Any]] = []
        self._window_lock = asyncio.Lock()
        self._maintaining_window = False
        self._stop_count = 0

        self.pool.register_on_update(self._on_primary_update)
        for account in self.watched_accounts.values():
            account.register_on_update(self._on_auxiliary_update)

    @property
    def pool_id(self) -> str:
        return self.config.pool_id

    @property
    def token_a(self) -> str:
        return self.config.token_a

    @property
    def token_b(self) -> str:
        return self.config.token_b

    def directions(self) -> List[bool]:
        result = []
        if self.config.a_to_b:
            result.append(True)
        if self.config.b_to_a:
            result.append(False)
        return result

    def account(self, name: str) -> LiveAccount:
        return self.watched_accounts[name]

    def register_update_callback(self, callback: Callable[["PoolState"], Any]) -> None:
        self._listeners.append(callback)

    async def start(self) -> None:
        """
        Start the primary and every registered auxiliary account concurrently.
        If any of them fails, the first error is raised. A call that brought the
        pool up from inactive stops everything again first; a call on a pool that
        was already active leaves the running accounts alone.

        The window lock is not held here: loading the primary runs window
        maintenance, which takes it.
        """
        was_active = self.active
        self.active = True
        accounts = [self.pool] + list(self.watched_accounts.values())
        results = await asyncio.gather(*(account.start() for account in accounts), return_exceptions=True)
        errors = [result for result in results if isinstance(result, BaseException)]
        if errors:
            logger.error("[%s] pool %s failed to start: %r", self.plugin.name, self.pool_id, errors[0])
            if not was_active:
                try:
                    await self.stop()
                except Exception:
                    logger.exception("[%s] rollback of pool %s failed", self.plugin.name, self.pool_id)
            raise errors[0]

    async def stop(self) -> None:
        """
        Release every subscription and forget the window. Runs after any window
        maintenance in progress; primary updates still queued behind it are dropped.
        """
        self.active = False
        self._stop_count += 1
        async with self._window_lock:
            names = list(self.watched_accounts)
            results = await asyncio.gather(
                self.pool.stop(), *(self.watched_accounts[name].stop() for name in names),
                return_exceptions=True)
            errors = [result for result in results if isinstance(result, BaseException)]
            for name, result in zip(names, results[1:]):
                if name not in self.constant_keys and not isinstance(result, BaseException):
                    self.watched_accounts.pop(name, None)
        if errors:
            raise errors[0]

    async def prefetch(self, a_to_b: bool) -> None:
        """
        Load the auxiliary accounts one direction needs right now, creating them
        if the window has not caught up yet.
        """
        state = self.pool.get() if self.pool.has_value else await self.pool.refresh()
        names = self.plugin.prefetch_names(state, a_to_b)
        for name in names:
            if name not in self.watched_accounts:
                self._add_account(name)
        await asyncio.gather(*(self.watched_accounts[name].refresh() for name in names))

    def required_window(self, primary_state: Any) -> Set[str]:
        required = set()
        for a_to_b in self.directions():
            required.update(self.plugin.window_update(primary_state, a_to_b))
        return required - self.constant_keys

    async def _on_primary_update(self, primary_state: Any) -> None:
        stop_count = self._stop_count
        async with self._window_lock:
            if stop_count != self._stop_count:
                return
            self._maintaining_window = True
            try:
                await self._maintain_window(primary_state)
            finally:
                self._maintaining_window = False
        if stop_count != self._stop_count:
            return
        await invoke_listeners(self._listeners, self, source=self.pool_id)

    async def _on_auxiliary_update(self, _value: Any) -> None:
        if self._maintaining_window:
            # the primary update in progress notifies once the window is complete
            return
        await invoke_listeners(self._listeners, self, source=self.pool_id)

    async def _maintain_window(self, primary_state: Any) -> None:
        required = self.required_window(primary_state)
        current = set(self.watched_accounts) - self.constant_keys
        added = sorted(required - current)
        removed = sorted(current - required)
        if not added and not removed:
            return

        for name in added:
            self._add_account(name)

        results = await asyncio.gather(
            *(self._load_window_account(self.watched_accounts[name]) for name in added),
            *(self.watched_accounts[name].stop() for name in removed),
            return_exceptions=True)

        for name, result in zip(added, results):
            if isinstance(result, BaseException):
                # retried on the next primary update
                logger.warning("[%s] pool %s could not load window account %s: %s",
                               self.plugin.name, self.pool_id, name, result)
                self.watched_accounts.pop(name, None)
        for name, result in zip(removed, results[len(added):]):
            if isinstance(result, BaseException):
                logger.warning("[%s] pool %s could not release window account %s: %s",
                               self.plugin.name, self.pool_id, name, result)
                continue
            del self.watched_accounts[name]

        logger.debug("[%s] pool %s window +%s -%s", self.plugin.name, self.pool_id, added, removed)

    async def _load_window_account(self, account: LiveAccount) -> None:
        if self.active:
            await account.start()
        else:
            await account.refresh()

    def _add_account(self, name: str) -> LiveAccount:
        account = self.plugin.create_window_account(self, name)
        account.register_on_update(self._on_auxiliary_update)
        self.watched_accounts[name] = account
        return account

    def get_amount_out(self, amount_in: int, a_to_b: bool) -> int:
        """Quote one direction; any pricing failure is logged and quoted as zero"""
        try:
            return int(self.plugin.compute_quote(self, amount_in, a_to_b))
        except Exception as e:
            from_token, to_token = (self.token_a, self.token_b) if a_to_b else (self.token_b, self.token_a)
            logger.warning("%s", QuoteComputationError(self.plugin.name, self.pool_id, from_token, to_token, e))
            return 0

    async def get_swap_instruction(self, a_to_b: bool, wallet) -> Instruction:
        instruction = self.plugin.build_instruction(self, a_to_b, wallet)
        if inspect.isawaitable(instruction):
            instruction = await instruction
        return instruction

    def __repr__(self) -> str:
        return f"PoolState({self.plugin.name}:{self.pool_id} {self.token_a}-{self.token_b})"
