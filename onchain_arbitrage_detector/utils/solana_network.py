"""
Solana network endpoints used by the connection pool.

RpcQueryEndpoint pulls raw account data over HTTPS JSON-RPC.
WebsocketPushEndpoint multiplexes account subscriptions over one websocket and
delivers every account notification to the subscriber's callback, in the order
the notifications arrive.
"""
import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, Optional, Tuple

from solders.account_decoder import UiAccountEncoding
from solders.commitment_config import CommitmentLevel
from solders.pubkey import Pubkey
from solders.rpc.config import RpcAccountInfoConfig
from solders.rpc.requests import AccountSubscribe
from solders.rpc.responses import AccountNotification, SubscriptionResult
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solana.rpc.websocket_api import connect

logger = logging.getLogger(__name__)

COMMITMENT_LEVELS = {
    "processed": CommitmentLevel.Processed,
    "confirmed": CommitmentLevel.Confirmed,
    "finalized": CommitmentLevel.Finalized,
}


class RpcQueryEndpoint:
    def __init__(self, url: str, commitment: str = "confirmed"):
        self.url = url
        self.client = AsyncClient(url, commitment=Commitment(commitment))

    async def pull(self, address: Pubkey) -> Optional[bytes]:
        """Raw account data, or None when the account does not exist"""
        resp = await self.client.get_account_info(address)
        if resp.value is None:
            return None
        return bytes(resp.value.data)

    async def close(self) -> None:
        await self.client.close()

    def __repr__(self) -> str:
        return f"RpcQueryEndpoint({self.url})"


class _Subscription:
    """Notifications of one subscription, delivered in arrival order by their own task"""

    def __init__(self, on_change: Callable[[bytes], Any]):
        self.on_change = on_change
        self.queue: asyncio.Queue = asyncio.Queue()
        self.task: Optional[asyncio.Task] = None


class WebsocketPushEndpoint:
    """
    Args:
        url: websocket RPC url
        commitment: commitment level of the notifications
        subscribe_timeout: seconds to wait for a subscription confirmation

    The reader task only parses and routes messages. Each subscription drains its
    own queue, so a slow handler, or one that subscribes again, never holds up the
    socket or the other subscriptions.
    """

    def __init__(self, url: str, commitment: str = "confirmed", subscribe_timeout: float = 30.0):
        self.url = url
        self.commitment = COMMITMENT_LEVELS[commitment]
        self.subscribe_timeout = subscribe_timeout
        self._websocket = None
        self._reader: Optional[asyncio.Task] = None
        self._connect_lock = asyncio.Lock()
        # request id -> (confirmation future, callback) until the server confirms
        self._pending: Dict[int, Tuple[asyncio.Future, Callable]] = {}
        # subscription id -> delivery queue and task
        self._subscriptions: Dict[int, _Subscription] = {}

    async def _ensure_connected(self):
        async with self._connect_lock:
            if self._websocket is None:
                self._attach(await connect(self.url))
                logger.info("Connected push endpoint %s", self.url)
            return self._websocket

    def _attach(self, websocket) -> None:
        self._websocket = websocket
        self._reader = asyncio.create_task(self._read_loop(websocket))

    async def subscribe(self, address: Pubkey, on_change: Callable[[bytes], Any]) -> int:
        websocket = await self._ensure_connected()
        request_id = websocket.increment_counter_and_get_id()
        config = RpcAccountInfoConfig(encoding=UiAccountEncoding.Base64, commitment=self.commitment)
        future = asyncio.get_running_loop().create_future()
        # the subscription is registered by the reader as soon as the confirmation
        # arrives, so no notification that follows it is missed
        self._pending[request_id] = (future, on_change)
        try:
            await websocket.send_data(AccountSubscribe(address, config, request_id))
            return await asyncio.wait_for(future, timeout=self.subscribe_timeout)
        finally:
            self._pending.pop(request_id, None)

    async def unsubscribe(self, subscription_id: int) -> None:
        subscription = self._subscriptions.pop(subscription_id, None)
        if subscription is not None:
            # may be called from this subscription's own handler, so end it with a marker
            subscription.queue.put_nowait(None)
        if self._websocket is None:
            return
        await self._websocket.account_unsubscribe(subscription_id)

    async def _read_loop(self, websocket) -> None:
        try:
            async for messages in websocket:
                for message in messages:
                    self._dispatch(message)
        except Exception as e:
            logger.error("Push endpoint %s disconnected: %r", self.url, e)
        finally:
            # TODO: reconnect and resubscribe the live accounts that were attached to this socket
            for future, _ in self._pending.values():
                if not future.done():
                    future.set_exception(ConnectionError(f"push endpoint {self.url} closed"))
            self._pending.clear()
            self._cancel_subscriptions()
            if self._websocket is websocket:
                self._websocket = None

    def _dispatch(self, message) -> None:
        if isinstance(message, SubscriptionResult):
            pending = self._pending.get(message.id)
            if pending is None:
                return
            future, on_change = pending
            subscription = _Subscription(on_change)
            subscription.task = asyncio.create_task(self._deliver(message.result, subscription))
            self._subscriptions[message.result] = subscription
            if not future.done():
                future.set_result(message.result)
        elif isinstance(message, AccountNotification):
            subscription = self._subscriptions.get(message.subscription)
            if subscription is None:
                return
            subscription.queue.put_nowait(bytes(message.result.value.data))

    async def _deliver(self, subscription_id: int, subscription: _Subscription) -> None:
        while True:
            data = await subscription.queue.get()
            if data is None:
                return
            try:
                result = subscription.on_change(data)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Account notification handler failed for subscription %s on %s",
                                 subscription_id, self.url)

    def _cancel_subscriptions(self) -> None:
        for subscription in self._subscriptions.values():
            if subscription.task is not None:
                subscription.task.cancel()
        self._subscriptions.clear()

    async def close(self) -> None:
        if self._reader is not None:
            self._reader.cancel()
        self._cancel_subscriptions()
        if self._websocket is not None:
            await self._websocket.close()
            self._websocket = None

    def __repr__(self) -> str:
        return f"WebsocketPushEndpoint({self.url})"
