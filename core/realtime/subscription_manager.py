"""
Realtime Subscription Manager

Lets many consumers listen to postgres changes through Supabase Realtime
while sharing one channel per channel name. Each channel is reference
counted: it is opened by the first subscriber and removed when the last
one unsubscribes.

Supabase only sends postgres_changes bindings to the server when a
channel joins. A config that needs a new binding on a channel that has
already joined therefore rebuilds the channel: the old one is removed and
a new one is bound with every known config and joined again.

Registry updates never span an await, so handlers and channel callbacks
always see a consistent registry.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Set, Tuple

from core.config import Config
from core.realtime.channel_manager import ChannelManager, ErrorListener
from core.realtime.connection_monitor import ConnectionListener, ConnectionMonitor
from core.realtime.types import (
    ChannelProvider,
    ConnectionStatus,
    HandlerKey,
    RealtimeChannel,
    RealtimeChannelError,
    SubscriptionConfig,
    SubscriptionHandler,
)

logger = logging.getLogger(__name__)

Unsubscribe = Callable[[], Awaitable[None]]

ERROR_STATUSES = {'CHANNEL_ERROR', 'TIMED_OUT'}


@dataclass
class ActiveSubscription:
    channel: RealtimeChannel
    options: Optional[Dict[str, Any]] = None
    configs: List[SubscriptionConfig] = field(default_factory=list)
    ref_count: int = 0
    handlers: Dict[HandlerKey, List[SubscriptionHandler]] = field(default_factory=dict)
    # keys bound on the current channel object
    bound_keys: Set[HandlerKey] = field(default_factory=set)
    activated: bool = False
    status: Optional[str] = None
    rebind_lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class SubscriptionManager:
    """Reference-counted multiplexer over realtime channels"""

    def __init__(
        self,
        provider: ChannelProvider,
        connection_monitor: Optional[ConnectionMonitor] = None
    ):
        self.channel_manager = ChannelManager(provider)
        self.connection_monitor = connection_monitor or ConnectionMonitor()
        self._active: Dict[str, ActiveSubscription] = {}
        self._handler_tasks: Set[asyncio.Task] = set()
        self._monitor_task: Optional[asyncio.Task] = None
        self._debug_mode = False

    @staticmethod
    def _subscription_key(channel_name: str) -> str:
        return f"channel:{channel_name}"

    def set_debug_mode(self, enabled: bool) -> None:
        self._debug_mode = enabled
        self.channel_manager.set_debug_mode(enabled)

    def _log(self, message: str) -> None:
        if self._debug_mode:
            logger.info(f"📡 [Realtime] {message}")
        else:
            logger.debug(f"[Realtime] {message}")

    def add_connection_listener(self, listener: ConnectionListener) -> Callable[[], None]:
        return self.connection_monitor.add_listener(listener)

    def add_error_listener(self, listener: ErrorListener) -> Callable[[], None]:
        return self.channel_manager.add_error_listener(listener)

    def _get_or_create(self, channel_name: str, options: Optional[Dict[str, Any]]) -> ActiveSubscription:
        key = self._subscription_key(channel_name)
        subscription = self._active.get(key)

        if subscription is None:
            channel = self.channel_manager.create_channel(channel_name, options)
            subscription = ActiveSubscription(channel=channel, options=options)
            self._active[key] = subscription
        else:
            self._log(f"Using existing channel: {channel_name}")

        return subscription

    def _bind(self, subscription: ActiveSubscription, handler_key: HandlerKey) -> None:
        config = SubscriptionConfig(
            table=handler_key.table,
            event=handler_key.event,
            schema=handler_key.schema,
            filter=handler_key.filter
        )
        subscription.channel.on_postgres_changes(config, self._dispatcher(subscription, handler_key))
        subscription.bound_keys.add(handler_key)

    def _dispatcher(self, subscription: ActiveSubscription, handler_key: HandlerKey) -> SubscriptionHandler:
        """Build the single channel callback that fans out to one handler bucket"""

        def dispatch(payload: Dict[str, Any]) -> None:
            for handler in list(subscription.handlers.get(handler_key, [])):
                try:
                    result = handler(payload)
                    if inspect.isawaitable(result):
                        self._track_handler_task(asyncio.ensure_future(result), handler_key)
                except Exception as e:
                    logger.error(
                        f"❌ [Realtime] Handler failed for {handler_key.table} ({handler_key.event}): {e}",
                        exc_info=True
                    )

        return dispatch

    def _track_handler_task(self, task: asyncio.Future, handler_key: HandlerKey) -> None:
        self._handler_tasks.add(task)

        def on_done(done: asyncio.Future) -> None:
            self._handler_tasks.discard(done)
            if done.cancelled():
                return
            error = done.exception()
            if error is not None:
                logger.error(
                    f"❌ [Realtime] Handler failed for {handler_key.table} ({handler_key.event}): {error}",
                    exc_info=error
                )

        task.add_done_callback(on_done)

    async def subscribe(
        self,
        channel_name: str,
        config: SubscriptionConfig,
        handler: SubscriptionHandler,
        options: Optional[Dict[str, Any]] = None
    ) -> Unsubscribe:
        """
        Subscribe a handler to postgres changes on a shared channel

        Args:
            channel_name: Logical channel; all calls with the same name share one connection
            config: Schema/table/event/filter to listen to
            handler: Called with each matching change payload
            options: Channel options, only used when the channel is created

        Returns:
            Coroutine function that removes exactly this handler
        """
        unsubscribers = await self.subscribe_many(channel_name, [(config, handler)], options)
        return unsubscribers[0]

    async def subscribe_many(
        self,
        channel_name: str,
        entries: Sequence[Tuple[SubscriptionConfig, SubscriptionHandler]],
        options: Optional[Dict[str, Any]] = None
    ) -> List[Unsubscribe]:
        """
        Register several (config, handler) pairs before the channel joins

        Every binding goes out in a single join, so a consumer listening to
        many tables costs one join instead of one rebuild per table.

        Returns:
            One unsubscribe function per entry, in order
        """
        if not entries:
            raise ValueError("subscribe_many needs at least one (config, handler) entry")

        subscription = self._get_or_create(channel_name, options)
        needs_rebind = False
        unsubscribers = []

        for config, handler in entries:
            handler_key = config.key
            subscription.ref_count += 1
            subscription.configs.append(config)
            subscription.handlers.setdefault(handler_key, []).append(handler)

            if handler_key not in subscription.bound_keys:
                if subscription.activated:
                    needs_rebind = True
                else:
                    self._bind(subscription, handler_key)

            self._log(f"Subscribing to {config.table} ({config.event}) on channel {channel_name}")
            unsubscribers.append(self._unsubscriber(channel_name, subscription, config, handler))

        self._log(f"Channel {channel_name} now has {subscription.ref_count} subscribers")

        if not subscription.activated:
            subscription.activated = True
            await self._activate(channel_name, subscription)
        elif needs_rebind:
            await self._rebind(channel_name, subscription)

        return unsubscribers

    def _unsubscriber(
        self,
        channel_name: str,
        subscription: ActiveSubscription,
        config: SubscriptionConfig,
        handler: SubscriptionHandler
    ) -> Unsubscribe:
        unsubscribed = False

        async def unsubscribe() -> None:
            nonlocal unsubscribed
            if unsubscribed:
                return
            unsubscribed = True
            await self._unsubscribe(channel_name, subscription, config, handler)

        return unsubscribe

    async def _activate(self, channel_name: str, subscription: ActiveSubscription) -> None:
        self._log(f"Activating channel {channel_name}")
        channel = subscription.channel

        def on_status(status: str, error: Optional[Exception] = None) -> None:
            # Late callbacks from a channel that was rebuilt or removed
            if subscription.channel is not channel:
                return

            subscription.status = status
            self._log(f"Channel {channel_name} status: {status}")
            if error is not None or status in ERROR_STATUSES:
                message = str(error) if error is not None else status
                logger.warning(f"⚠️ [Realtime] Channel {channel_name} reported {status}: {message}")
                self.channel_manager.notify_error(RealtimeChannelError(channel_name, message))

        try:
            await channel.subscribe(on_status)
        except Exception as e:
            logger.error(f"❌ [Realtime] Failed to activate channel {channel_name}: {e}")
            self.channel_manager.notify_error(RealtimeChannelError(channel_name, str(e)))

    async def _rebind(self, channel_name: str, subscription: ActiveSubscription) -> None:
        """Replace a joined channel with one bound to every known config"""
        key = self._subscription_key(channel_name)

        async with subscription.rebind_lock:
            if self._active.get(key) is not subscription:
                return
            if set(subscription.handlers) <= subscription.bound_keys:
                return

            self._log(f"Rebuilding channel {channel_name} with new bindings")
            # The old channel must be gone before a channel with the same topic is created
            await self.channel_manager.remove_channel(subscription.channel)

            if self._active.get(key) is not subscription:
                return

            keys = subscription.bound_keys | set(subscription.handlers)
            subscription.channel = self.channel_manager.create_channel(channel_name, subscription.options)
            subscription.bound_keys = set()
            subscription.status = None
            for handler_key in keys:
                self._bind(subscription, handler_key)

            await self._activate(channel_name, subscription)

    async def _unsubscribe(
        self,
        channel_name: str,
        subscription: ActiveSubscription,
        config: SubscriptionConfig,
        handler: SubscriptionHandler
    ) -> None:
        key = self._subscription_key(channel_name)

        # The channel was closed (close_all) or replaced since this handle was issued
        if self._active.get(key) is not subscription:
            return

        handler_key = config.key
        handlers = subscription.handlers.get(handler_key)
        if handlers is not None:
            if handler in handlers:
                handlers.remove(handler)
            if not handlers:
                del subscription.handlers[handler_key]

        if config in subscription.configs:
            subscription.configs.remove(config)

        subscription.ref_count = max(0, subscription.ref_count - 1)

        self._log(f"Unsubscribing from {config.table} ({config.event}) on channel {channel_name}")
        self._log(f"Channel {channel_name} now has {subscription.ref_count} subscribers")

        if subscription.ref_count == 0:
            self._log(f"Removing channel {channel_name}")
            del self._active[key]
            await self.channel_manager.remove_channel(subscription.channel)

    async def close_all(self) -> None:
        """Forcefully remove every channel and cancel running async handlers"""
        self._log("Forcefully closing all subscription channels")

        subscriptions = list(self._active.values())
        self._active.clear()

        for subscription in subscriptions:
            await self.channel_manager.remove_channel(subscription.channel)

        pending = list(self._handler_tasks)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def get_active_subscriptions(self) -> Dict[str, Dict[str, Any]]:
        return {
            key: {'count': subscription.ref_count, 'configs': list(subscription.configs)}
            for key, subscription in self._active.items()
        }

    def get_connection_status(self) -> ConnectionStatus:
        return self.connection_monitor.get_current_status()

    def get_channel_status(self, channel_name: str) -> Optional[str]:
        """Last subscribe status reported for one channel"""
        subscription = self._active.get(self._subscription_key(channel_name))
        return subscription.status if subscription else None

    def poll_connection_status(self) -> Optional[ConnectionStatus]:
        """
        Sample the state of the first live channel as the global status

        One channel stands in for all of them; per-channel results are
        available from get_channel_status().
        """
        if not self._active:
            return None

        subscription = next(iter(self._active.values()))
        status = ConnectionStatus.from_state(getattr(subscription.channel, 'state', None))
        self.connection_monitor.set_status(status)
        return status

    def start_connection_monitor(self, interval: float = Config.CONNECTION_POLL_INTERVAL) -> asyncio.Task:
        """Poll the connection status every interval seconds until stopped"""
        if self._monitor_task is not None and not self._monitor_task.done():
            return self._monitor_task

        async def monitor() -> None:
            while True:
                await asyncio.sleep(interval)
                self.poll_connection_status()

        self._monitor_task = asyncio.create_task(monitor())
        return self._monitor_task

    async def stop_connection_monitor(self) -> None:
        if self._monitor_task is None:
            return

        self._monitor_task.cancel()
        try:
            await self._monitor_task
        except asyncio.CancelledError:
            pass
        self._monitor_task = None
