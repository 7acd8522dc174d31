"""
Channel Manager

Creates and removes realtime channels through a provider and fans
channel-level errors out to registered error listeners.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from core.realtime.types import ChannelProvider, RealtimeChannel, RealtimeChannelError

logger = logging.getLogger(__name__)

ErrorListener = Callable[[Exception], None]


class ChannelManager:
    """Wrap a channel provider with error observation"""

    def __init__(self, provider: ChannelProvider):
        self.provider = provider
        self._error_listeners: List[ErrorListener] = []
        self._debug_mode = False

    def set_debug_mode(self, enabled: bool) -> None:
        self._debug_mode = enabled

    def create_channel(self, name: str, options: Optional[Dict[str, Any]] = None) -> RealtimeChannel:
        """Open a channel and observe its system events for errors"""
        if self._debug_mode:
            logger.info(f"📡 [Realtime] Creating new channel: {name}")

        channel = self.provider.create_channel(name, options)
        channel.on_system(lambda payload: self._handle_system_event(name, payload))
        return channel

    def _handle_system_event(self, name: str, payload: Dict[str, Any]) -> None:
        if not isinstance(payload, dict) or payload.get('status') != 'error':
            return

        message = payload.get('message') or 'unknown system error'
        logger.error(f"❌ [Realtime] System error on channel {name}: {message}")
        self.notify_error(RealtimeChannelError(name, message))

    async def remove_channel(self, channel: RealtimeChannel) -> None:
        """Release a channel; failures are reported to error listeners, not raised"""
        try:
            await self.provider.remove_channel(channel)
        except Exception as e:
            logger.warning(f"⚠️ [Realtime] Error removing channel: {e}")
            self.notify_error(e)

    def add_error_listener(self, listener: ErrorListener) -> Callable[[], None]:
        """Register an error listener and return a function that removes it"""
        self._error_listeners.append(listener)

        def remove() -> None:
            if listener in self._error_listeners:
                self._error_listeners.remove(listener)

        return remove

    def notify_error(self, error: Exception) -> None:
        for listener in list(self._error_listeners):
            try:
                listener(error)
            except Exception as e:
                logger.error(f"❌ [Realtime] Error listener failed: {e}", exc_info=True)
