"""
Supabase Realtime channel provider

Adapts the Supabase async client to the channel interface used by the
subscription manager.
"""

import logging
from typing import Any, Callable, Dict, Optional
from supabase import acreate_client, AsyncClient

from core.config import Config
from core.realtime.types import StatusCallback, SubscriptionConfig, SubscriptionHandler

logger = logging.getLogger(__name__)


class SupabaseChannel:
    """One Supabase Realtime channel"""

    def __init__(self, channel: Any):
        self.channel = channel

    @property
    def state(self) -> Any:
        state = getattr(self.channel, 'state', None)
        return getattr(state, 'value', state)

    def on_postgres_changes(self, config: SubscriptionConfig, callback: SubscriptionHandler) -> None:
        self.channel.on_postgres_changes(
            config.event,
            callback,
            table=config.table,
            schema=config.schema,
            filter=config.filter
        )

    def on_system(self, callback: Callable[[Dict[str, Any]], None]) -> None:
        self.channel.on_system(callback)

    async def subscribe(self, status_callback: StatusCallback) -> None:
        def on_subscribe(state: Any, error: Optional[Exception] = None) -> None:
            status_callback(getattr(state, 'value', str(state)), error)

        await self.channel.subscribe(on_subscribe)


class SupabaseChannelProvider:
    """Create and remove channels on a Supabase async client"""

    def __init__(self, client: AsyncClient):
        self.client = client

    @classmethod
    async def from_env(cls) -> "SupabaseChannelProvider":
        credentials = Config.get_supabase_credentials()
        if not credentials['url'] or not credentials['key']:
            raise ValueError("Missing SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY environment variables")

        client = await acreate_client(credentials['url'], credentials['key'])
        logger.info("✅ Supabase realtime client initialized")
        return cls(client)

    def create_channel(self, name: str, options: Optional[Dict[str, Any]] = None) -> SupabaseChannel:
        return SupabaseChannel(self.client.channel(name, options or {}))

    async def remove_channel(self, channel: SupabaseChannel) -> None:
        await self.client.remove_channel(channel.channel)
