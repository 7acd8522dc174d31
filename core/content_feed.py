"""
Live Content Feed

Listens for new monitored content (alerts, radio/TV transcriptions, press
clippings, news articles) through the shared realtime channel and turns
each insert into a notification event for the dashboard stream.
"""

import asyncio
import logging
import time
from functools import partial
from typing import Any, Dict, List, Optional

from core.config import Config
from core.realtime.subscription_manager import SubscriptionManager, Unsubscribe
from core.realtime.types import SubscriptionConfig

logger = logging.getLogger(__name__)

# table -> notification id prefix
CONTENT_TABLES = {
    'client_alerts': 'alert',
    'transcriptions': 'transcription',
    'tv_transcriptions': 'tv',
    'press_clippings': 'press',
    'news_articles': 'news',
}


def extract_record(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Get the inserted row from a postgres change payload"""
    data = payload.get('data', payload)
    return data.get('record') or data.get('new') or {}


def describe_event(table: str, record: Dict[str, Any]) -> Dict[str, Any]:
    """
    Build the notification shown for a newly inserted row

    Returns:
        Dict with id, table, title, description, urgent and the raw record
    """
    urgent = False

    if table == 'client_alerts':
        urgent = (record.get('importance_level') or 0) >= 4 or record.get('priority') == 'urgent'
        client_name = (record.get('metadata') or {}).get('clientName') or 'Client'
        title = f"Important alert for {client_name}!" if urgent else f"Notification for {client_name}"
        description = record.get('description') or record.get('title')
    elif table in ('transcriptions', 'tv_transcriptions'):
        source = record.get('program') or record.get('channel') or 'media content'
        title = "New TV transcription completed" if table == 'tv_transcriptions' else "New transcription completed"
        description = f"A transcription was completed for {source}"
    elif table == 'press_clippings':
        title = "New press clipping"
        description = f"{record.get('title')} - {record.get('publication_name')}"
    elif table == 'news_articles':
        title = "New news article"
        description = f"{record.get('title')} - {record.get('source')}"
    else:
        title = f"New {table} entry"
        description = record.get('title')

    prefix = CONTENT_TABLES.get(table, table)
    return {
        'id': f"{prefix}-{record.get('id')}",
        'table': table,
        'title': title,
        'description': description,
        'urgent': urgent,
        'record': record,
    }


class NotificationDeduplicator:
    """Suppress notifications already shown within a time window"""

    def __init__(self, ttl_seconds: float = Config.NOTIFICATION_DEDUP_SECONDS):
        self.ttl_seconds = ttl_seconds
        self._seen: Dict[str, float] = {}

    def should_show(self, notification_id: str) -> bool:
        now = time.monotonic()
        self._seen = {k: t for k, t in self._seen.items() if now - t < self.ttl_seconds}

        if notification_id in self._seen:
            return False

        self._seen[notification_id] = now
        return True


class ContentFeed:
    """
    Subscribe to every content table while inside an async with block

    Usage:
        async with ContentFeed(manager) as feed:
            event = await feed.queue.get()
    """

    def __init__(
        self,
        manager: SubscriptionManager,
        channel_name: str = Config.FEED_CHANNEL_NAME,
        deduplicator: Optional[NotificationDeduplicator] = None,
        max_queue: int = 100
    ):
        self.manager = manager
        self.channel_name = channel_name
        self.deduplicator = deduplicator or NotificationDeduplicator()
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue)
        self._unsubscribers: List[Unsubscribe] = []

    async def __aenter__(self) -> "ContentFeed":
        # All tables go out in one join
        self._unsubscribers = await self.manager.subscribe_many(
            self.channel_name,
            [
                (SubscriptionConfig(table=table, event='INSERT'), partial(self._on_insert, table))
                for table in CONTENT_TABLES
            ]
        )

        logger.info(f"📡 Content feed listening on {len(CONTENT_TABLES)} tables")
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        unsubscribers, self._unsubscribers = self._unsubscribers, []
        for unsubscribe in unsubscribers:
            await unsubscribe()
        logger.info("📡 Content feed closed")

    def _on_insert(self, table: str, payload: Dict[str, Any]) -> None:
        event = describe_event(table, extract_record(payload))

        if not self.deduplicator.should_show(event['id']):
            return

        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(f"⚠️ Content feed queue full, dropping {event['id']}")
