"""
Tests for core/content_feed.py
"""

import asyncio
import pytest

from core.content_feed import (
    CONTENT_TABLES,
    ContentFeed,
    NotificationDeduplicator,
    describe_event,
    extract_record,
)
from core.realtime.subscription_manager import SubscriptionManager


class TestDescribeEvent:
    """Tests for describe_event()"""

    @pytest.mark.unit
    def test_urgent_alert_by_importance(self):
        """Should flag alerts with importance 4 or higher as urgent"""
        event = describe_event('client_alerts', {
            'id': 3,
            'importance_level': 4,
            'title': 'Mention on prime time',
            'metadata': {'clientName': 'ACME'},
        })

        assert event['urgent'] is True
        assert event['title'] == 'Important alert for ACME!'
        assert event['description'] == 'Mention on prime time'
        assert event['id'] == 'alert-3'

    @pytest.mark.unit
    def test_urgent_alert_by_priority(self):
        """Should flag alerts with urgent priority as urgent"""
        event = describe_event('client_alerts', {'id': 1, 'priority': 'urgent', 'description': 'Crisis'})

        assert event['urgent'] is True
        assert event['title'] == 'Important alert for Client!'
        assert event['description'] == 'Crisis'

    @pytest.mark.unit
    def test_regular_alert(self):
        """Should build a normal notification for low importance alerts"""
        event = describe_event('client_alerts', {'id': 1, 'importance_level': 2, 'metadata': {'clientName': 'ACME'}})

        assert event['urgent'] is False
        assert event['title'] == 'Notification for ACME'

    @pytest.mark.unit
    def test_transcription_falls_back_to_channel(self):
        """Should name the channel when the program is missing"""
        event = describe_event('transcriptions', {'id': 9, 'channel': 'Radio Uno'})

        assert event['title'] == 'New transcription completed'
        assert event['description'] == 'A transcription was completed for Radio Uno'
        assert event['id'] == 'transcription-9'

    @pytest.mark.unit
    def test_press_clipping(self):
        event = describe_event('press_clippings', {'id': 2, 'title': 'Budget cuts', 'publication_name': 'El Diario'})

        assert event['title'] == 'New press clipping'
        assert event['description'] == 'Budget cuts - El Diario'
        assert event['id'] == 'press-2'

    @pytest.mark.unit
    def test_news_article(self):
        event = describe_event('news_articles', {'id': 5, 'title': 'Elections', 'source': 'Wire'})

        assert event['description'] == 'Elections - Wire'
        assert event['id'] == 'news-5'


class TestExtractRecord:
    """Tests for extract_record()"""

    @pytest.mark.unit
    def test_reads_realtime_data_record(self):
        assert extract_record({'data': {'record': {'id': 1}}}) == {'id': 1}

    @pytest.mark.unit
    def test_reads_new_key(self):
        assert extract_record({'new': {'id': 2}}) == {'id': 2}

    @pytest.mark.unit
    def test_missing_record_is_empty(self):
        assert extract_record({'data': {}}) == {}


class TestNotificationDeduplicator:
    """Tests for NotificationDeduplicator"""

    @pytest.mark.unit
    def test_suppresses_repeats(self):
        dedup = NotificationDeduplicator(ttl_seconds=60)

        assert dedup.should_show('news-1') is True
        assert dedup.should_show('news-1') is False
        assert dedup.should_show('news-2') is True

    @pytest.mark.unit
    def test_forgets_after_ttl(self):
        """Should show an id again once its window expired"""
        dedup = NotificationDeduplicator(ttl_seconds=0)

        assert dedup.should_show('news-1') is True
        assert dedup.should_show('news-1') is True


class TestContentFeed:
    """Tests for ContentFeed"""

    @pytest.mark.unit
    def test_subscribes_every_table_on_one_channel(self, fake_provider):
        """Should share one channel across all content tables"""
        manager = SubscriptionManager(fake_provider)

        async def run():
            async with ContentFeed(manager):
                return manager.get_active_subscriptions()

        active = asyncio.run(run())

        assert len(fake_provider.created) == 1
        assert active['channel:dashboard-realtime']['count'] == len(CONTENT_TABLES)
        assert len(fake_provider.removed) == 1

    @pytest.mark.unit
    def test_queues_described_events_once(self, fake_provider):
        """Should enqueue each insert once, dropping duplicates"""
        manager = SubscriptionManager(fake_provider)

        async def run():
            async with ContentFeed(manager) as feed:
                channel = fake_provider.created[0]
                channel.emit('press_clippings', 'INSERT', {'id': 4, 'title': 'T', 'publication_name': 'P'})
                channel.emit('press_clippings', 'INSERT', {'id': 4, 'title': 'T', 'publication_name': 'P'})
                return [feed.queue.get_nowait() for _ in range(feed.queue.qsize())]

        events = asyncio.run(run())

        assert [e['id'] for e in events] == ['press-4']

    @pytest.mark.unit
    def test_two_feeds_share_the_channel(self, fake_provider):
        """Should keep the channel open until the last feed closes"""
        manager = SubscriptionManager(fake_provider)

        async def run():
            async with ContentFeed(manager) as first:
                async with ContentFeed(manager) as second:
                    fake_provider.created[0].emit('news_articles', 'INSERT', {'id': 1, 'title': 'A', 'source': 'B'})
                    counts = (first.queue.qsize(), second.queue.qsize())
                assert fake_provider.removed == []
            return counts

        assert asyncio.run(run()) == (1, 1)
        assert len(fake_provider.created) == 1
        assert len(fake_provider.removed) == 1

    @pytest.mark.unit
    def test_full_queue_drops_events(self, fake_provider):
        """Should drop new events instead of blocking when the queue is full"""
        manager = SubscriptionManager(fake_provider)

        async def run():
            async with ContentFeed(manager, max_queue=1) as feed:
                channel = fake_provider.created[0]
                channel.emit('news_articles', 'INSERT', {'id': 1})
                channel.emit('news_articles', 'INSERT', {'id': 2})
                return feed.queue.qsize()

        assert asyncio.run(run()) == 1

    @pytest.mark.unit
    def test_every_table_is_bound_before_the_join(self, fake_provider):
        """Should deliver inserts from every content table on the shared channel"""
        manager = SubscriptionManager(fake_provider)

        async def run():
            async with ContentFeed(manager) as feed:
                channel = fake_provider.created[0]
                for index, table in enumerate(CONTENT_TABLES):
                    channel.emit(table, 'INSERT', {'id': index})
                return channel, [feed.queue.get_nowait()['table'] for _ in range(feed.queue.qsize())]

        channel, tables = asyncio.run(run())

        assert channel.bound_tables == list(CONTENT_TABLES)
        assert channel.late_bindings == []
        assert channel.subscribe_calls == 1
        assert tables == list(CONTENT_TABLES)
