"""
Tests for core/realtime/channel_manager.py
"""

import asyncio
import pytest

from core.realtime.channel_manager import ChannelManager
from core.realtime.types import RealtimeChannelError


class TestCreateChannel:

    @pytest.mark.unit
    def test_creates_through_provider(self, fake_provider):
        manager = ChannelManager(fake_provider)

        channel = manager.create_channel('dashboard-realtime', {'config': {'private': False}})

        assert fake_provider.created == [channel]
        assert channel.options == {'config': {'private': False}}
        assert len(channel.system_callbacks) == 1

    @pytest.mark.unit
    def test_system_error_reaches_listeners(self, fake_provider):
        """Should turn an error system event into a RealtimeChannelError"""
        manager = ChannelManager(fake_provider)
        errors = []
        manager.add_error_listener(errors.append)
        channel = manager.create_channel('dashboard-realtime')

        channel.emit_system({'status': 'ok', 'message': 'subscribed'})
        channel.emit_system({'status': 'error', 'message': 'replication slot lost'})

        assert len(errors) == 1
        assert isinstance(errors[0], RealtimeChannelError)
        assert errors[0].channel_name == 'dashboard-realtime'
        assert 'replication slot lost' in str(errors[0])


class TestRemoveChannel:

    @pytest.mark.unit
    def test_remove_failure_is_reported_not_raised(self, fake_provider):
        manager = ChannelManager(fake_provider)
        errors = []
        manager.add_error_listener(errors.append)
        channel = manager.create_channel('alerts')
        fake_provider.fail_remove = True

        asyncio.run(manager.remove_channel(channel))

        assert fake_provider.removed == [channel]
        assert [str(e) for e in errors] == ['socket already closed']


class TestErrorListeners:

    @pytest.mark.unit
    def test_broken_listener_does_not_block_others(self, fake_provider):
        manager = ChannelManager(fake_provider)
        seen = []

        def broken(error):
            raise RuntimeError("listener bug")

        manager.add_error_listener(broken)
        manager.add_error_listener(seen.append)
        manager.notify_error(ValueError("boom"))

        assert len(seen) == 1

    @pytest.mark.unit
    def test_removed_listener_is_not_called(self, fake_provider):
        manager = ChannelManager(fake_provider)
        seen = []
        remove = manager.add_error_listener(seen.append)
        remove()

        manager.notify_error(ValueError("boom"))

        assert seen == []
