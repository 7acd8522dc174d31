"""
Shared pytest fixtures for media monitor backend tests

This file contains fixtures that are available to all test files.
In-memory fakes stand in for Supabase storage, the sessions table and
the realtime client.
"""

import pytest
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set

from core.realtime.types import SubscriptionConfig
from core.session_store import UploadStatus, can_transition
from core.storage_manager import StorageError, StorageManager


class FakeStorage:
    """In-memory object store with the StorageManager interface"""

    chunk_key = staticmethod(StorageManager.chunk_key)

    def __init__(self):
        self.objects: Dict[str, bytes] = {}
        self.download_calls: List[str] = []
        self.remove_calls: List[List[str]] = []
        self.fail_download: Set[str] = set()
        self.fail_upload = False
        self.fail_remove = False

    def put_chunks(self, session_id: str, chunks: List[bytes]) -> None:
        for index, data in enumerate(chunks):
            self.objects[self.chunk_key(session_id, index)] = data

    def download(self, key: str) -> bytes:
        self.download_calls.append(key)
        if key in self.fail_download:
            raise StorageError(f"Failed to download {key}: connection reset", key=key)
        if key not in self.objects:
            raise StorageError(f"Failed to download {key}: Object not found", key=key)
        return self.objects[key]

    def upload(self, key: str, file, content_type: str = "application/octet-stream", upsert: bool = True) -> None:
        if self.fail_upload:
            raise StorageError(f"Failed to upload {key}: Payload too large", key=key)
        if not upsert and key in self.objects:
            raise StorageError(f"Failed to upload {key}: The resource already exists", key=key)
        self.objects[key] = Path(file).read_bytes() if isinstance(file, (str, Path)) else bytes(file)

    def remove(self, keys: List[str]) -> None:
        self.remove_calls.append(list(keys))
        if self.fail_remove:
            raise StorageError(f"Failed to remove {len(keys)} objects: service unavailable")
        for key in keys:
            self.objects.pop(key, None)


class FakeSessionStore:
    """In-memory session table recording every status written"""

    def __init__(self):
        self.rows: Dict[str, Dict[str, Any]] = {}
        self.history: Dict[str, List[str]] = {}

    def add(self, session_id: str, status: UploadStatus = UploadStatus.UPLOADING, **fields) -> None:
        self.rows[session_id] = {'session_id': session_id, 'status': status.value, **fields}
        self.history[session_id] = [status.value]

    def get(self, session_id: str) -> Optional[Dict[str, Any]]:
        return self.rows.get(session_id)

    def get_status(self, session_id: str) -> Optional[UploadStatus]:
        row = self.rows.get(session_id)
        return UploadStatus(row['status']) if row else None

    def update_status(self, session_id, status, current=None, **fields) -> bool:
        if not can_transition(current, status):
            return False
        self.rows.setdefault(session_id, {'session_id': session_id}).update(status=status.value, **fields)
        self.history.setdefault(session_id, []).append(status.value)
        return True


class FakeChannel:
    """
    Realtime channel double that records bindings and can emit changes

    Like Supabase Realtime, only bindings made before subscribe() are sent
    with the join; later ones are kept in late_bindings and never fire.
    """

    def __init__(self, name: str, options: Optional[Dict[str, Any]] = None):
        self.name = name
        self.options = options
        self.bindings: List[tuple] = []
        self.late_bindings: List[tuple] = []
        self.system_callbacks: List[Callable] = []
        self.subscribe_calls = 0
        self.status_callback: Optional[Callable] = None
        self.state = "joining"
        self.join_status = "SUBSCRIBED"

    def on_postgres_changes(self, config: SubscriptionConfig, callback: Callable) -> None:
        if self.subscribe_calls:
            self.late_bindings.append((config, callback))
        else:
            self.bindings.append((config, callback))

    def on_system(self, callback: Callable) -> None:
        self.system_callbacks.append(callback)

    async def subscribe(self, status_callback: Callable) -> None:
        self.subscribe_calls += 1
        self.status_callback = status_callback
        self.state = "joined"
        status_callback(self.join_status, None)

    @property
    def bound_tables(self) -> List[str]:
        return [config.table for config, _ in self.bindings]

    def emit(self, table: str, event: str, record: Dict[str, Any], schema: str = 'public',
             filter: Optional[str] = None) -> None:
        """Deliver a change to every binding matching the tuple"""
        payload = {'data': {'table': table, 'type': event, 'schema': schema, 'record': record}}
        for config, callback in list(self.bindings):
            if (config.schema, config.table, config.filter) != (schema, table, filter):
                continue
            if config.event not in ('*', event):
                continue
            callback(payload)

    def emit_system(self, payload: Dict[str, Any]) -> None:
        for callback in self.system_callbacks:
            callback(payload)


class FakeChannelProvider:

    def __init__(self):
        self.created: List[FakeChannel] = []
        self.removed: List[FakeChannel] = []
        self.fail_remove = False
        self.join_status = "SUBSCRIBED"

    @property
    def live(self) -> List[FakeChannel]:
        return [channel for channel in self.created if channel not in self.removed]

    def create_channel(self, name: str, options: Optional[Dict[str, Any]] = None) -> FakeChannel:
        channel = FakeChannel(name, options)
        channel.join_status = self.join_status
        self.created.append(channel)
        return channel

    async def remove_channel(self, channel: FakeChannel) -> None:
        self.removed.append(channel)
        if self.fail_remove:
            raise RuntimeError("socket already closed")
        channel.state = "closed"


@pytest.fixture
def fake_storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def fake_sessions() -> FakeSessionStore:
    return FakeSessionStore()


@pytest.fixture
def fake_provider() -> FakeChannelProvider:
    return FakeChannelProvider()


@pytest.fixture
def sample_chunks() -> List[bytes]:
    """Three chunks of known content: 1024, 1024 and 512 bytes"""
    return [
        bytes(range(256)) * 4,
        bytes(reversed(range(256))) * 4,
        b'\x00\xff' * 256,
    ]
