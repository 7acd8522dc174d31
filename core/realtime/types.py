"""
Types shared by the realtime subscription modules
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, NamedTuple, Optional, Protocol

SubscriptionHandler = Callable[[Dict[str, Any]], Any]
StatusCallback = Callable[[str, Optional[Exception]], None]

VALID_EVENTS = ('INSERT', 'UPDATE', 'DELETE', '*')


class ConnectionStatus(str, Enum):
    """Channel states reported by Supabase Realtime, plus a default for no channel"""
    JOINED = "joined"
    JOINING = "joining"
    LEAVING = "leaving"
    CLOSED = "closed"
    ERRORED = "errored"
    DISCONNECTED = "disconnected"

    @classmethod
    def from_state(cls, state: Any) -> "ConnectionStatus":
        if state is None:
            return cls.DISCONNECTED
        value = getattr(state, 'value', state)
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.DISCONNECTED


class HandlerKey(NamedTuple):
    schema: str
    table: str
    event: str
    filter: Optional[str]


@dataclass(frozen=True)
class SubscriptionConfig:
    """Which postgres change events a handler wants to receive"""
    table: str
    event: str = '*'
    schema: str = 'public'
    filter: Optional[str] = None

    def __post_init__(self):
        if self.event not in VALID_EVENTS:
            raise ValueError(f"Invalid event '{self.event}', expected one of {VALID_EVENTS}")

    @property
    def key(self) -> HandlerKey:
        return HandlerKey(self.schema or 'public', self.table, self.event, self.filter)


class RealtimeChannelError(Exception):
    """Asynchronous error reported by a realtime channel"""

    def __init__(self, channel_name: str, message: str):
        super().__init__(f"Channel {channel_name}: {message}")
        self.channel_name = channel_name


class RealtimeChannel(Protocol):
    """What the subscription manager needs from one realtime channel"""

    @property
    def state(self) -> Any: ...

    def on_postgres_changes(self, config: SubscriptionConfig, callback: SubscriptionHandler) -> None: ...

    def on_system(self, callback: Callable[[Dict[str, Any]], None]) -> None: ...

    async def subscribe(self, status_callback: StatusCallback) -> None: ...


class ChannelProvider(Protocol):
    """Creates and releases realtime channels, one per name"""

    def create_channel(self, name: str, options: Optional[Dict[str, Any]] = None) -> RealtimeChannel: ...

    async def remove_channel(self, channel: RealtimeChannel) -> None: ...
