"""
Connection Monitor

Holds the last observed realtime connection status and notifies
listeners when it changes.
"""

import logging
from typing import Callable, List

from core.realtime.types import ConnectionStatus

logger = logging.getLogger(__name__)

ConnectionListener = Callable[[ConnectionStatus], None]


class ConnectionMonitor:

    def __init__(self, initial: ConnectionStatus = ConnectionStatus.DISCONNECTED):
        self._status = initial
        self._listeners: List[ConnectionListener] = []

    def get_current_status(self) -> ConnectionStatus:
        return self._status

    def set_status(self, status: ConnectionStatus) -> bool:
        """
        Record a new status

        Returns:
            True if the status changed and listeners were notified
        """
        if status == self._status:
            return False

        logger.info(f"🔌 [Realtime] Connection status: {self._status.value} -> {status.value}")
        self._status = status

        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception as e:
                logger.error(f"❌ [Realtime] Connection listener failed: {e}", exc_info=True)

        return True

    def add_listener(self, listener: ConnectionListener) -> Callable[[], None]:
        """Register a status listener and return a function that removes it"""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove
