"""
Process-wide online/offline signal.

An external network monitor calls set_online(). Listeners only hear about real
transitions, so a repeated set_online(True) cannot start a second drain.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)

Listener = Callable[[bool], None]


class ConnectivityGate:
    def __init__(self, online: bool = True):
        self._online = bool(online)
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()

    @property
    def online(self) -> bool:
        return self._online

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def set_online(self, online: bool) -> bool:
        """Returns True when the call changed the state."""
        online = bool(online)
        with self._lock:
            if online == self._online:
                return False
            self._online = online

        logger.info("Connectivity changed: %s", "online" if online else "offline")
        for listener in list(self._listeners):
            listener(online)
        return True
