"""Network reachability gate with change notifications."""
from __future__ import annotations

from typing import Callable, List, Optional

import httpx

from core.logs import get_sync_logger

ConnectivityListener = Callable[[bool], None]


class ConnectivityMonitor:
    def __init__(self, connected: bool = True, *, probe_url: Optional[str] = None) -> None:
        self._connected = connected
        self._listeners: List[ConnectivityListener] = []
        self.probe_url = probe_url
        self.logger = get_sync_logger("fieldsync.connectivity")

    @property
    def is_connected(self) -> bool:
        return self._connected

    def add_listener(self, callback: ConnectivityListener) -> None:
        if callback not in self._listeners:
            self._listeners.append(callback)

    def remove_listener(self, callback: ConnectivityListener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def set_connected(self, value: bool) -> None:
        value = bool(value)
        if value == self._connected:
            return
        self._connected = value
        self.logger.info("Connectivity changed: %s", "online" if value else "offline")
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception:
                self.logger.exception("Connectivity listener failed")

    async def probe(self, client: Optional[httpx.AsyncClient] = None, timeout: float = 5.0) -> bool:
        """Issue a HEAD request to ``probe_url`` and record whether it answered."""

        if not self.probe_url:
            return self._connected
        should_close = client is None
        client = client or httpx.AsyncClient(timeout=timeout)
        try:
            await client.head(self.probe_url)
            reachable = True
        except httpx.HTTPError as exc:
            self.logger.debug("Probe to %s failed: %s", self.probe_url, exc)
            reachable = False
        finally:
            if should_close:
                await client.aclose()
        self.set_connected(reachable)
        return reachable


__all__ = ["ConnectivityMonitor"]
