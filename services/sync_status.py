"""Observable sync state consumed by presentation layers."""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, List, Optional

from core.logs import get_sync_logger

IDLE = "idle"
SYNCING = "syncing"
FAILED = "failed"


@dataclass(frozen=True)
class SyncStatus:
    in_progress: bool = False
    status_text: str = "Ready"
    progress: float = 0.0
    has_error: bool = False
    state: str = IDLE
    last_synced_at: Optional[datetime] = None


StatusListener = Callable[[SyncStatus], None]


class SyncStatusPublisher:
    """Holds the current :class:`SyncStatus` and notifies subscribers on change."""

    def __init__(self) -> None:
        self._status = SyncStatus()
        self._listeners: List[StatusListener] = []
        self.logger = get_sync_logger("fieldsync.status")

    @property
    def current(self) -> SyncStatus:
        return self._status

    def subscribe(self, callback: StatusListener) -> None:
        if callback not in self._listeners:
            self._listeners.append(callback)

    def unsubscribe(self, callback: StatusListener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def publish(self, **changes) -> SyncStatus:
        if "progress" in changes:
            changes["progress"] = min(1.0, max(0.0, float(changes["progress"])))
        self._status = replace(self._status, **changes)
        self._emit(self._status)
        return self._status

    def started(self, text: str) -> None:
        self.publish(in_progress=True, status_text=text, progress=0.0, has_error=False, state=SYNCING)

    def progress(self, value: float, text: Optional[str] = None) -> None:
        if text is None:
            self.publish(progress=value)
        else:
            self.publish(progress=value, status_text=text)

    def finished(self, moment: datetime, text: str = "Sync complete") -> None:
        self.publish(
            in_progress=False,
            status_text=text,
            progress=1.0,
            has_error=False,
            state=IDLE,
            last_synced_at=moment,
        )

    def failed(self, error: BaseException) -> None:
        self.publish(in_progress=False, status_text=f"Sync failed: {error}", has_error=True, state=FAILED)

    def _emit(self, status: SyncStatus) -> None:
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception:
                self.logger.exception("Status listener failed")


__all__ = ["SyncStatus", "SyncStatusPublisher", "IDLE", "SYNCING", "FAILED"]
