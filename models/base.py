"""Shared sync envelope for every replicated entity."""

from __future__ import annotations

from datetime import datetime
from typing import ClassVar, Dict, Iterable, List, Optional, Tuple

from sqlmodel import Field, SQLModel


def split_ids(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def join_ids(values: Optional[Iterable[str]]) -> str:
    if not values:
        return ""
    seen: List[str] = []
    for value in values:
        item = str(value).strip()
        if item and item not in seen:
            seen.append(item)
    return ",".join(seen)


class SyncedRecord(SQLModel):
    """Metadata columns carried by every synchronized table.

    ``needs_sync`` marks unconfirmed local edits and doubles as an advisory
    lock against the pull path. ``last_synced_at`` is ``None`` until the
    record has round-tripped to the remote at least once.
    """

    needs_sync: bool = Field(default=False, index=True)
    last_synced_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = Field(default=None, index=True)
    sync_priority: int = Field(default=0)
    pending_fields: str = Field(default="")

    ENTITY: ClassVar[str] = ""
    # fields copied from a transfer record by the upsert engine
    DOMAIN_FIELDS: ClassVar[Tuple[str, ...]] = ()
    # id-list columns replaced wholesale by the remote list, even over local edits
    LIST_FIELDS: ClassVar[Tuple[str, ...]] = ()
    # list column -> cache namespace whose keys are evicted when entries disappear
    CACHE_NAMESPACES: ClassVar[Dict[str, str]] = {}
    # boolean column that shields a record from deletion reconciliation
    PROTECTED_FIELD: ClassVar[Optional[str]] = None
    # facets pushed on update when no pending field was recorded
    UPDATE_FACETS: ClassVar[Tuple[str, ...]] = ()

    def get_ids(self, field: str) -> List[str]:
        return split_ids(getattr(self, field, ""))

    def set_ids(self, field: str, values: Optional[Iterable[str]]) -> None:
        setattr(self, field, join_ids(values))

    def get_pending_fields(self) -> List[str]:
        return split_ids(self.pending_fields)

    def mark_dirty(self, *fields: str, priority: Optional[int] = None) -> None:
        self.pending_fields = join_ids([*self.get_pending_fields(), *fields])
        self.needs_sync = True
        if priority is not None and priority > (self.sync_priority or 0):
            self.sync_priority = priority

    def clear_dirty(self) -> None:
        self.pending_fields = ""
        self.needs_sync = False
        self.sync_priority = 0

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_protected(self) -> bool:
        if not self.PROTECTED_FIELD:
            return False
        return bool(getattr(self, self.PROTECTED_FIELD, False))


__all__ = ["SyncedRecord", "split_ids", "join_ids"]
