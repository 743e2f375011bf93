"""Merge remote transfer records into the local replica."""
from __future__ import annotations

from datetime import datetime
from typing import Callable, Iterable, List, Optional

from sqlmodel import Session

from core.logs import get_sync_logger
from models import MODELS_BY_ENTITY, SyncedRecord
from models.records import RECORD_TYPES, TransferRecord
from services.cache import CacheService
from storage.local_store import LocalStore
from utils.datetime_utils import utc_now

ENTITY_BY_RECORD = {record_type: entity for entity, record_type in RECORD_TYPES.items()}


def model_for_record(record: TransferRecord):
    return MODELS_BY_ENTITY[ENTITY_BY_RECORD[type(record)]]


class UpsertEngine:
    """Find-or-create local rows by id and copy remote fields onto them.

    Rows flagged ``needs_sync`` keep their domain fields: the local edit wins
    until it has been pushed. Id-list columns are still replaced wholesale by
    the remote list unless that very list is one of the pending fields.
    Entries dropped from a cached list column are evicted from the cache
    whether or not the row is pending.
    """

    def __init__(
        self,
        store: LocalStore,
        cache: Optional[CacheService] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.cache = cache or CacheService()
        self.clock = clock
        self.logger = get_sync_logger("fieldsync.upsert")

    def upsert(self, record: TransferRecord) -> SyncedRecord:
        with self.store.unit_of_work() as session:
            return self.apply(session, record, self.clock())

    def upsert_many(self, records: Iterable[TransferRecord]) -> List[SyncedRecord]:
        """Upsert a batch in a single transaction."""

        now = self.clock()
        with self.store.unit_of_work() as session:
            result = [self.apply(session, record, now) for record in records]
        if result:
            self.logger.debug("Upserted %d %s records", len(result), result[0].ENTITY)
        return result

    def apply(self, session: Session, record: TransferRecord, now: datetime) -> SyncedRecord:
        model = model_for_record(record)
        local = session.get(model, record.id)

        if local is None:
            local = model(id=record.id)
            self._copy_domain(local, record)
            for field in model.LIST_FIELDS:
                local.set_ids(field, getattr(record, field, None))
            local.last_synced_at = now
            local.needs_sync = False
            session.add(local)
            return local

        pending = set(local.get_pending_fields())
        for field in model.LIST_FIELDS:
            remote_ids = list(getattr(record, field, None) or [])
            previous = local.get_ids(field)
            namespace = model.CACHE_NAMESPACES.get(field)
            if namespace:
                removed = [value for value in previous if value not in remote_ids]
                if removed:
                    self.cache.evict_many(namespace, removed)
            if local.needs_sync and field in pending:
                continue
            local.set_ids(field, remote_ids)

        if not local.needs_sync:
            self._copy_domain(local, record)
            local.last_synced_at = now
            local.needs_sync = False
        session.add(local)
        return local

    @staticmethod
    def _copy_domain(local: SyncedRecord, record: TransferRecord) -> None:
        for field in local.DOMAIN_FIELDS:
            if hasattr(record, field):
                setattr(local, field, getattr(record, field))


__all__ = ["UpsertEngine", "model_for_record"]
