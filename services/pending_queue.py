"""Replay unconfirmed local mutations against the remote repositories."""
from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Callable, Dict, List, Sequence, Set, Tuple

from core.logs import get_sync_logger
from core.settings import SYNC
from models import MODELS_BY_ENTITY, SYNC_ORDER, SyncedRecord
from models.records import record_from_model
from services.entity_repository import Repositories
from storage.local_store import LocalStore
from utils.datetime_utils import utc_now

# columns naming a parent that must exist remotely before the child is created
PARENT_FIELDS: Dict[str, Tuple[str, ...]] = {
    "user": ("company_id",),
    "client": ("company_id",),
    "sub_client": ("client_id",),
    "task_type": ("company_id",),
    "project": ("company_id", "client_id"),
    "task": ("project_id", "task_type_id"),
    "calendar_event": ("project_id", "task_id"),
}


class ParentNotSynced(Exception):
    """A create was deferred because a parent still carries a temporary id."""


class PushInFlight(Exception):
    """Another caller is already pushing this record; creates must not repeat."""


class PendingMutationQueue:
    def __init__(
        self,
        store: LocalStore,
        repositories: Repositories,
        *,
        batch_size: int = SYNC.batch_size,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.repositories = repositories
        self.batch_size = max(1, int(batch_size))
        self.clock = clock
        self._in_flight: Set[Tuple[str, str]] = set()
        self.logger = get_sync_logger("fieldsync.queue")

    def _is_temporary(self, value: Any) -> bool:
        return isinstance(value, str) and value.startswith(SYNC.temp_id_prefix)

    def _batches(self, records: Sequence[SyncedRecord]) -> List[Sequence[SyncedRecord]]:
        return [records[i : i + self.batch_size] for i in range(0, len(records), self.batch_size)]

    async def flush_pending(self, entity: str) -> int:
        """Push every pending record of ``entity``; failures stay pending.

        Records are taken highest ``sync_priority`` first and sent in batches
        that run concurrently. A failing record never stops its siblings.
        """

        model = MODELS_BY_ENTITY[entity]
        pending = [
            record for record in self.store.fetch_pending(model) if not self.is_in_flight(record)
        ]
        if not pending:
            return 0
        succeeded = 0
        for batch in self._batches(pending):
            results = await asyncio.gather(*(self._push_isolated(record) for record in batch))
            succeeded += sum(1 for ok in results if ok)
        failed = len(pending) - succeeded
        if failed:
            self.logger.warning("Flushed %d/%d pending %s records", succeeded, len(pending), entity)
        else:
            self.logger.info("Flushed %d pending %s records", succeeded, entity)
        return succeeded

    async def flush_all(self) -> int:
        """Flush every entity type, parents first, so children see real ids."""

        total = 0
        for model in SYNC_ORDER:
            total += await self.flush_pending(model.ENTITY)
        return total

    def is_in_flight(self, record: SyncedRecord) -> bool:
        return (record.ENTITY, record.id) in self._in_flight

    async def _push_isolated(self, record: SyncedRecord) -> bool:
        try:
            await self.push_one(record)
            return True
        except (ParentNotSynced, PushInFlight) as exc:
            self.logger.info("Deferred %s %s: %s", record.ENTITY, record.id, exc)
            return False
        except Exception as exc:
            self.logger.warning("Push of %s %s failed: %s", record.ENTITY, record.id, exc)
            return False

    async def push_one(self, record: SyncedRecord) -> str:
        """Send one record upstream and confirm it locally; returns its final id.

        Raises whatever the repository raises, leaving the record pending, and
        :class:`PushInFlight` when another caller is already pushing it.
        """

        key = (record.ENTITY, record.id)
        if key in self._in_flight:
            raise PushInFlight(f"{record.ENTITY} {record.id}")
        self._in_flight.add(key)
        try:
            current = self.store.get(type(record), record.id)
            if current is None or not current.needs_sync:
                # confirmed or re-keyed by another push since this snapshot was read
                return record.id
            return await self._push(current)
        finally:
            self._in_flight.discard(key)

    async def _push(self, record: SyncedRecord) -> str:
        model = type(record)
        repo = self.repositories[record.ENTITY]
        pushed = record.get_pending_fields()

        if record.last_synced_at is None:
            if record.is_deleted:
                # never reached the remote; nothing to delete there
                self._confirm(model, record.id, pushed)
                return record.id
            for field in PARENT_FIELDS.get(record.ENTITY, ()):
                if self._is_temporary(getattr(record, field, None)):
                    raise ParentNotSynced(f"{field}={getattr(record, field)}")
            transfer = record_from_model(record)
            dangling = {
                name: None
                for name in type(transfer).model_fields
                if name != "id" and self._is_temporary(getattr(transfer, name))
            }
            if dangling:
                transfer = transfer.model_copy(update=dangling)
            created = await repo.create(transfer)
            final_id = created.id or record.id
            if final_id != record.id:
                self.store.replace_id(model, record.id, final_id)
            self._confirm(model, final_id, pushed)
            return final_id

        if record.is_deleted:
            await repo.delete(record.id)
            self._confirm(model, record.id, pushed)
            return record.id

        fields = pushed or list(record.UPDATE_FACETS)
        changes = {
            name: record.get_ids(name) if name in record.LIST_FIELDS else getattr(record, name)
            for name in fields
            if hasattr(record, name)
        }
        await repo.update(record.id, changes)
        self._confirm(model, record.id, pushed)
        return record.id

    def _confirm(self, model, record_id: str, pushed: List[str]) -> None:
        # edits made while the call was in flight stay pending
        with self.store.unit_of_work() as session:
            local = session.get(model, record_id)
            if local is None:
                return
            remaining = [name for name in local.get_pending_fields() if name not in pushed]
            local.last_synced_at = self.clock()
            if remaining:
                local.pending_fields = ",".join(remaining)
                local.needs_sync = True
            else:
                local.clear_dirty()
            session.add(local)


__all__ = ["PendingMutationQueue", "ParentNotSynced", "PushInFlight", "PARENT_FIELDS"]
