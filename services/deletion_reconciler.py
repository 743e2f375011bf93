"""Infer remote deletions from complete listings and cascade them locally."""
from __future__ import annotations

from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Type

from sqlmodel import Session, select

from core.logs import get_sync_logger
from core.settings import SYNC
from models import CalendarEvent, ProjectTask, SyncedRecord
from storage.local_store import LocalStore
from utils.datetime_utils import synced_within, utc_now

# parent entity -> (child model, foreign key column)
CASCADES: Dict[str, Tuple[Tuple[Type[SyncedRecord], str], ...]] = {
    "project": ((ProjectTask, "project_id"), (CalendarEvent, "project_id")),
    "task": ((CalendarEvent, "task_id"),),
}

_UNSET = object()


class DeletionReconciler:
    def __init__(
        self,
        store: LocalStore,
        clock: Callable[[], datetime] = utc_now,
        grace_days: Optional[int] = SYNC.deletion_grace_days,
    ) -> None:
        self.store = store
        self.clock = clock
        self.grace_days = grace_days
        self.logger = get_sync_logger("fieldsync.deletions")

    def is_deletable(self, record: SyncedRecord, now: datetime, grace_days: Optional[int]) -> bool:
        if record.deleted_at is not None or record.last_synced_at is None:
            return False
        # pending rows keep deleted_at like any other domain field until pushed
        if record.needs_sync or record.is_protected:
            return False
        if grace_days is None:
            return True
        return synced_within(record.last_synced_at, grace_days, now)

    def reconcile_deletions(
        self,
        model: Type[SyncedRecord],
        keeping_ids: Iterable[str],
        *criteria,
        grace_days=_UNSET,
    ) -> int:
        """Soft-delete local rows of ``model`` missing from a complete remote listing.

        ``criteria`` narrows the candidates to the scope the listing covered.
        Rows never synced or holding unpushed edits are kept, as are protected
        rows and rows last synced outside the grace window. Returns the number
        of rows of ``model`` deleted; cascaded children are logged but not
        counted.
        """

        keep = set(keeping_ids)
        grace = self.grace_days if grace_days is _UNSET else grace_days
        now = self.clock()
        deleted = 0
        cascaded = 0
        with self.store.unit_of_work() as session:
            for record in LocalStore.fetch_in(session, model, *criteria):
                if record.id in keep or not self.is_deletable(record, now, grace):
                    continue
                record.deleted_at = now
                session.add(record)
                deleted += 1
                cascaded += self._cascade(session, record, now)
        if deleted:
            self.logger.info(
                "Soft-deleted %d %s records (%d cascaded children)", deleted, model.ENTITY, cascaded
            )
        return deleted

    def soft_delete(self, record: SyncedRecord) -> int:
        """Soft-delete one row and its dependents; returns the number of rows touched."""

        now = self.clock()
        with self.store.unit_of_work() as session:
            local = session.get(type(record), record.id)
            if local is None or local.deleted_at is not None:
                return 0
            local.deleted_at = now
            session.add(local)
            return 1 + self._cascade(session, local, now)

    def _cascade(self, session: Session, parent: SyncedRecord, moment: datetime) -> int:
        count = 0
        children: List[SyncedRecord] = []
        for child_model, column in CASCADES.get(parent.ENTITY, ()):
            stmt = select(child_model).where(
                getattr(child_model, column) == parent.id,
                child_model.deleted_at.is_(None),
            )
            children.extend(session.exec(stmt))
        if isinstance(parent, ProjectTask) and parent.calendar_event_id:
            event = session.get(CalendarEvent, parent.calendar_event_id)
            if event is not None and event.deleted_at is None:
                children.append(event)
        for child in children:
            if child.deleted_at is not None:
                continue
            child.deleted_at = moment
            session.add(child)
            count += 1
            count += self._cascade(session, child, moment)
        return count


__all__ = ["DeletionReconciler", "CASCADES"]
