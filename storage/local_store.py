"""Transactional access to the local replica."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional, Tuple, Type, TypeVar

from sqlalchemy import update
from sqlmodel import Session, select

from models import (
    CalendarEvent,
    Client,
    Company,
    Project,
    ProjectTask,
    SYNC_ORDER,
    SubClient,
    SyncedRecord,
    TaskType,
    User,
)
from storage.db import get_session

RecordT = TypeVar("RecordT", bound=SyncedRecord)

# entity -> scalar foreign keys pointing at it
SCALAR_REFERENCES: Dict[str, Tuple[Tuple[Type[SyncedRecord], str], ...]] = {
    "company": (
        (User, "company_id"),
        (Client, "company_id"),
        (TaskType, "company_id"),
        (Project, "company_id"),
        (ProjectTask, "company_id"),
        (CalendarEvent, "company_id"),
    ),
    "client": ((Project, "client_id"), (SubClient, "client_id")),
    "task_type": ((ProjectTask, "task_type_id"),),
    "project": ((ProjectTask, "project_id"), (CalendarEvent, "project_id")),
    "task": ((CalendarEvent, "task_id"),),
    "calendar_event": ((ProjectTask, "calendar_event_id"),),
}

# entity -> comma-separated id lists that may contain it
LIST_REFERENCES: Dict[str, Tuple[Tuple[Type[SyncedRecord], str], ...]] = {
    "user": (
        (Project, "team_member_ids"),
        (ProjectTask, "team_member_ids"),
        (CalendarEvent, "team_member_ids"),
        (Company, "admin_ids"),
        (Company, "seated_employee_ids"),
        (Company, "team_member_ids"),
    ),
}


class LocalStore:
    """Thin repository over SQLModel sessions.

    Every public method is its own unit of work. ``unit_of_work`` exposes a
    session for callers that need several reads and writes to commit together;
    any exception rolls the whole unit back.
    """

    def __init__(self, session_factory: Callable[[], Session] = get_session) -> None:
        self._session_factory = session_factory

    @contextmanager
    def unit_of_work(self) -> Iterator[Session]:
        with self._session_factory() as session:
            # returned rows stay readable once the session closes
            session.expire_on_commit = False
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise

    # ------------------------------------------------------------------
    # reads
    def get(self, model: Type[RecordT], record_id: str) -> Optional[RecordT]:
        if not record_id:
            return None
        with self.unit_of_work() as session:
            return session.get(model, record_id)

    def fetch(
        self,
        model: Type[RecordT],
        *criteria,
        include_deleted: bool = False,
    ) -> List[RecordT]:
        with self.unit_of_work() as session:
            return self.fetch_in(session, model, *criteria, include_deleted=include_deleted)

    @staticmethod
    def fetch_in(
        session: Session,
        model: Type[RecordT],
        *criteria,
        include_deleted: bool = False,
    ) -> List[RecordT]:
        stmt = select(model)
        if not include_deleted:
            stmt = stmt.where(model.deleted_at.is_(None))
        for clause in criteria:
            stmt = stmt.where(clause)
        return list(session.exec(stmt))

    def fetch_pending(self, model: Type[RecordT]) -> List[RecordT]:
        """Records with unconfirmed local edits, highest priority first."""

        with self.unit_of_work() as session:
            stmt = (
                select(model)
                .where(model.needs_sync == True)  # noqa: E712
                .order_by(model.sync_priority.desc())
            )
            return list(session.exec(stmt))

    def count_pending(self) -> int:
        return sum(len(self.fetch_pending(model)) for model in SYNC_ORDER)

    # ------------------------------------------------------------------
    # writes
    def save(self, *records: SyncedRecord) -> None:
        with self.unit_of_work() as session:
            for record in records:
                session.add(record)

    def replace_id(self, model: Type[SyncedRecord], old_id: str, new_id: str) -> None:
        """Swap a temporary primary key for the remote one, references included."""

        if old_id == new_id:
            return
        with self.unit_of_work() as session:
            existing = session.get(model, new_id)
            if existing is not None:
                # the remote row already arrived through a pull; drop the local copy
                stale = session.get(model, old_id)
                if stale is not None:
                    session.delete(stale)
            else:
                session.execute(update(model).where(model.id == old_id).values(id=new_id))
            self._repoint_references(session, model.ENTITY, old_id, new_id)

    @staticmethod
    def _repoint_references(session: Session, entity: str, old_id: str, new_id: str) -> None:
        # rows the remote already knows carry the stale id upstream too
        for child, column in SCALAR_REFERENCES.get(entity, ()):
            attr = getattr(child, column)
            for row in list(session.exec(select(child).where(attr == old_id))):
                setattr(row, column, new_id)
                if row.last_synced_at is not None:
                    row.mark_dirty(column)
                session.add(row)
        for child, column in LIST_REFERENCES.get(entity, ()):
            attr = getattr(child, column)
            for row in list(session.exec(select(child).where(attr.contains(old_id)))):
                ids = row.get_ids(column)
                if old_id not in ids:
                    continue
                row.set_ids(column, [new_id if value == old_id else value for value in ids])
                if row.last_synced_at is not None:
                    row.mark_dirty(column)
                session.add(row)


__all__ = ["LocalStore", "SCALAR_REFERENCES", "LIST_REFERENCES"]
