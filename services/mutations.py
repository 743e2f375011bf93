"""User-initiated edits: written locally first, pushed immediately when online."""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Callable, Iterable, Optional, Type, TypeVar

from core.errors import LocalStoreCorruption
from core.logs import get_sync_logger
from core.settings import SYNC
from core.statuses import (
    DEFAULT_PROJECT_STATUS,
    SYNC_PRIORITY_DEFAULT,
    SYNC_PRIORITY_LOW,
    SYNC_PRIORITY_NOTES,
    SYNC_PRIORITY_STATUS,
    normalize_project_status,
    normalize_task_status,
)
from models import CalendarEvent, Client, Project, ProjectTask, SubClient, SyncedRecord, TaskType, User
from models.calendar_event import EVENT_TYPE_TASK
from services.connectivity import ConnectivityMonitor
from services.pending_queue import ParentNotSynced, PendingMutationQueue, PushInFlight
from storage.local_store import LocalStore
from utils.datetime_utils import utc_now

RecordT = TypeVar("RecordT", bound=SyncedRecord)

USER_FIELDS = ("first_name", "last_name", "email", "phone", "home_address", "user_color")
CLIENT_CONTACT_FIELDS = ("name", "email", "phone_number", "address")
SUB_CLIENT_FIELDS = ("name", "title", "email", "phone_number", "address")


def new_temp_id() -> str:
    return f"{SYNC.temp_id_prefix}{uuid.uuid4().hex}"


class MutationService:
    """Applies single-record edits and, when connected, awaits the push.

    A missing target raises :class:`LocalStoreCorruption`. When online the
    remote call is awaited and its error propagates to the caller; the local
    edit stays pending either way, so a later flush retries it.
    """

    def __init__(
        self,
        store: LocalStore,
        queue: PendingMutationQueue,
        connectivity: ConnectivityMonitor,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.queue = queue
        self.connectivity = connectivity
        self.clock = clock
        self.logger = get_sync_logger("fieldsync.mutations")

    def _require(self, model: Type[RecordT], record_id: str) -> RecordT:
        record = self.store.get(model, record_id)
        if record is None or record.is_deleted:
            raise LocalStoreCorruption(model.ENTITY, record_id)
        return record

    async def _commit(self, record: SyncedRecord) -> str:
        self.store.save(record)
        if not self.connectivity.is_connected:
            self.logger.info("Offline; %s %s queued for sync", record.ENTITY, record.id)
            return record.id
        try:
            return await self.queue.push_one(record)
        except ParentNotSynced as exc:
            self.logger.info("%s %s waits for its parent: %s", record.ENTITY, record.id, exc)
            return record.id
        except PushInFlight:
            self.logger.info("%s %s is already being pushed", record.ENTITY, record.id)
            return record.id

    async def _edit(
        self,
        model: Type[RecordT],
        record_id: str,
        changes: dict,
        *,
        priority: int = SYNC_PRIORITY_DEFAULT,
    ) -> RecordT:
        record = self._require(model, record_id)
        changed = []
        for name, value in changes.items():
            if name in record.LIST_FIELDS:
                record.set_ids(name, value)
            else:
                setattr(record, name, value)
            changed.append(name)
        record.mark_dirty(*changed, priority=priority)
        final_id = await self._commit(record)
        return self.store.get(model, final_id) or record

    # ------------------------------------------------------------------
    # projects
    async def update_project_status(self, project_id: str, status: str) -> Project:
        return await self._edit(
            Project, project_id, {"status": normalize_project_status(status)}, priority=SYNC_PRIORITY_STATUS
        )

    async def update_project_notes(self, project_id: str, notes: str) -> Project:
        return await self._edit(Project, project_id, {"notes": notes}, priority=SYNC_PRIORITY_NOTES)

    async def update_project_team(self, project_id: str, user_ids: Iterable[str]) -> Project:
        return await self._edit(Project, project_id, {"team_member_ids": list(user_ids)}, priority=SYNC_PRIORITY_LOW)

    async def create_project(
        self,
        company_id: str,
        title: str,
        *,
        client_id: Optional[str] = None,
        status: str = DEFAULT_PROJECT_STATUS,
        team_member_ids: Iterable[str] = (),
        **fields,
    ) -> Project:
        project = Project(
            id=new_temp_id(),
            company_id=company_id,
            client_id=client_id,
            title=title or "Untitled",
            status=normalize_project_status(status),
            **fields,
        )
        project.set_ids("team_member_ids", team_member_ids)
        project.mark_dirty(priority=SYNC_PRIORITY_STATUS)
        final_id = await self._commit(project)
        return self.store.get(Project, final_id) or project

    # ------------------------------------------------------------------
    # tasks
    async def update_task_status(self, task_id: str, status: str) -> ProjectTask:
        return await self._edit(
            ProjectTask, task_id, {"status": normalize_task_status(status)}, priority=SYNC_PRIORITY_STATUS
        )

    async def update_task_notes(self, task_id: str, notes: str) -> ProjectTask:
        return await self._edit(ProjectTask, task_id, {"task_notes": notes}, priority=SYNC_PRIORITY_NOTES)

    async def create_task(
        self,
        project_id: str,
        task_type_id: str,
        *,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        team_member_ids: Iterable[str] = (),
    ) -> ProjectTask:
        """Create a task and its calendar event locally; both sync on the next flush."""

        project = self._require(Project, project_id)
        task_type = self._require(TaskType, task_type_id)
        members = list(team_member_ids)
        task = ProjectTask(
            id=new_temp_id(),
            company_id=project.company_id,
            project_id=project.id,
            task_type_id=task_type.id,
            task_color=task_type.color,
        )
        event = CalendarEvent(
            id=new_temp_id(),
            company_id=project.company_id,
            project_id=project.id,
            task_id=task.id,
            title=task_type.display,
            color=task_type.color,
            start_date=start_date,
            end_date=end_date,
            type=EVENT_TYPE_TASK,
        )
        if start_date and end_date:
            event.duration = max(1, (end_date - start_date).days + 1)
        task.calendar_event_id = event.id
        task.set_ids("team_member_ids", members)
        event.set_ids("team_member_ids", members)
        task.mark_dirty()
        event.mark_dirty()
        self.store.save(event)
        task_id = await self._commit(task)
        pending_event = self.store.get(CalendarEvent, event.id)
        if pending_event is not None and self.connectivity.is_connected:
            await self._commit(pending_event)
        return self.store.get(ProjectTask, task_id) or task

    # ------------------------------------------------------------------
    # people
    async def update_user(self, user_id: str, **fields) -> User:
        changes = {name: value for name, value in fields.items() if name in USER_FIELDS}
        return await self._edit(User, user_id, changes)

    async def update_client_contact(self, client_id: str, **fields) -> Client:
        changes = {name: value for name, value in fields.items() if name in CLIENT_CONTACT_FIELDS}
        return await self._edit(Client, client_id, changes)

    async def create_sub_client(self, client_id: str, name: str, **fields) -> SubClient:
        client = self._require(Client, client_id)
        sub = SubClient(id=new_temp_id(), client_id=client.id, name=name)
        for key, value in fields.items():
            if key in SUB_CLIENT_FIELDS:
                setattr(sub, key, value)
        sub.mark_dirty()
        final_id = await self._commit(sub)
        return self.store.get(SubClient, final_id) or sub

    async def edit_sub_client(self, sub_client_id: str, **fields) -> SubClient:
        changes = {name: value for name, value in fields.items() if name in SUB_CLIENT_FIELDS}
        return await self._edit(SubClient, sub_client_id, changes)

    async def delete_sub_client(self, sub_client_id: str) -> None:
        sub = self._require(SubClient, sub_client_id)
        sub.deleted_at = self.clock()
        sub.mark_dirty("deleted_at")
        await self._commit(sub)


__all__ = ["MutationService", "new_temp_id"]
