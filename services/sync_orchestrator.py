"""Sequencing of pulls and pushes across every replicated entity type."""
from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Awaitable, Callable, Iterable, List, Optional, Set

from core.errors import (
    AlreadySyncing,
    MissingScopeIdentifier,
    NotConnected,
    RemoteCallFailed,
    RemoteError,
    RemoteHTTPError,
    SyncError,
)
from core.logs import get_sync_logger
from core.settings import SYNC, SyncSettings
from core.statuses import ROLE_FIELD, normalize_role, sees_all_company_projects
from models import (
    CalendarEvent,
    Client,
    Company,
    Project,
    ProjectTask,
    SubClient,
    TaskType,
    User,
)
from models.calendar_event import EVENT_TYPE_PROJECT
from models.records import CalendarEventRecord, CompanyRecord, TransferRecord, UserRecord
from services.cache import CacheService
from services.connectivity import ConnectivityMonitor
from services.deletion_reconciler import DeletionReconciler
from services.entity_repository import Repositories, Scope
from services.pending_queue import PendingMutationQueue
from services.relationship_linker import RelationshipLinker
from services.sync_state_storage import SyncStateStorage
from services.sync_status import SyncStatusPublisher
from services.upsert_engine import UpsertEngine
from storage.local_store import LocalStore
from utils.datetime_utils import utc_now

# progress reported after each step of a full pass
FULL_SYNC_CHECKPOINTS = (
    ("company", 0.15),
    ("user", 0.30),
    ("client", 0.45),
    ("task_type", 0.60),
    ("project", 0.75),
    ("task", 0.85),
    ("calendar_event", 0.95),
)


class SyncOrchestrator:
    """Owns the single-flight gate and runs every sync mode.

    All store writes happen on the event loop thread between awaits; network
    round-trips are the only suspension points. One pass of any mode may be
    in flight at a time.
    """

    def __init__(
        self,
        repositories: Repositories,
        *,
        store: Optional[LocalStore] = None,
        connectivity: Optional[ConnectivityMonitor] = None,
        cache: Optional[CacheService] = None,
        status: Optional[SyncStatusPublisher] = None,
        state: Optional[SyncStateStorage] = None,
        settings: SyncSettings = SYNC,
        company_id: Optional[str] = None,
        user_id: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repositories = repositories
        self.store = store or LocalStore()
        self.connectivity = connectivity or ConnectivityMonitor()
        self.cache = cache or CacheService()
        self.status = status or SyncStatusPublisher()
        self.state = state or SyncStateStorage(settings.state_path)
        self.settings = settings
        self.clock = clock

        scope = self.state.get_scope()
        self.company_id = company_id or scope.get("company_id")
        self.user_id = user_id or scope.get("user_id")

        self.upserts = UpsertEngine(self.store, self.cache, clock)
        self.reconciler = DeletionReconciler(self.store, clock, settings.deletion_grace_days)
        self.linker = RelationshipLinker(self.store)
        self.queue = PendingMutationQueue(
            self.store, repositories, batch_size=settings.batch_size, clock=clock
        )

        self._syncing = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._background_tasks: Set[asyncio.Task] = set()
        self.logger = get_sync_logger()
        self.connectivity.add_listener(self._on_connectivity_changed)

    # ------------------------------------------------------------------
    # state
    @property
    def is_syncing(self) -> bool:
        return self._syncing

    @property
    def state_name(self) -> str:
        return self.status.current.state

    def set_scope(self, *, company_id: Optional[str], user_id: Optional[str]) -> None:
        self.company_id = company_id
        self.user_id = user_id
        self.state.set_scope(company_id=company_id, user_id=user_id)

    def _acquire(self, label: str) -> None:
        # no await between the checks and taking the flag
        if not self.connectivity.is_connected:
            raise NotConnected()
        if self._syncing:
            raise AlreadySyncing()
        self._syncing = True
        self._idle.clear()
        self.status.started(label)
        self.logger.info("%s started", label)

    def _release(self) -> None:
        self._syncing = False
        self._idle.set()

    def _require_company_id(self) -> str:
        if self.company_id:
            return self.company_id
        if self.user_id:
            user = self.store.get(User, self.user_id)
            if user is not None and user.company_id:
                self.company_id = user.company_id
                return self.company_id
        raise MissingScopeIdentifier("company")

    def _require_user_id(self) -> str:
        if not self.user_id:
            raise MissingScopeIdentifier("user")
        return self.user_id

    async def _step(self, entity: str, action: Awaitable):
        try:
            return await action
        except RemoteError as exc:
            raise RemoteCallFailed(entity, exc) from exc

    # ------------------------------------------------------------------
    # modes
    async def full_sync(self) -> None:
        """Push pending edits, pull every entity type in order, then relink."""

        self._acquire("Full sync")
        try:
            company_id = self._require_company_id()
            self._require_user_id()
            await self.queue.flush_all()
            steps = {
                "company": self.sync_company,
                "user": self.sync_users,
                "client": self.sync_clients,
                "task_type": self.sync_task_types,
                "project": self.sync_projects,
                "task": self.sync_tasks,
                "calendar_event": self.sync_calendar_events,
            }
            for entity, checkpoint in FULL_SYNC_CHECKPOINTS:
                self.status.publish(status_text=f"Syncing {entity}")
                await self._step(entity, steps[entity]())
                self.status.progress(checkpoint)
            self.linker.link_all()
            now = self.clock()
            self.state.set_last_full_sync(now)
            self.status.finished(now)
            self.logger.info("Full sync for company %s complete", company_id)
        except Exception as exc:
            self.logger.error("Full sync failed: %s", exc)
            self.status.failed(exc)
            raise
        finally:
            self._release()

    async def app_launch_sync(self) -> None:
        """Await the critical entities; the rest continues detached."""

        self._acquire("Launch sync")
        try:
            self._require_company_id()
            self._require_user_id()
            await self._step("company", self.sync_company())
            self.status.progress(0.25)
            await self._step("user", self.sync_users())
            self.status.progress(0.5)
            await self._step("project", self.sync_projects())
            self.status.progress(0.75)
            await self._step("calendar_event", self.sync_calendar_events())
            now = self.clock()
            self.status.finished(now)
        except Exception as exc:
            self.logger.error("Launch sync failed: %s", exc)
            self.status.failed(exc)
            raise
        finally:
            self._release()
        self._dispatch(self._launch_remainder())

    async def _launch_remainder(self) -> None:
        for entity, action in (
            ("client", self.sync_clients),
            ("task_type", self.sync_task_types),
            ("task", self.sync_tasks),
        ):
            try:
                await self._step(entity, action())
            except Exception as exc:
                self.logger.warning("Deferred %s sync failed: %s", entity, exc)
        try:
            self.linker.link_all()
        except Exception as exc:
            self.logger.warning("Deferred relink failed: %s", exc)

    async def background_refresh(self) -> None:
        """Pull records changed since the last successful sync; never reconciles."""

        self._acquire("Refresh")
        started = self.clock()
        try:
            since = self.state.last_successful_sync()
            await self.queue.flush_all()
            await self._step("project", self.sync_projects(since=since, reconcile=False))
            self.status.progress(0.4)
            await self._step("calendar_event", self.sync_calendar_events(since=since, reconcile=False))
            self.status.progress(0.7)
            await self._step("task", self.sync_tasks(since=since, reconcile=False))
            if self.settings.relink_after_refresh:
                self.linker.link_all()
            self.state.set_last_refresh(started)
            self.status.finished(self.clock(), "Up to date")
        except Exception as exc:
            self.logger.error("Refresh failed: %s", exc)
            self.status.failed(exc)
            raise
        finally:
            self._release()

    async def manual_full_sync(self) -> None:
        self.logger.info("Manual full sync requested")
        await self.full_sync()

    async def retry_sync(self) -> bool:
        """Clear the error and rerun a full pass; reports instead of raising."""

        self.status.publish(has_error=False, status_text="Retrying sync")
        try:
            await self.full_sync()
        except SyncError as exc:
            self.status.publish(has_error=True, status_text=f"Sync failed: {exc}")
            return False
        except Exception as exc:
            self.logger.exception("Retried sync crashed")
            self.status.publish(has_error=True, status_text=f"Sync failed: {exc}")
            return False
        return True

    async def trigger_background_sync(self) -> bool:
        """Opportunistic refresh: a no-op when offline or busy."""

        if not self.connectivity.is_connected or self._syncing:
            return False
        try:
            await self.background_refresh()
        except SyncError as exc:
            self.logger.warning("Triggered refresh failed: %s", exc)
            return False
        except Exception:
            self.logger.exception("Triggered refresh crashed")
            return False
        return True

    async def run_periodic(self, stop: asyncio.Event, interval: Optional[float] = None) -> None:
        interval = interval or self.settings.auto_refresh_interval_sec
        while not stop.is_set():
            await self.trigger_background_sync()
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue

    async def on_app_foregrounded(self) -> bool:
        return await self.trigger_background_sync()

    async def on_app_backgrounded(self) -> bool:
        """Give an in-flight pass a bounded extension to finish."""

        if not self._syncing:
            return True
        try:
            await asyncio.wait_for(self._idle.wait(), timeout=self.settings.background_extension_sec)
            return True
        except asyncio.TimeoutError:
            self.logger.warning("Sync still running after %ss extension", self.settings.background_extension_sec)
            return False

    def _on_connectivity_changed(self, connected: bool) -> None:
        if not connected:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            self.logger.debug("Connectivity regained outside an event loop; skipping refresh")
            return
        self._dispatch(self.trigger_background_sync())

    def _dispatch(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    async def wait_for_background(self) -> None:
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # scoped operations
    async def sync_project_tasks(self, project_id: str) -> int:
        """Pull one project's tasks and events; scoped, so nothing is reconciled."""

        if not self.connectivity.is_connected:
            raise NotConnected()
        scope = Scope.project(project_id)
        tasks = await self._step("task", self.repositories["task"].fetch_all(scope))
        events = await self._step("calendar_event", self.repositories["calendar_event"].fetch_all(scope))
        self.upserts.upsert_many(tasks)
        self.upserts.upsert_many(self._color_project_events(events))
        self.linker.link_all()
        return len(tasks)

    async def refresh_single_client(self, client_id: str) -> Optional[Client]:
        if not self.connectivity.is_connected:
            raise NotConnected()
        record = await self._step("client", self.repositories["client"].fetch_one(client_id))
        subs = await self._step("sub_client", self.repositories["sub_client"].fetch_all(Scope.client(client_id)))
        self.upserts.upsert(record)
        self.upserts.upsert_many(subs)
        # a client-scoped listing is complete for that client's contacts
        self.reconciler.reconcile_deletions(SubClient, [sub.id for sub in subs], SubClient.client_id == client_id)
        return self.store.get(Client, client_id)

    async def refresh_user(self, user_id: str) -> Optional[User]:
        """Fetch one user, remembering ids the remote does not know."""

        if self.cache.is_missing("user", user_id):
            return None
        if not self.connectivity.is_connected:
            raise NotConnected()
        try:
            record = await self.repositories["user"].fetch_one(user_id)
        except RemoteHTTPError as exc:
            if exc.status_code == 404:
                self.logger.info("User %s does not exist remotely", user_id)
                self.cache.mark_missing("user", user_id)
                return None
            raise RemoteCallFailed("user", exc) from exc
        except RemoteError as exc:
            raise RemoteCallFailed("user", exc) from exc
        company = self.store.get(Company, record.company_id) if record.company_id else None
        self.upserts.upsert(self._resolve_role(record, company))
        return self.store.get(User, user_id)

    # ------------------------------------------------------------------
    # per-entity pulls
    async def sync_company(self) -> Company:
        company_id = self._require_company_id()
        record: CompanyRecord = await self.repositories["company"].fetch_one(company_id)
        previous = self.store.get(Company, company_id)
        company = self.upserts.upsert(record)
        if previous is None or previous.default_project_color != company.default_project_color:
            self.migrate_project_event_colors(company)
        return company

    async def sync_users(self, reconcile: bool = True) -> List[User]:
        company_id = self._require_company_id()
        records = await self.repositories["user"].fetch_all(Scope.company(company_id))
        company = self.store.get(Company, company_id)
        resolved = [self._resolve_role(record, company) for record in records]
        users = self.upserts.upsert_many(resolved)
        if reconcile:
            self.reconciler.reconcile_deletions(User, [r.id for r in records], User.company_id == company_id)
        return users

    async def sync_clients(self, reconcile: bool = True) -> List[Client]:
        company_id = self._require_company_id()
        scope = Scope.company(company_id)
        records = await self.repositories["client"].fetch_all(scope)
        subs = await self.repositories["sub_client"].fetch_all(scope)
        clients = self.upserts.upsert_many(records)
        self.upserts.upsert_many(subs)
        if reconcile:
            client_ids = [r.id for r in records]
            self.reconciler.reconcile_deletions(Client, client_ids, Client.company_id == company_id)
            self.reconciler.reconcile_deletions(
                SubClient, [s.id for s in subs], SubClient.client_id.in_(client_ids)
            )
        return clients

    async def sync_task_types(self, reconcile: bool = True) -> List[TaskType]:
        company_id = self._require_company_id()
        records = await self.repositories["task_type"].fetch_all(Scope.company(company_id))
        task_types = self.upserts.upsert_many(records)
        if reconcile:
            self.reconciler.reconcile_deletions(TaskType, [r.id for r in records], TaskType.company_id == company_id)
        return task_types

    async def sync_projects(self, since: Optional[datetime] = None, reconcile: bool = True) -> List[Project]:
        company_id = self._require_company_id()
        scope = self._project_scope(company_id)
        records = await self.repositories["project"].fetch_all(scope, since=since)
        projects = self.upserts.upsert_many(records)
        if reconcile and scope.is_complete(since):
            self.reconciler.reconcile_deletions(Project, [r.id for r in records], Project.company_id == company_id)
        return projects

    async def sync_tasks(self, since: Optional[datetime] = None, reconcile: bool = True) -> List[ProjectTask]:
        company_id = self._require_company_id()
        scope = Scope.company(company_id)
        records = await self.repositories["task"].fetch_all(scope, since=since)
        tasks = self.upserts.upsert_many(records)
        if reconcile and scope.is_complete(since):
            self.reconciler.reconcile_deletions(
                ProjectTask, [r.id for r in records], ProjectTask.company_id == company_id
            )
        return tasks

    async def sync_calendar_events(
        self, since: Optional[datetime] = None, reconcile: bool = True
    ) -> List[CalendarEvent]:
        company_id = self._require_company_id()
        scope = Scope.company(company_id)
        records = await self.repositories["calendar_event"].fetch_all(scope, since=since)
        events = self.upserts.upsert_many(self._color_project_events(records))
        if reconcile and scope.is_complete(since):
            self.reconciler.reconcile_deletions(
                CalendarEvent, [r.id for r in records], CalendarEvent.company_id == company_id
            )
        return events

    # ------------------------------------------------------------------
    # entity-specific fixes
    def _project_scope(self, company_id: str) -> Scope:
        user = self.store.get(User, self.user_id) if self.user_id else None
        role = user.role if user is not None else ROLE_FIELD
        if sees_all_company_projects(role):
            return Scope.company(company_id)
        return Scope.user(self._require_user_id())

    @staticmethod
    def _resolve_role(record: UserRecord, company: Optional[Company]) -> UserRecord:
        admin_ids = company.get_ids("admin_ids") if company is not None else []
        role = normalize_role(record.role, is_admin=record.id in admin_ids)
        return record.model_copy(update={"role": role})

    def _project_event_color(self) -> str:
        company = self.store.get(Company, self.company_id) if self.company_id else None
        if company is not None and company.default_project_color:
            return company.default_project_color
        return self.settings.fallback_event_color

    def _color_project_events(self, records: Iterable[TransferRecord]) -> List[TransferRecord]:
        color = self._project_event_color()
        result = []
        for record in records:
            if isinstance(record, CalendarEventRecord) and record.type == EVENT_TYPE_PROJECT:
                record = record.model_copy(update={"color": color})
            result.append(record)
        return result

    def migrate_project_event_colors(self, company: Company) -> int:
        """Repaint local project events with the company's default color."""

        color = company.default_project_color or self.settings.fallback_event_color
        changed = 0
        with self.store.unit_of_work() as session:
            events = LocalStore.fetch_in(
                session,
                CalendarEvent,
                CalendarEvent.company_id == company.id,
                CalendarEvent.type == EVENT_TYPE_PROJECT,
                CalendarEvent.color != color,
            )
            for event in events:
                if event.needs_sync:
                    continue
                event.color = color
                session.add(event)
                changed += 1
        if changed:
            self.logger.info("Migrated %d project events to color %s", changed, color)
        return changed


__all__ = ["SyncOrchestrator", "FULL_SYNC_CHECKPOINTS"]
