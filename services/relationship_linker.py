"""Rebuild the in-memory object graph from durable id columns."""
from __future__ import annotations

from collections import defaultdict
from typing import Any, Dict, List, Optional, Tuple

from core.logs import get_sync_logger
from models import (
    CalendarEvent,
    Client,
    Company,
    Project,
    ProjectTask,
    SubClient,
    SyncedRecord,
    TaskType,
    User,
)
from storage.local_store import LocalStore

GraphKey = Tuple[str, str]


class EntityGraph:
    """Derived object references keyed by ``(entity, id)``.

    Never authoritative: it is replaced wholesale by every ``link_all`` and
    may be empty between an upsert phase and the following link phase.
    """

    def __init__(self) -> None:
        self._links: Dict[GraphKey, Dict[str, Any]] = {}

    def links_for(self, record: SyncedRecord) -> Dict[str, Any]:
        return self._links.get((record.ENTITY, record.id), {})

    def related(self, record: SyncedRecord, edge: str, default: Any = None) -> Any:
        return self.links_for(record).get(edge, default)

    def assign(self, record: SyncedRecord, edge: str, target: Any) -> None:
        self._links.setdefault((record.ENTITY, record.id), {})[edge] = target

    def __len__(self) -> int:
        return len(self._links)


class RelationshipLinker:
    def __init__(self, store: LocalStore) -> None:
        self.store = store
        self.graph = EntityGraph()
        self.unresolved_user_ids: set = set()
        self.logger = get_sync_logger("fieldsync.linker")

    def link_all(self) -> int:
        """Resolve every relationship against the active local rows.

        Unresolved ids are skipped; they point at records a scoped pull has
        not brought in yet. Returns the number of edges assigned.
        """

        with self.store.unit_of_work() as session:
            rows = {
                model: LocalStore.fetch_in(session, model)
                for model in (Company, User, Client, SubClient, TaskType, Project, ProjectTask, CalendarEvent)
            }

        maps = {model: {row.id: row for row in items} for model, items in rows.items()}
        users = maps[User]
        graph = EntityGraph()
        unresolved: set = set()
        edges = 0

        def one(record: SyncedRecord, edge: str, lookup: Dict[str, Any], key: Optional[str]) -> None:
            nonlocal edges
            target = lookup.get(key) if key else None
            graph.assign(record, edge, target)
            if target is not None:
                edges += 1

        def many(record: SyncedRecord, edge: str, targets: List[Any]) -> None:
            nonlocal edges
            graph.assign(record, edge, targets)
            edges += len(targets)

        def team(record: SyncedRecord, field: str = "team_member_ids", edge: str = "team_members") -> None:
            members = []
            for user_id in record.get_ids(field):
                user = users.get(user_id)
                if user is None:
                    unresolved.add(user_id)
                else:
                    members.append(user)
            many(record, edge, members)

        tasks_by_project: Dict[str, List[ProjectTask]] = defaultdict(list)
        events_by_project: Dict[str, List[CalendarEvent]] = defaultdict(list)
        projects_by_client: Dict[str, List[Project]] = defaultdict(list)
        subs_by_client: Dict[str, List[SubClient]] = defaultdict(list)
        users_by_company: Dict[str, List[User]] = defaultdict(list)
        types_by_company: Dict[str, List[TaskType]] = defaultdict(list)

        for task in rows[ProjectTask]:
            tasks_by_project[task.project_id].append(task)
        for event in rows[CalendarEvent]:
            events_by_project[event.project_id].append(event)
        for project in rows[Project]:
            if project.client_id:
                projects_by_client[project.client_id].append(project)
        for sub in rows[SubClient]:
            subs_by_client[sub.client_id].append(sub)
        for user in rows[User]:
            users_by_company[user.company_id].append(user)
        for task_type in rows[TaskType]:
            types_by_company[task_type.company_id].append(task_type)

        for project in rows[Project]:
            one(project, "client", maps[Client], project.client_id)
            one(project, "company", maps[Company], project.company_id)
            team(project)
            many(project, "tasks", sorted(tasks_by_project[project.id], key=lambda t: t.display_order))
            many(project, "calendar_events", events_by_project[project.id])

        for task in rows[ProjectTask]:
            one(task, "project", maps[Project], task.project_id)
            one(task, "task_type", maps[TaskType], task.task_type_id)
            one(task, "calendar_event", maps[CalendarEvent], task.calendar_event_id)
            team(task)

        for event in rows[CalendarEvent]:
            one(event, "project", maps[Project], event.project_id)
            one(event, "task", maps[ProjectTask], event.task_id)
            team(event)

        for client in rows[Client]:
            many(client, "sub_clients", subs_by_client[client.id])
            many(client, "projects", projects_by_client[client.id])

        for sub in rows[SubClient]:
            one(sub, "client", maps[Client], sub.client_id)

        for user in rows[User]:
            one(user, "company", maps[Company], user.company_id)

        for company in rows[Company]:
            # company team is the declared member list plus every user filed under it
            declared_ids = [user_id for user_id in company.get_ids("team_member_ids") if user_id in users]
            declared = [users[user_id] for user_id in declared_ids]
            extra = [user for user in users_by_company[company.id] if user.id not in declared_ids]
            many(company, "team_members", declared + extra)
            many(company, "task_types", sorted(types_by_company[company.id], key=lambda t: t.display_order))
            for user_id in company.get_ids("team_member_ids"):
                if user_id not in users:
                    unresolved.add(user_id)

        self.graph = graph
        self.unresolved_user_ids = unresolved
        if unresolved:
            self.logger.info("Linker skipped %d unresolved user ids", len(unresolved))
        self.logger.debug("Linked %d edges", edges)
        return edges


__all__ = ["EntityGraph", "RelationshipLinker"]
