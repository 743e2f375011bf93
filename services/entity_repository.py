"""Per-entity access to the remote system of record.

One :class:`EntityRepository` exists per entity type. The REST flavour talks to
an HTTP backend through :class:`services.api_client.ApiClient`; the in-memory
flavour keeps records in a dict and backs the ``memory`` backend and tests.
"""
from __future__ import annotations

import itertools
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Type

from pydantic import ValidationError

from core.errors import RemoteDecodeError, RemoteHTTPError
from core.settings import REMOTE, SYNC, RemoteSettings
from models.records import RECORD_TYPES, TransferRecord
from services.api_client import ApiClient
from utils.datetime_utils import ensure_utc, to_rfc3339_utc, utc_now

SCOPE_COMPANY = "company"
SCOPE_USER = "user"
SCOPE_PROJECT = "project"
SCOPE_CLIENT = "client"


@dataclass(frozen=True)
class Scope:
    """Filter limiting which remote records a pull considers."""

    kind: str
    value: str

    @classmethod
    def company(cls, company_id: str) -> "Scope":
        return cls(SCOPE_COMPANY, company_id)

    @classmethod
    def user(cls, user_id: str) -> "Scope":
        return cls(SCOPE_USER, user_id)

    @classmethod
    def project(cls, project_id: str) -> "Scope":
        return cls(SCOPE_PROJECT, project_id)

    @classmethod
    def client(cls, client_id: str) -> "Scope":
        return cls(SCOPE_CLIENT, client_id)

    def is_complete(self, since: Optional[datetime] = None) -> bool:
        """Whether the listing is authoritative enough to drive deletion reconciliation."""

        return since is None and self.kind in {SCOPE_COMPANY, SCOPE_USER}


class EntityRepository(ABC):
    entity: str = ""

    @property
    def record_type(self) -> Type[TransferRecord]:
        return RECORD_TYPES[self.entity]

    @abstractmethod
    async def fetch_all(self, scope: Scope, since: Optional[datetime] = None) -> List[TransferRecord]:
        ...

    @abstractmethod
    async def fetch_one(self, record_id: str) -> TransferRecord:
        ...

    @abstractmethod
    async def create(self, record: TransferRecord) -> TransferRecord:
        """Create ``record`` remotely and return it with the server-assigned id."""

    @abstractmethod
    async def update(self, record_id: str, fields: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def delete(self, record_id: str) -> None:
        ...


RESOURCE_PATHS = {
    "company": "companies",
    "user": "users",
    "client": "clients",
    "sub_client": "sub-clients",
    "task_type": "task-types",
    "project": "projects",
    "task": "tasks",
    "calendar_event": "calendar-events",
}

_SCOPE_PARAMS = {
    SCOPE_COMPANY: "companyId",
    SCOPE_USER: "userId",
    SCOPE_PROJECT: "projectId",
    SCOPE_CLIENT: "clientId",
}


class RestEntityRepository(EntityRepository):
    def __init__(self, entity: str, client: ApiClient) -> None:
        self.entity = entity
        self.client = client
        self.path = RESOURCE_PATHS[entity]

    def _decode(self, payload: Any) -> TransferRecord:
        try:
            return self.record_type.model_validate(payload)
        except ValidationError as exc:
            raise RemoteDecodeError(f"Invalid {self.entity} record: {exc}") from exc

    @staticmethod
    def _unwrap(payload: Any) -> Any:
        if isinstance(payload, dict) and "data" in payload:
            return payload["data"]
        return payload

    async def fetch_all(self, scope: Scope, since: Optional[datetime] = None) -> List[TransferRecord]:
        params = {_SCOPE_PARAMS[scope.kind]: scope.value}
        if since is not None:
            params["updatedSince"] = to_rfc3339_utc(since)
        payload = self._unwrap(await self.client.get(self.path, **params))
        if not isinstance(payload, list):
            raise RemoteDecodeError(f"Expected a list of {self.entity} records")
        return [self._decode(item) for item in payload]

    async def fetch_one(self, record_id: str) -> TransferRecord:
        payload = self._unwrap(await self.client.get(f"{self.path}/{record_id}"))
        return self._decode(payload)

    async def create(self, record: TransferRecord) -> TransferRecord:
        wire = record.to_wire()
        # the server assigns the id
        wire.pop("id", None)
        payload = self._unwrap(await self.client.post(self.path, wire))
        return self._decode(payload)

    async def update(self, record_id: str, fields: Dict[str, Any]) -> None:
        partial = self.record_type.model_validate({"id": record_id, **fields})
        await self.client.patch(f"{self.path}/{record_id}", partial.to_wire(list(fields)))

    async def delete(self, record_id: str) -> None:
        await self.client.delete(f"{self.path}/{record_id}")


class InMemoryEntityRepository(EntityRepository):
    """Remote stand-in keeping records in process memory."""

    _ids = itertools.count(1)

    def __init__(self, entity: str, records: Iterable[TransferRecord] = ()) -> None:
        self.entity = entity
        self.records: Dict[str, TransferRecord] = {}
        self.modified: Dict[str, datetime] = {}
        self.calls: List[tuple] = []
        for record in records:
            self.put(record)

    def put(self, record: TransferRecord, modified: Optional[datetime] = None) -> None:
        self.records[record.id] = record
        self.modified[record.id] = ensure_utc(modified) if modified else utc_now()

    def _matches(self, record: TransferRecord, scope: Scope) -> bool:
        if scope.kind == SCOPE_COMPANY:
            if self.entity == "company":
                return record.id == scope.value
            if self.entity == "sub_client":
                return True
            return getattr(record, "company_id", None) == scope.value
        if scope.kind == SCOPE_USER:
            if self.entity == "user":
                return record.id == scope.value
            return scope.value in (getattr(record, "team_member_ids", None) or [])
        if scope.kind == SCOPE_PROJECT:
            if self.entity == "project":
                return record.id == scope.value
            return getattr(record, "project_id", None) == scope.value
        if scope.kind == SCOPE_CLIENT:
            if self.entity == "client":
                return record.id == scope.value
            return getattr(record, "client_id", None) == scope.value
        return False

    async def fetch_all(self, scope: Scope, since: Optional[datetime] = None) -> List[TransferRecord]:
        self.calls.append(("fetch_all", scope, since))
        since = ensure_utc(since)
        return [
            record.model_copy(deep=True)
            for record_id, record in self.records.items()
            if self._matches(record, scope) and (since is None or self.modified[record_id] >= since)
        ]

    async def fetch_one(self, record_id: str) -> TransferRecord:
        self.calls.append(("fetch_one", record_id))
        record = self.records.get(record_id)
        if record is None:
            raise RemoteHTTPError(404, f"{self.entity} {record_id} not found")
        return record.model_copy(deep=True)

    async def create(self, record: TransferRecord) -> TransferRecord:
        self.calls.append(("create", record.id))
        new_id = record.id
        if not new_id or new_id.startswith(SYNC.temp_id_prefix):
            new_id = f"{self.entity}-{next(self._ids)}"
        created = record.model_copy(update={"id": new_id}, deep=True)
        self.put(created)
        return created.model_copy(deep=True)

    async def update(self, record_id: str, fields: Dict[str, Any]) -> None:
        self.calls.append(("update", record_id, dict(fields)))
        record = self.records.get(record_id)
        if record is None:
            raise RemoteHTTPError(404, f"{self.entity} {record_id} not found")
        self.put(record.model_copy(update=dict(fields), deep=True))

    async def delete(self, record_id: str) -> None:
        self.calls.append(("delete", record_id))
        record = self.records.get(record_id)
        if record is None:
            raise RemoteHTTPError(404, f"{self.entity} {record_id} not found")
        self.put(record.model_copy(update={"deleted_at": utc_now()}))


Repositories = Dict[str, EntityRepository]


def build_repositories(
    backend: Optional[str] = None,
    *,
    settings: RemoteSettings = REMOTE,
    client: Optional[ApiClient] = None,
) -> Repositories:
    """Return one repository per entity type for the configured backend."""

    backend = (backend or settings.backend).strip().lower()
    if backend == "memory":
        return {entity: InMemoryEntityRepository(entity) for entity in RECORD_TYPES}
    if backend == "rest":
        client = client or ApiClient(settings)
        return {entity: RestEntityRepository(entity, client) for entity in RECORD_TYPES}
    raise ValueError(f"Unsupported backend: {backend}")


__all__ = [
    "Scope",
    "EntityRepository",
    "RestEntityRepository",
    "InMemoryEntityRepository",
    "Repositories",
    "RESOURCE_PATHS",
    "build_repositories",
]
