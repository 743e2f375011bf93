"""Transfer records exchanged with the remote system of record.

Records use snake_case attributes and camelCase on the wire. Every fallback
for a field the remote may omit is declared here, once, as the field default;
``None`` sent by the remote collapses to that default as well.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from core.statuses import (
    DEFAULT_PROJECT_STATUS,
    DEFAULT_TASK_STATUS,
    ROLE_FIELD,
    normalize_project_status,
    normalize_task_status,
)


class TransferRecord(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    id: str
    deleted_at: Optional[datetime] = None

    # fields whose remote ``None`` is replaced by the declared default
    DEFAULTED: ClassVar[Tuple[str, ...]] = ()

    @field_validator("*", mode="before")
    @classmethod
    def _none_to_default(cls, value: Any, info) -> Any:
        if value is None and info.field_name in cls.DEFAULTED:
            field = cls.model_fields[info.field_name]
            return field.get_default(call_default_factory=True)
        return value

    def to_wire(self, fields: Optional[List[str]] = None) -> Dict[str, Any]:
        payload = self.model_dump(mode="json", by_alias=True)
        if fields is None:
            return payload
        known = type(self).model_fields
        wanted = {known[name].alias or name for name in fields if name in known}
        return {key: value for key, value in payload.items() if key in wanted}


class CompanyRecord(TransferRecord):
    name: str = ""
    external_id: Optional[str] = None
    logo_url: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    default_project_color: str = "#59779F"
    subscription_status: Optional[str] = None
    subscription_plan: Optional[str] = None
    subscription_end: Optional[datetime] = None
    max_seats: int = 0
    admin_ids: List[str] = []
    seated_employee_ids: List[str] = []
    team_member_ids: List[str] = []

    DEFAULTED: ClassVar[Tuple[str, ...]] = (
        "name",
        "default_project_color",
        "max_seats",
        "admin_ids",
        "seated_employee_ids",
        "team_member_ids",
    )


class UserRecord(TransferRecord):
    company_id: str = ""
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: Optional[str] = None
    # raw employee type; resolved against company admin ids before upsert
    role: str = ROLE_FIELD
    user_color: str = "#59779F"
    profile_image_url: Optional[str] = None
    home_address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_active: bool = True

    DEFAULTED: ClassVar[Tuple[str, ...]] = (
        "company_id",
        "first_name",
        "last_name",
        "email",
        "role",
        "user_color",
        "is_active",
    )


class ClientRecord(TransferRecord):
    company_id: str = ""
    name: str = "Unknown Client"
    email: Optional[str] = None
    phone_number: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    profile_image_url: Optional[str] = None
    notes: Optional[str] = None

    DEFAULTED: ClassVar[Tuple[str, ...]] = ("company_id", "name")


class SubClientRecord(TransferRecord):
    client_id: str = ""
    name: str = ""
    title: Optional[str] = None
    email: Optional[str] = None
    phone_number: Optional[str] = None
    address: Optional[str] = None

    DEFAULTED: ClassVar[Tuple[str, ...]] = ("client_id", "name")


class TaskTypeRecord(TransferRecord):
    company_id: str = ""
    display: str = "Task"
    color: str = "#59779F"
    is_default: bool = False
    display_order: int = 0

    DEFAULTED: ClassVar[Tuple[str, ...]] = ("company_id", "display", "color", "is_default", "display_order")


class ProjectRecord(TransferRecord):
    company_id: str = ""
    client_id: Optional[str] = None
    title: str = "Untitled"
    description: Optional[str] = None
    notes: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    status: str = DEFAULT_PROJECT_STATUS
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    duration: Optional[int] = None
    all_day: bool = False
    team_member_ids: List[str] = []
    project_image_urls: List[str] = []

    DEFAULTED: ClassVar[Tuple[str, ...]] = (
        "company_id",
        "title",
        "status",
        "all_day",
        "team_member_ids",
        "project_image_urls",
    )

    @field_validator("status", mode="after")
    @classmethod
    def _status(cls, value: str) -> str:
        return normalize_project_status(value)


class TaskRecord(TransferRecord):
    company_id: str = ""
    project_id: str = ""
    task_type_id: str = ""
    calendar_event_id: Optional[str] = None
    status: str = DEFAULT_TASK_STATUS
    task_notes: Optional[str] = None
    task_color: str = "#59779F"
    display_order: int = 0
    team_member_ids: List[str] = []

    DEFAULTED: ClassVar[Tuple[str, ...]] = (
        "company_id",
        "project_id",
        "task_type_id",
        "status",
        "task_color",
        "display_order",
        "team_member_ids",
    )

    @field_validator("status", mode="after")
    @classmethod
    def _status(cls, value: str) -> str:
        return normalize_task_status(value)


class CalendarEventRecord(TransferRecord):
    company_id: str = ""
    project_id: str = ""
    task_id: Optional[str] = None
    title: str = "Event"
    color: str = "#59779F"
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    duration: int = 1
    type: str = "project"
    active: bool = True
    team_member_ids: List[str] = []

    DEFAULTED: ClassVar[Tuple[str, ...]] = (
        "company_id",
        "project_id",
        "title",
        "color",
        "duration",
        "type",
        "active",
        "team_member_ids",
    )

    @field_validator("type", mode="after")
    @classmethod
    def _type(cls, value: str) -> str:
        lowered = (value or "").strip().lower()
        return lowered if lowered in {"project", "task"} else "project"


RECORD_TYPES: Dict[str, Type[TransferRecord]] = {
    "company": CompanyRecord,
    "user": UserRecord,
    "client": ClientRecord,
    "sub_client": SubClientRecord,
    "task_type": TaskTypeRecord,
    "project": ProjectRecord,
    "task": TaskRecord,
    "calendar_event": CalendarEventRecord,
}


def record_from_model(obj) -> TransferRecord:
    """Build the transfer record for a local row, expanding id-list columns."""

    record_cls = RECORD_TYPES[obj.ENTITY]
    data: Dict[str, Any] = {}
    for name in record_cls.model_fields:
        if not hasattr(obj, name):
            continue
        if name in obj.LIST_FIELDS:
            data[name] = obj.get_ids(name)
        else:
            data[name] = getattr(obj, name)
    return record_cls.model_validate(data)


__all__ = [
    "TransferRecord",
    "CompanyRecord",
    "UserRecord",
    "ClientRecord",
    "SubClientRecord",
    "TaskTypeRecord",
    "ProjectRecord",
    "TaskRecord",
    "CalendarEventRecord",
    "RECORD_TYPES",
    "record_from_model",
]
