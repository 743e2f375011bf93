"""SQLModel table for project tasks."""

from __future__ import annotations

from typing import ClassVar, Optional, Tuple

from sqlmodel import Field

from core.statuses import DEFAULT_TASK_STATUS
from models.base import SyncedRecord


class ProjectTask(SyncedRecord, table=True):
    id: str = Field(primary_key=True)
    company_id: str = Field(default="", index=True)
    project_id: str = Field(default="", index=True)
    task_type_id: str = Field(default="", index=True)
    calendar_event_id: Optional[str] = Field(default=None, index=True)
    status: str = DEFAULT_TASK_STATUS
    task_notes: Optional[str] = None
    task_color: str = "#59779F"
    display_order: int = 0
    team_member_ids: str = ""

    ENTITY: ClassVar[str] = "task"
    DOMAIN_FIELDS: ClassVar[Tuple[str, ...]] = (
        "company_id",
        "project_id",
        "task_type_id",
        "calendar_event_id",
        "status",
        "task_notes",
        "task_color",
        "display_order",
        "deleted_at",
    )
    LIST_FIELDS: ClassVar[Tuple[str, ...]] = ("team_member_ids",)
    UPDATE_FACETS: ClassVar[Tuple[str, ...]] = ("status", "task_notes", "team_member_ids")


__all__ = ["ProjectTask"]
