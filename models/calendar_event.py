"""SQLModel table for scheduled calendar events."""

from __future__ import annotations

from datetime import datetime
from typing import ClassVar, Optional, Tuple

from sqlmodel import Field

from models.base import SyncedRecord

EVENT_TYPE_PROJECT = "project"
EVENT_TYPE_TASK = "task"


class CalendarEvent(SyncedRecord, table=True):
    id: str = Field(primary_key=True)
    company_id: str = Field(default="", index=True)
    project_id: str = Field(default="", index=True)
    task_id: Optional[str] = Field(default=None, index=True)
    title: str = "Event"
    color: str = "#59779F"
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    duration: int = 1
    type: str = EVENT_TYPE_PROJECT
    active: bool = True
    team_member_ids: str = ""

    ENTITY: ClassVar[str] = "calendar_event"
    DOMAIN_FIELDS: ClassVar[Tuple[str, ...]] = (
        "company_id",
        "project_id",
        "task_id",
        "title",
        "color",
        "start_date",
        "end_date",
        "duration",
        "type",
        "active",
        "deleted_at",
    )
    LIST_FIELDS: ClassVar[Tuple[str, ...]] = ("team_member_ids",)
    UPDATE_FACETS: ClassVar[Tuple[str, ...]] = ("start_date", "end_date", "duration", "team_member_ids")


__all__ = ["CalendarEvent", "EVENT_TYPE_PROJECT", "EVENT_TYPE_TASK"]
