"""SQLModel table for projects (jobs)."""

from __future__ import annotations

from datetime import datetime
from typing import ClassVar, Dict, Optional, Tuple

from sqlmodel import Field

from core.statuses import DEFAULT_PROJECT_STATUS
from models.base import SyncedRecord


class Project(SyncedRecord, table=True):
    id: str = Field(primary_key=True)
    company_id: str = Field(default="", index=True)
    client_id: Optional[str] = Field(default=None, index=True)
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
    team_member_ids: str = ""
    project_image_urls: str = ""

    ENTITY: ClassVar[str] = "project"
    DOMAIN_FIELDS: ClassVar[Tuple[str, ...]] = (
        "company_id",
        "client_id",
        "title",
        "description",
        "notes",
        "address",
        "latitude",
        "longitude",
        "status",
        "start_date",
        "end_date",
        "duration",
        "all_day",
        "deleted_at",
    )
    LIST_FIELDS: ClassVar[Tuple[str, ...]] = ("team_member_ids", "project_image_urls")
    CACHE_NAMESPACES: ClassVar[Dict[str, str]] = {"project_image_urls": "images"}
    UPDATE_FACETS: ClassVar[Tuple[str, ...]] = ("status", "notes", "team_member_ids")


__all__ = ["Project"]
