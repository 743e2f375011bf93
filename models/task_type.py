"""SQLModel table for company task templates."""

from __future__ import annotations

from typing import ClassVar, Optional, Tuple

from sqlmodel import Field

from models.base import SyncedRecord


class TaskType(SyncedRecord, table=True):
    id: str = Field(primary_key=True)
    company_id: str = Field(default="", index=True)
    display: str = "Task"
    color: str = "#59779F"
    icon: Optional[str] = None
    is_default: bool = False
    display_order: int = 0

    ENTITY: ClassVar[str] = "task_type"
    DOMAIN_FIELDS: ClassVar[Tuple[str, ...]] = (
        "company_id",
        "display",
        "color",
        "is_default",
        "display_order",
        "deleted_at",
    )
    # default templates ship with every company and are never inferred as deleted
    PROTECTED_FIELD: ClassVar[Optional[str]] = "is_default"
    UPDATE_FACETS: ClassVar[Tuple[str, ...]] = ("display", "color")


__all__ = ["TaskType"]
