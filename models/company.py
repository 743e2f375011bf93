"""SQLModel table for the tenant company."""

from __future__ import annotations

from datetime import datetime
from typing import ClassVar, Optional, Tuple

from sqlmodel import Field

from models.base import SyncedRecord


class Company(SyncedRecord, table=True):
    id: str = Field(primary_key=True)
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
    admin_ids: str = ""
    seated_employee_ids: str = ""
    team_member_ids: str = ""

    ENTITY: ClassVar[str] = "company"
    DOMAIN_FIELDS: ClassVar[Tuple[str, ...]] = (
        "name",
        "external_id",
        "logo_url",
        "phone",
        "email",
        "website",
        "address",
        "latitude",
        "longitude",
        "default_project_color",
        "subscription_status",
        "subscription_plan",
        "subscription_end",
        "max_seats",
        "deleted_at",
    )
    LIST_FIELDS: ClassVar[Tuple[str, ...]] = ("admin_ids", "seated_employee_ids", "team_member_ids")
    UPDATE_FACETS: ClassVar[Tuple[str, ...]] = ("name", "phone", "email", "website", "address")


__all__ = ["Company"]
