"""SQLModel table for company team members."""

from __future__ import annotations

from typing import ClassVar, Optional, Tuple

from sqlmodel import Field

from core.statuses import ROLE_FIELD
from models.base import SyncedRecord


class User(SyncedRecord, table=True):
    id: str = Field(primary_key=True)
    company_id: str = Field(default="", index=True)
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: Optional[str] = None
    role: str = ROLE_FIELD
    user_color: str = "#59779F"
    profile_image_url: Optional[str] = None
    home_address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_active: bool = True

    ENTITY: ClassVar[str] = "user"
    DOMAIN_FIELDS: ClassVar[Tuple[str, ...]] = (
        "company_id",
        "first_name",
        "last_name",
        "email",
        "phone",
        "role",
        "user_color",
        "profile_image_url",
        "home_address",
        "latitude",
        "longitude",
        "is_active",
        "deleted_at",
    )
    UPDATE_FACETS: ClassVar[Tuple[str, ...]] = ("first_name", "last_name", "phone")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


__all__ = ["User"]
