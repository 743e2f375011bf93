"""SQLModel tables for clients and their contact sub-clients."""

from __future__ import annotations

from typing import ClassVar, Optional, Tuple

from sqlmodel import Field

from models.base import SyncedRecord


class Client(SyncedRecord, table=True):
    id: str = Field(primary_key=True)
    company_id: str = Field(default="", index=True)
    name: str = "Unknown Client"
    email: Optional[str] = None
    phone_number: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    profile_image_url: Optional[str] = None
    notes: Optional[str] = None

    ENTITY: ClassVar[str] = "client"
    DOMAIN_FIELDS: ClassVar[Tuple[str, ...]] = (
        "company_id",
        "name",
        "email",
        "phone_number",
        "address",
        "latitude",
        "longitude",
        "profile_image_url",
        "notes",
        "deleted_at",
    )
    UPDATE_FACETS: ClassVar[Tuple[str, ...]] = ("name", "email", "phone_number", "address")


class SubClient(SyncedRecord, table=True):
    id: str = Field(primary_key=True)
    client_id: str = Field(default="", index=True)
    name: str = ""
    title: Optional[str] = None
    email: Optional[str] = None
    phone_number: Optional[str] = None
    address: Optional[str] = None

    ENTITY: ClassVar[str] = "sub_client"
    DOMAIN_FIELDS: ClassVar[Tuple[str, ...]] = (
        "client_id",
        "name",
        "title",
        "email",
        "phone_number",
        "address",
        "deleted_at",
    )
    UPDATE_FACETS: ClassVar[Tuple[str, ...]] = ("name", "title", "email", "phone_number", "address")


__all__ = ["Client", "SubClient"]
