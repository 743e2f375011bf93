"""Status, role and sync-priority vocabularies shared by models and sync code."""
from __future__ import annotations

from typing import Dict, Optional

PROJECT_STATUS_META: Dict[str, Dict[str, str]] = {
    "RFQ": {"label": "Request for quote", "color": "#BCBCBC"},
    "Estimated": {"label": "Estimated", "color": "#B5A381"},
    "Accepted": {"label": "Accepted", "color": "#9DB582"},
    "In Progress": {"label": "In progress", "color": "#8195B5"},
    "Completed": {"label": "Completed", "color": "#B58289"},
    "Closed": {"label": "Closed", "color": "#E9E9E9"},
    "Archived": {"label": "Archived", "color": "#A182B5"},
}

TASK_STATUS_META: Dict[str, Dict[str, str]] = {
    "Booked": {"label": "Booked", "color": "#A5B368"},
    "In Progress": {"label": "In progress", "color": "#8195B5"},
    "Completed": {"label": "Completed", "color": "#B58289"},
    "Cancelled": {"label": "Cancelled", "color": "#50535A"},
}

DEFAULT_PROJECT_STATUS = "RFQ"
DEFAULT_TASK_STATUS = "Booked"

ROLE_ADMIN = "Admin"
ROLE_OFFICE = "Office Crew"
ROLE_FIELD = "Field Crew"

_ROLE_ALIASES = {
    "admin": ROLE_ADMIN,
    "office crew": ROLE_OFFICE,
    "office_crew": ROLE_OFFICE,
    "officecrew": ROLE_OFFICE,
    "field crew": ROLE_FIELD,
    "field_crew": ROLE_FIELD,
    "fieldcrew": ROLE_FIELD,
}

# Pending-mutation ordering hints, higher flushes first.
SYNC_PRIORITY_DEFAULT = 0
SYNC_PRIORITY_LOW = 1
SYNC_PRIORITY_NOTES = 2
SYNC_PRIORITY_STATUS = 3


def _match(value: Optional[str], known: Dict[str, Dict[str, str]], fallback: str) -> str:
    if not value:
        return fallback
    lowered = str(value).strip().lower().replace("_", " ")
    for name in known:
        if name.lower() == lowered:
            return name
    if lowered in {"inprogress", "in-progress"}:
        return "In Progress" if "In Progress" in known else fallback
    return fallback


def normalize_project_status(value: Optional[str]) -> str:
    return _match(value, PROJECT_STATUS_META, DEFAULT_PROJECT_STATUS)


def normalize_task_status(value: Optional[str]) -> str:
    return _match(value, TASK_STATUS_META, DEFAULT_TASK_STATUS)


def normalize_role(value: Optional[str], *, is_admin: bool = False) -> str:
    """Admin membership wins over the remote employee type."""
    if is_admin:
        return ROLE_ADMIN
    if not value:
        return ROLE_FIELD
    return _ROLE_ALIASES.get(str(value).strip().lower(), ROLE_FIELD)


def sees_all_company_projects(role: Optional[str]) -> bool:
    return role in {ROLE_ADMIN, ROLE_OFFICE}


__all__ = [
    "PROJECT_STATUS_META",
    "TASK_STATUS_META",
    "DEFAULT_PROJECT_STATUS",
    "DEFAULT_TASK_STATUS",
    "ROLE_ADMIN",
    "ROLE_OFFICE",
    "ROLE_FIELD",
    "SYNC_PRIORITY_DEFAULT",
    "SYNC_PRIORITY_LOW",
    "SYNC_PRIORITY_NOTES",
    "SYNC_PRIORITY_STATUS",
    "normalize_project_status",
    "normalize_task_status",
    "normalize_role",
    "sees_all_company_projects",
]
