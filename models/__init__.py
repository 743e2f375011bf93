"""ORM models exposed by the FieldSync replica."""
from .base import SyncedRecord
from .calendar_event import CalendarEvent
from .client import Client, SubClient
from .company import Company
from .project import Project
from .task import ProjectTask
from .task_type import TaskType
from .user import User

# parents before children; pulls and pending flushes both follow this order
SYNC_ORDER = (Company, User, Client, SubClient, TaskType, Project, ProjectTask, CalendarEvent)

MODELS_BY_ENTITY = {model.ENTITY: model for model in SYNC_ORDER}

__all__ = [
    "SyncedRecord",
    "Company",
    "User",
    "Client",
    "SubClient",
    "TaskType",
    "Project",
    "ProjectTask",
    "CalendarEvent",
    "SYNC_ORDER",
    "MODELS_BY_ENTITY",
]
