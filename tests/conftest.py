from pathlib import Path
import sys

import pytest
from sqlmodel import Session

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from models.records import RECORD_TYPES
from services.cache import CacheService
from services.connectivity import ConnectivityMonitor
from services.entity_repository import InMemoryEntityRepository
from services.sync_state_storage import SyncStateStorage
from storage.db import create_memory_engine
from storage.local_store import LocalStore


@pytest.fixture()
def session_factory():
    engine = create_memory_engine()

    def factory():
        return Session(engine)

    yield factory
    engine.dispose()


@pytest.fixture()
def store(session_factory):
    return LocalStore(session_factory)


@pytest.fixture()
def cache():
    return CacheService()


@pytest.fixture()
def connectivity():
    return ConnectivityMonitor(connected=True)


@pytest.fixture()
def repos():
    return {entity: InMemoryEntityRepository(entity) for entity in RECORD_TYPES}


@pytest.fixture()
def state(tmp_path):
    return SyncStateStorage(tmp_path / "sync_state.json")
