import asyncio
import json
from datetime import timedelta

import pytest

from core.errors import AlreadySyncing, MissingScopeIdentifier, NotConnected, RemoteCallFailed, RemoteHTTPError
from models import CalendarEvent, Client, Company, Project, ProjectTask, SubClient, TaskType, User
from models.records import (
    CalendarEventRecord,
    ClientRecord,
    CompanyRecord,
    ProjectRecord,
    SubClientRecord,
    TaskRecord,
    TaskTypeRecord,
    UserRecord,
)
from services.entity_repository import InMemoryEntityRepository
from services.sync_orchestrator import SyncOrchestrator
from services.sync_status import FAILED, IDLE
from utils.datetime_utils import utc_now


class SlowRepository(InMemoryEntityRepository):
    async def fetch_one(self, record_id):
        await asyncio.sleep(0.01)
        return await super().fetch_one(record_id)


class BrokenRepository(InMemoryEntityRepository):
    async def fetch_all(self, scope, since=None):
        raise RemoteHTTPError(502, "bad gateway")


class CrashingRepository(InMemoryEntityRepository):
    async def fetch_all(self, scope, since=None):
        raise RuntimeError("decoder blew up")


def _seed_remote(repos):
    repos["company"].put(
        CompanyRecord(id="c-1", name="Acme", admin_ids=["u-admin"], default_project_color="#112233")
    )
    repos["user"].put(UserRecord(id="u-admin", company_id="c-1", first_name="Ada", role="Field Crew"))
    repos["user"].put(UserRecord(id="u-field", company_id="c-1", first_name="Fin", role="field_crew"))
    repos["client"].put(ClientRecord(id="cl-1", company_id="c-1", name="Smith"))
    repos["sub_client"].put(SubClientRecord(id="sc-1", client_id="cl-1", name="Jo Smith"))
    repos["task_type"].put(TaskTypeRecord(id="tt-1", company_id="c-1", display="Framing"))
    repos["project"].put(ProjectRecord(id="p-1", company_id="c-1", client_id="cl-1", team_member_ids=["u-field"]))
    repos["project"].put(ProjectRecord(id="p-2", company_id="c-1"))
    repos["task"].put(TaskRecord(id="t-1", company_id="c-1", project_id="p-1", task_type_id="tt-1"))
    repos["calendar_event"].put(
        CalendarEventRecord(id="e-p1", company_id="c-1", project_id="p-1", type="project", color="#000000")
    )
    repos["calendar_event"].put(
        CalendarEventRecord(id="e-t1", company_id="c-1", project_id="p-1", task_id="t-1", type="task", color="#ABCDEF")
    )


@pytest.fixture()
def orchestrator(repos, store, connectivity, cache, state):
    _seed_remote(repos)
    return SyncOrchestrator(
        repos,
        store=store,
        connectivity=connectivity,
        cache=cache,
        state=state,
        company_id="c-1",
        user_id="u-admin",
    )


@pytest.mark.asyncio
async def test_full_sync_pulls_every_entity_and_links(orchestrator, store, state):
    progress = []
    orchestrator.status.subscribe(lambda status: progress.append(status.progress))

    await orchestrator.full_sync()

    assert store.get(User, "u-admin").role == "Admin"
    assert store.get(User, "u-field").role == "Field Crew"
    assert store.get(SubClient, "sc-1").client_id == "cl-1"
    assert {p.id for p in store.fetch(Project)} == {"p-1", "p-2"}
    assert store.get(ProjectTask, "t-1").task_type_id == "tt-1"
    assert store.get(CalendarEvent, "e-p1").color == "#112233"
    assert store.get(CalendarEvent, "e-t1").color == "#ABCDEF"
    project = store.get(Project, "p-1")
    assert orchestrator.linker.graph.related(project, "client").id == "cl-1"
    assert orchestrator.status.current.progress == 1.0
    assert orchestrator.state_name == IDLE
    assert 0.15 in progress and 0.95 in progress
    assert state.get_last_full_sync() is not None
    assert orchestrator.is_syncing is False


@pytest.mark.asyncio
async def test_concurrent_full_syncs_are_single_flight(orchestrator, repos):
    slow = SlowRepository("company")
    slow.records = repos["company"].records
    slow.modified = repos["company"].modified
    repos["company"] = slow

    results = await asyncio.gather(orchestrator.full_sync(), orchestrator.full_sync(), return_exceptions=True)

    assert sum(1 for result in results if result is None) == 1
    assert sum(1 for result in results if isinstance(result, AlreadySyncing)) == 1
    assert orchestrator.is_syncing is False


@pytest.mark.asyncio
async def test_entity_failure_aborts_pass_and_keeps_earlier_commits(orchestrator, repos, store):
    repos["task_type"] = BrokenRepository("task_type")

    with pytest.raises(RemoteCallFailed) as excinfo:
        await orchestrator.full_sync()

    assert excinfo.value.entity == "task_type"
    assert store.get(Client, "cl-1") is not None
    assert store.fetch(Project) == []
    assert orchestrator.status.current.has_error is True
    assert orchestrator.state_name == FAILED
    assert orchestrator.is_syncing is False


@pytest.mark.asyncio
async def test_failed_state_allows_a_new_pass(orchestrator, repos, store):
    healthy = repos["task_type"]
    repos["task_type"] = BrokenRepository("task_type")
    with pytest.raises(RemoteCallFailed):
        await orchestrator.full_sync()

    repos["task_type"] = healthy
    await orchestrator.full_sync()

    assert orchestrator.state_name == IDLE
    assert store.get(TaskType, "tt-1") is not None


@pytest.mark.asyncio
async def test_offline_direct_call_raises_and_trigger_is_noop(orchestrator, connectivity):
    connectivity.set_connected(False)

    with pytest.raises(NotConnected):
        await orchestrator.full_sync()
    assert await orchestrator.trigger_background_sync() is False


@pytest.mark.asyncio
async def test_missing_company_id_is_reported(repos, store, connectivity, state):
    orchestrator = SyncOrchestrator(repos, store=store, connectivity=connectivity, state=state)

    with pytest.raises(MissingScopeIdentifier) as excinfo:
        await orchestrator.full_sync()

    assert excinfo.value.scope == "company"
    assert orchestrator.is_syncing is False


@pytest.mark.asyncio
async def test_app_launch_awaits_critical_path_and_detaches_the_rest(orchestrator, repos, store):
    repos["client"] = BrokenRepository("client")

    await orchestrator.app_launch_sync()

    assert store.get(Company, "c-1") is not None
    assert store.get(CalendarEvent, "e-p1") is not None
    await orchestrator.wait_for_background()
    assert store.get(ProjectTask, "t-1") is not None
    assert store.get(TaskType, "tt-1") is not None
    assert store.get(Client, "cl-1") is None
    assert orchestrator.status.current.has_error is False


@pytest.mark.asyncio
async def test_background_refresh_is_scoped_and_never_deletes(orchestrator, repos, store, state):
    await orchestrator.full_sync()
    watermark = state.last_successful_sync()
    del repos["project"].records["p-2"]
    repos["project"].put(ProjectRecord(id="p-3", company_id="c-1"), modified=utc_now() + timedelta(seconds=5))

    await orchestrator.background_refresh()

    assert store.get(Project, "p-2").deleted_at is None
    assert store.get(Project, "p-3") is not None
    scope, since = repos["project"].calls[-1][1:]
    assert since == watermark
    assert state.last_successful_sync() >= watermark


@pytest.mark.asyncio
async def test_field_crew_only_pulls_assigned_projects(repos, store, connectivity, cache, state):
    _seed_remote(repos)
    orchestrator = SyncOrchestrator(
        repos, store=store, connectivity=connectivity, cache=cache, state=state, company_id="c-1", user_id="u-field"
    )

    await orchestrator.full_sync()

    assert [p.id for p in store.fetch(Project)] == ["p-1"]


@pytest.mark.asyncio
async def test_full_sync_reconciles_remote_deletions(orchestrator, repos, store):
    await orchestrator.full_sync()
    del repos["project"].records["p-1"]
    del repos["task"].records["t-1"]
    del repos["calendar_event"].records["e-p1"]
    del repos["calendar_event"].records["e-t1"]

    await orchestrator.full_sync()

    assert store.get(Project, "p-1").deleted_at is not None
    assert store.get(ProjectTask, "t-1").deleted_at is not None
    assert store.get(CalendarEvent, "e-t1").deleted_at is not None


@pytest.mark.asyncio
async def test_refresh_user_remembers_missing_ids(orchestrator, repos):
    assert await orchestrator.refresh_user("u-nobody") is None
    assert await orchestrator.refresh_user("u-nobody") is None

    lookups = [call for call in repos["user"].calls if call == ("fetch_one", "u-nobody")]
    assert len(lookups) == 1


@pytest.mark.asyncio
async def test_refresh_single_client_reconciles_its_contacts(orchestrator, repos, store):
    await orchestrator.full_sync()
    del repos["sub_client"].records["sc-1"]
    repos["sub_client"].put(SubClientRecord(id="sc-2", client_id="cl-1", name="Pat Smith"))

    client = await orchestrator.refresh_single_client("cl-1")

    assert client.name == "Smith"
    assert store.get(SubClient, "sc-1").deleted_at is not None
    assert store.get(SubClient, "sc-2") is not None


@pytest.mark.asyncio
async def test_sync_project_tasks_pulls_one_project(orchestrator, repos, store):
    count = await orchestrator.sync_project_tasks("p-1")

    assert count == 1
    assert store.get(ProjectTask, "t-1") is not None
    assert store.get(CalendarEvent, "e-t1") is not None


@pytest.mark.asyncio
async def test_retry_sync_reports_instead_of_raising(orchestrator, repos):
    repos["user"] = BrokenRepository("user")

    assert await orchestrator.retry_sync() is False
    assert orchestrator.status.current.has_error is True

    repos["user"] = InMemoryEntityRepository("user", [UserRecord(id="u-admin", company_id="c-1")])
    assert await orchestrator.retry_sync() is True
    assert orchestrator.status.current.has_error is False


@pytest.mark.asyncio
async def test_retry_sync_reports_unexpected_errors(orchestrator, repos):
    repos["client"] = CrashingRepository("client")

    assert await orchestrator.retry_sync() is False
    assert orchestrator.status.current.has_error is True
    assert orchestrator.state_name == FAILED
    assert orchestrator.is_syncing is False


@pytest.mark.asyncio
async def test_triggered_refresh_swallows_unexpected_errors(orchestrator, repos):
    await orchestrator.full_sync()
    repos["project"] = CrashingRepository("project")

    assert await orchestrator.trigger_background_sync() is False
    assert orchestrator.state_name == FAILED
    assert orchestrator.is_syncing is False


@pytest.mark.asyncio
async def test_company_color_change_repaints_project_events(orchestrator, repos, store):
    await orchestrator.full_sync()
    repos["company"].put(CompanyRecord(id="c-1", name="Acme", admin_ids=["u-admin"], default_project_color="#445566"))

    await orchestrator.sync_company()

    assert store.get(CalendarEvent, "e-p1").color == "#445566"
    assert store.get(CalendarEvent, "e-t1").color == "#ABCDEF"


@pytest.mark.asyncio
async def test_connectivity_regained_triggers_refresh(orchestrator, connectivity, state):
    await orchestrator.full_sync()
    connectivity.set_connected(False)

    connectivity.set_connected(True)
    await orchestrator.wait_for_background()

    assert "lastRefreshAt" in json.loads(state.path.read_text(encoding="utf-8"))


@pytest.mark.asyncio
async def test_backgrounding_waits_for_in_flight_pass(orchestrator, repos):
    slow = SlowRepository("company")
    slow.records = repos["company"].records
    slow.modified = repos["company"].modified
    repos["company"] = slow

    pass_task = asyncio.ensure_future(orchestrator.full_sync())
    await asyncio.sleep(0)

    assert orchestrator.is_syncing is True
    assert await orchestrator.on_app_backgrounded() is True
    await pass_task
