from datetime import timedelta

from models import CalendarEvent, Project, ProjectTask, TaskType
from services.deletion_reconciler import DeletionReconciler
from utils.datetime_utils import utc_now


def _days_ago(days: int):
    return utc_now() - timedelta(days=days)


def _seed_project(store, project_id="p-1", synced=1, tasks=2):
    project = Project(id=project_id, company_id="c-1", title="Deck", last_synced_at=_days_ago(synced))
    rows = [project, CalendarEvent(id=f"{project_id}-ev", company_id="c-1", project_id=project_id)]
    for index in range(tasks):
        task_id = f"{project_id}-t{index}"
        rows.append(
            ProjectTask(
                id=task_id,
                company_id="c-1",
                project_id=project_id,
                calendar_event_id=f"{task_id}-ev",
                last_synced_at=_days_ago(synced),
            )
        )
        rows.append(
            CalendarEvent(id=f"{task_id}-ev", company_id="c-1", project_id=project_id, task_id=task_id, type="task")
        )
    store.save(*rows)


def test_never_synced_record_is_never_deleted(store):
    store.save(Project(id="tmp-1", company_id="c-1", needs_sync=True, last_synced_at=None))

    deleted = DeletionReconciler(store).reconcile_deletions(Project, [])

    assert deleted == 0
    assert store.get(Project, "tmp-1").deleted_at is None


def test_absent_synced_record_is_soft_deleted(store):
    _seed_project(store, "p-1", tasks=0)
    _seed_project(store, "p-2", tasks=0)

    deleted = DeletionReconciler(store).reconcile_deletions(Project, ["p-2"])

    assert deleted == 1
    assert store.get(Project, "p-1").deleted_at is not None
    assert store.get(Project, "p-2").deleted_at is None


def test_project_deletion_cascades_to_tasks_and_events(store):
    _seed_project(store, "p-1", tasks=3)

    DeletionReconciler(store).reconcile_deletions(Project, [])

    project = store.get(Project, "p-1")
    tasks = store.fetch(ProjectTask, include_deleted=True)
    events = store.fetch(CalendarEvent, include_deleted=True)
    assert len(tasks) == 3
    assert all(task.deleted_at == project.deleted_at for task in tasks)
    assert len(events) == 4
    assert all(event.deleted_at is not None for event in events)


def test_task_deletion_cascades_to_its_event_only(store):
    _seed_project(store, "p-1", tasks=2)

    DeletionReconciler(store).reconcile_deletions(ProjectTask, ["p-1-t1"])

    assert store.get(CalendarEvent, "p-1-t0-ev").deleted_at is not None
    assert store.get(CalendarEvent, "p-1-t1-ev").deleted_at is None
    assert store.get(CalendarEvent, "p-1-ev").deleted_at is None


def test_record_outside_grace_window_is_kept(store):
    _seed_project(store, "p-old", synced=40, tasks=0)

    deleted = DeletionReconciler(store, grace_days=30).reconcile_deletions(Project, [])

    assert deleted == 0
    assert store.get(Project, "p-old").deleted_at is None


def test_grace_window_can_be_disabled(store):
    _seed_project(store, "p-old", synced=40, tasks=0)

    deleted = DeletionReconciler(store).reconcile_deletions(Project, [], grace_days=None)

    assert deleted == 1


def test_default_task_type_is_protected(store):
    store.save(
        TaskType(id="tt-default", company_id="c-1", is_default=True, last_synced_at=_days_ago(1)),
        TaskType(id="tt-custom", company_id="c-1", last_synced_at=_days_ago(1)),
    )

    deleted = DeletionReconciler(store).reconcile_deletions(TaskType, [])

    assert deleted == 1
    assert store.get(TaskType, "tt-default").deleted_at is None
    assert store.get(TaskType, "tt-custom").deleted_at is not None


def test_criteria_limit_candidates_to_scope(store):
    store.save(
        Project(id="p-a", company_id="c-1", last_synced_at=_days_ago(1)),
        Project(id="p-b", company_id="c-2", last_synced_at=_days_ago(1)),
    )

    DeletionReconciler(store).reconcile_deletions(Project, [], Project.company_id == "c-1")

    assert store.get(Project, "p-a").deleted_at is not None
    assert store.get(Project, "p-b").deleted_at is None


def test_nothing_to_delete_returns_zero(store):
    assert DeletionReconciler(store).reconcile_deletions(Project, ["anything"]) == 0


def test_row_with_unpushed_edit_is_kept(store):
    project = Project(id="p-1", company_id="c-1", title="Deck", last_synced_at=_days_ago(1))
    project.title = "Deck and railing"
    project.mark_dirty("title")
    store.save(project)

    deleted = DeletionReconciler(store).reconcile_deletions(Project, [])

    kept = store.get(Project, "p-1")
    assert deleted == 0
    assert kept.deleted_at is None
    assert kept.needs_sync is True
    assert kept.get_pending_fields() == ["title"]
