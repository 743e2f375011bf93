from models import Client, Project, ProjectTask
from models.records import ClientRecord, ProjectRecord, TaskRecord
from services.cache import IMAGES
from services.upsert_engine import UpsertEngine


def _project(**overrides):
    data = {
        "id": "p-1",
        "companyId": "c-1",
        "title": "Kitchen remodel",
        "status": "In Progress",
        "teamMemberIds": ["u-1", "u-2"],
        "projectImageUrls": ["img-a", "img-b"],
    }
    data.update(overrides)
    return ProjectRecord.model_validate(data)


def _domain(project):
    return {field: getattr(project, field) for field in Project.DOMAIN_FIELDS} | {
        "team_member_ids": project.team_member_ids,
        "project_image_urls": project.project_image_urls,
        "needs_sync": project.needs_sync,
    }


def test_upsert_inserts_new_record_as_synced(store, cache):
    engine = UpsertEngine(store, cache)

    engine.upsert(_project())

    local = store.get(Project, "p-1")
    assert local is not None
    assert local.title == "Kitchen remodel"
    assert local.status == "In Progress"
    assert local.get_ids("team_member_ids") == ["u-1", "u-2"]
    assert local.needs_sync is False
    assert local.last_synced_at is not None


def test_upsert_twice_is_idempotent(store, cache):
    engine = UpsertEngine(store, cache)
    record = _project()

    engine.upsert(record)
    first = _domain(store.get(Project, "p-1"))
    engine.upsert(record)
    second = _domain(store.get(Project, "p-1"))

    assert first == second
    assert len(store.fetch(Project)) == 1


def test_pending_local_edit_wins_over_remote(store, cache):
    engine = UpsertEngine(store, cache)
    engine.upsert(_project())
    local = store.get(Project, "p-1")
    local.status = "Completed"
    local.mark_dirty("status")
    store.save(local)

    engine.upsert(_project(status="Accepted", title="Renamed remotely"))

    after = store.get(Project, "p-1")
    assert after.status == "Completed"
    assert after.title == "Kitchen remodel"
    assert after.needs_sync is True


def test_pending_record_still_takes_remote_lists(store, cache):
    engine = UpsertEngine(store, cache)
    engine.upsert(_project())
    local = store.get(Project, "p-1")
    local.notes = "call before arriving"
    local.mark_dirty("notes")
    store.save(local)

    engine.upsert(_project(teamMemberIds=["u-3"]))

    after = store.get(Project, "p-1")
    assert after.get_ids("team_member_ids") == ["u-3"]
    assert after.notes == "call before arriving"


def test_pending_list_edit_is_not_replaced(store, cache):
    engine = UpsertEngine(store, cache)
    engine.upsert(_project())
    local = store.get(Project, "p-1")
    local.set_ids("team_member_ids", ["u-9"])
    local.mark_dirty("team_member_ids")
    store.save(local)

    engine.upsert(_project(teamMemberIds=["u-3"]))

    assert store.get(Project, "p-1").get_ids("team_member_ids") == ["u-9"]


def test_removed_images_are_evicted_even_when_pending(store, cache):
    engine = UpsertEngine(store, cache)
    engine.upsert(_project())
    cache.set(IMAGES, "img-a", b"...")
    cache.set(IMAGES, "img-b", b"...")
    local = store.get(Project, "p-1")
    local.mark_dirty("status")
    store.save(local)

    engine.upsert(_project(projectImageUrls=["img-b"]))

    assert not cache.contains(IMAGES, "img-a")
    assert cache.contains(IMAGES, "img-b")


def test_missing_fields_fall_back_to_declared_defaults(store, cache):
    engine = UpsertEngine(store, cache)

    engine.upsert_many(
        [
            TaskRecord.model_validate({"id": "t-1", "projectId": "p-1", "status": None, "taskColor": None}),
            ClientRecord.model_validate({"id": "cl-1", "name": None}),
        ]
    )

    task = store.get(ProjectTask, "t-1")
    assert task.status == "Booked"
    assert task.task_color == "#59779F"
    assert store.get(Client, "cl-1").name == "Unknown Client"
