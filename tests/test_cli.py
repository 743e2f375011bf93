import pytest

import main
from core.errors import NotConnected
from models import Project


def test_scoped_commands_need_a_target():
    with pytest.raises(SystemExit):
        main.parse_args(["project-tasks"])


def test_parse_args_defaults():
    args = main.parse_args(["client", "cl-1", "--backend", "memory", "--offline"])

    assert args.command == "client"
    assert args.target == "cl-1"
    assert args.backend == "memory"
    assert args.offline is True
    assert args.interval == main.SYNC.auto_refresh_interval_sec


@pytest.mark.asyncio
async def test_offline_status_command_prints_summary(monkeypatch, capsys, store, state, repos):
    monkeypatch.setattr(main, "init_db", lambda: None)
    monkeypatch.setattr(main, "LocalStore", lambda: store)
    monkeypatch.setattr(main, "SyncStateStorage", lambda path: state)
    monkeypatch.setattr(main, "build_repositories", lambda backend: repos)

    code = await main.run(main.parse_args(["status", "--offline", "--company", "c-1", "--user", "u-1"]))

    out = capsys.readouterr().out
    assert code == 0
    assert "c-1 / u-1" in out
    assert "Pending edits:  0" in out
    assert state.get_scope() == {"company_id": "c-1", "user_id": "u-1"}


def _offline_cli(monkeypatch, store, state, repos):
    monkeypatch.setattr(main, "init_db", lambda: None)
    monkeypatch.setattr(main, "LocalStore", lambda: store)
    monkeypatch.setattr(main, "SyncStateStorage", lambda path: state)
    monkeypatch.setattr(main, "build_repositories", lambda backend: repos)


@pytest.mark.asyncio
async def test_flush_refuses_to_push_while_offline(monkeypatch, store, state, repos):
    _offline_cli(monkeypatch, store, state, repos)
    project = Project(id="tmp-1", company_id="c-1")
    project.mark_dirty()
    store.save(project)

    with pytest.raises(NotConnected):
        await main.run(main.parse_args(["flush", "--offline", "--backend", "memory"]))

    assert store.get(Project, "tmp-1").needs_sync is True
    assert repos["project"].calls == []


def test_offline_flush_exits_with_failure(monkeypatch, capsys, store, state, repos):
    _offline_cli(monkeypatch, store, state, repos)

    assert main.main(["flush", "--offline", "--backend", "memory"]) == 1
    assert "No network connection" in capsys.readouterr().err
