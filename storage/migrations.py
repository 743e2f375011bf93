"""Ad-hoc database migrations for the local replica."""

from __future__ import annotations

from sqlalchemy import text

from models import SYNC_ORDER

ENVELOPE_COLUMNS = {
    "needs_sync": "BOOLEAN NOT NULL DEFAULT 0",
    "last_synced_at": "DATETIME",
    "deleted_at": "DATETIME",
    "sync_priority": "INTEGER NOT NULL DEFAULT 0",
    "pending_fields": "VARCHAR NOT NULL DEFAULT ''",
}


def _column_exists(conn, table: str, column: str) -> bool:
    result = conn.execute(text(f"PRAGMA table_info('{table}')"))
    return any(row[1] == column for row in result)


def _table_exists(conn, table: str) -> bool:
    result = conn.execute(
        text("SELECT name FROM sqlite_master WHERE type='table' AND name=:name"),
        {"name": table},
    )
    return result.first() is not None


def ensure_envelope_columns(conn, table: str) -> None:
    if not _table_exists(conn, table):
        return
    for name, ddl_type in ENVELOPE_COLUMNS.items():
        if not _column_exists(conn, table, name):
            conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {name} {ddl_type}"))


def ensure_pending_index(conn, table: str) -> None:
    if not _table_exists(conn, table):
        return
    conn.execute(
        text(
            f"""
            CREATE INDEX IF NOT EXISTS ix_{table}_pending
            ON {table} (needs_sync, sync_priority)
            """
        )
    )


def ensure_list_columns(conn) -> None:
    # replicas created before team lists were tracked on events and companies
    columns = {
        "calendarevent": {"team_member_ids": "VARCHAR NOT NULL DEFAULT ''"},
        "company": {
            "team_member_ids": "VARCHAR NOT NULL DEFAULT ''",
            "seated_employee_ids": "VARCHAR NOT NULL DEFAULT ''",
        },
    }
    for table, wanted in columns.items():
        if not _table_exists(conn, table):
            continue
        for name, ddl_type in wanted.items():
            if not _column_exists(conn, table, name):
                conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {name} {ddl_type}"))


def run_all(engine) -> None:
    with engine.begin() as conn:
        for model in SYNC_ORDER:
            table = model.__tablename__
            ensure_envelope_columns(conn, table)
            ensure_pending_index(conn, table)
        ensure_list_columns(conn)


__all__ = ["run_all"]
