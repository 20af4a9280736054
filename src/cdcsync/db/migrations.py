"""
Schema migrations for the application DB.

create_all() only creates missing tables; anything added to an existing table
afterwards goes here. Each step is idempotent and checks the live schema first.

Called automatically from init_schema() after create_all().
"""
from typing import Sequence

from sqlalchemy import inspect, text


def run_migrations(engine) -> None:
    """Apply all pending schema migrations.

    Args:
        engine: SQLAlchemy engine (SQLModel create_engine result).
    """
    with engine.connect() as conn:
        # TaskLog: logs are always read per task in creation order
        _create_index_if_missing(
            conn, "tasklog", "ix_tasklog_task_id_created_at", ["task_id", "created_at"]
        )
        # SyncTask: history listing filters by status and sorts by start time
        _create_index_if_missing(
            conn, "synctask", "ix_synctask_status_started_at", ["status", "started_at"]
        )
        conn.commit()


def _create_index_if_missing(
    conn, table: str, index_name: str, columns: Sequence[str]
) -> None:
    """Create a plain (non-unique) index unless one with that name exists.

    Args:
        conn: SQLAlchemy connection.
        table: Table name as created by SQLModel (lower-case class name).
        index_name: Name of the index to create.
        columns: Indexed columns, in order.
    """
    existing = {ix["name"] for ix in inspect(conn).get_indexes(table)}
    if index_name not in existing:
        conn.execute(
            text(f"CREATE INDEX {index_name} ON {table} ({', '.join(columns)})")
        )
