"""
Local schema migrations.

Databases written by earlier client releases lack some columns the sync
engine now relies on to resume correctly after a restart. Each migration is
an idempotent ALTER TABLE ADD COLUMN, run from build_engine() after
create_all() so fresh installs and upgraded devices converge.
"""
from sqlalchemy import text


def run_migrations(engine) -> None:
    """Apply all pending schema migrations.

    Safe to call multiple times. SQLite only (uses PRAGMA table_info).
    """
    with engine.connect() as conn:
        # Audit: server acknowledgement and last upload failure
        _add_column_if_missing(conn, "audit", "server_id", "INTEGER")
        _add_column_if_missing(conn, "audit", "last_error", "TEXT")

        # JobCard: push bookkeeping for local edits
        _add_column_if_missing(conn, "jobcard", "synced_at", "DATETIME")

        conn.commit()


def _add_column_if_missing(conn, table: str, column: str, col_type: str) -> None:
    result = conn.execute(text(f"PRAGMA table_info({table})"))
    existing_columns = {row[1] for row in result}
    if column not in existing_columns:
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {col_type}"))
