"""Tiny home-grown migration helpers.

Older databases were created with a profiles table holding only the sign-up
columns and a lesson_progress table without the uniqueness constraint the
progress upsert depends on. The steps here are additive and idempotent; nothing
is ever dropped.
"""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import inspect, text
from sqlalchemy.engine import Connection

logger = logging.getLogger(__name__)

PROFILE_COLUMNS: dict[str, str] = {
    "email": "TEXT",
    "full_name": "TEXT",
    "avatar_url": "TEXT",
    "bio": "TEXT",
    "location": "TEXT",
    "website": "TEXT",
    "company": "TEXT",
    "role": "TEXT",
    "updated_at": "TEXT",
}


def _column_names(conn: Connection, table: str) -> set[str]:
    inspector = inspect(conn)
    if not inspector.has_table(table):
        return set()
    return {column["name"] for column in inspector.get_columns(table)}


def _add_column(conn: Connection, table: str, col_def: str) -> None:
    """ALTER TABLE ADD COLUMN helper."""
    conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {col_def}"))


def _create_index_if_not_exists(conn: Connection, table: str, name: str, cols: Iterable[str], unique: bool = False) -> None:
    """Build an index only if it hasn't already been defined."""

    cols_sql = ", ".join(cols)
    unique_sql = "UNIQUE " if unique else ""
    conn.execute(text(f"CREATE {unique_sql}INDEX IF NOT EXISTS {name} ON {table} ({cols_sql})"))


def run_migrations(conn: Connection) -> None:
    """Bring the schema up-to-date with the expectations of the code."""

    profile_cols = _column_names(conn, "profiles")
    if profile_cols:
        for name, dtype in PROFILE_COLUMNS.items():
            if name not in profile_cols:
                logger.info("migrate.add_column", extra={"extra_data": {"table": "profiles", "column": name}})
                _add_column(conn, "profiles", f"{name} {dtype}")

    if _column_names(conn, "lesson_progress"):
        _create_index_if_not_exists(
            conn, "lesson_progress", "ix_lesson_progress_user_lesson_unique", ["user_id", "lesson_slug"], unique=True
        )

    if _column_names(conn, "entitlements"):
        _create_index_if_not_exists(
            conn, "entitlements", "ix_entitlements_user_course_unique", ["user_id", "course_slug"], unique=True
        )
