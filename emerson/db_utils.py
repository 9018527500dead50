"""Database helper utilities for ensuring schema consistency."""
from __future__ import annotations

from typing import Iterable, Set

from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError

from .extensions import db


def _get_column_names(table_name: str) -> Set[str]:
    inspector = inspect(db.engine)
    return {column["name"] for column in inspector.get_columns(table_name)}


def ensure_database_schema() -> None:
    """Ensure that the tables the ingestion pipeline writes to exist.

    Runs on every application start. Missing tables are created individually
    so databases created before the ingestion run bookkeeping was introduced
    keep their data, and the ``chapters.summary`` column is added when absent.
    """

    try:
        inspector = inspect(db.engine)
        table_names: Iterable[str] = inspector.get_table_names()

        if "projects" not in table_names:
            db.create_all()
            inspector = inspect(db.engine)
            table_names = inspector.get_table_names()

        # Import locally to avoid circular import issues during application setup.
        from .models import AppSetting, Chapter, CodexEntry, IngestionRun, Scene

        required_tables = {
            "codex_entries": CodexEntry.__table__,
            "chapters": Chapter.__table__,
            "scenes": Scene.__table__,
            "ingestion_runs": IngestionRun.__table__,
            "app_settings": AppSetting.__table__,
        }

        for table_name, table in required_tables.items():
            if table_name not in table_names:
                table.create(bind=db.engine)

        if "chapters" in table_names and "summary" not in _get_column_names("chapters"):
            with db.engine.begin() as connection:
                connection.execute(text("ALTER TABLE chapters ADD COLUMN summary TEXT"))
    except SQLAlchemyError:
        # Refuse to continue with a partially configured schema.
        raise
