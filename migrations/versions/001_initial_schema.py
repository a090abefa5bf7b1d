"""Initial booking schema (SQL-only).

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-16
"""

from __future__ import annotations

from pathlib import Path

from alembic import op


# revision identifiers, used by Alembic.
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

SQL_PATH = Path(__file__).resolve().parents[1] / "sql" / "001_initial.sql"


def upgrade() -> None:
    # Raw driver execution: the file holds several statements.
    op.get_bind().exec_driver_sql(SQL_PATH.read_text(encoding="utf-8"))


def downgrade() -> None:
    for table in (
        "processed_events",
        "payments",
        "reservations",
        "guides",
        "customers",
        "sessions",
        "experiences",
    ):
        op.execute(f"DROP TABLE IF EXISTS {table}")
