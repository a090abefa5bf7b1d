"""Database URL helpers for Alembic migrations.

Extracted so they can be tested without triggering alembic.context at import time.
"""

from __future__ import annotations

import os

from psycopg2.extensions import parse_dsn
from sqlalchemy.engine import URL, make_url

DRIVERNAME = "postgresql+psycopg2"


def dsn_to_url(dsn: str) -> URL:
    """Convert a libpq key=value DSN to a SQLAlchemy URL.

    A socket directory host (Cloud SQL ``/cloudsql/...``) moves to the query
    string; other libpq options (sslmode, ...) are kept as query parameters.
    """
    params = parse_dsn(dsn)

    password = params.pop("password", None) or os.environ.get("DB_PASSWORD") or None
    host = params.pop("host", None)
    port = params.pop("port", None)
    query = {}
    if host and host.startswith("/"):
        query["host"] = host
        host = None

    return URL.create(
        DRIVERNAME,
        username=params.pop("user", None),
        password=password,
        host=host,
        port=int(port) if port else None,
        database=params.pop("dbname", None),
        query={**params, **query},
    )


def database_url() -> str:
    """SQLAlchemy URL for DATABASE_URL (URL or libpq DSN form).

    Raises:
        RuntimeError: If DATABASE_URL is not set.
    """
    raw = os.environ.get("DATABASE_URL")
    if not raw:
        raise RuntimeError("DATABASE_URL is required to run migrations")

    if "://" not in raw:
        url = dsn_to_url(raw)
    else:
        url = make_url(raw).set(drivername=DRIVERNAME)
        db_password = os.environ.get("DB_PASSWORD")
        if db_password and not url.password:
            url = url.set(password=db_password)

    return url.render_as_string(hide_password=False)
