"""Receipts of external events already handled (dedupe by source + id)."""

from psycopg2.extensions import cursor as PgCursor


def is_processed(cur: PgCursor, *, source: str, external_id: str) -> bool:
    cur.execute(
        "SELECT 1 FROM processed_events WHERE source = %s AND external_id = %s",
        (source, external_id),
    )
    return cur.fetchone() is not None


def record_processed(cur: PgCursor, *, source: str, external_id: str) -> bool:
    """Insert a receipt.

    Returns:
        False if the event was already recorded.
    """
    cur.execute(
        """
        INSERT INTO processed_events (source, external_id)
        VALUES (%s, %s)
        ON CONFLICT (source, external_id) DO NOTHING
        """,
        (source, external_id),
    )
    return cur.rowcount == 1
