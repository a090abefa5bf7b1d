"""Guides repository - guides are read-only to the reservation core."""

from psycopg2.extensions import cursor as PgCursor

from deltaroutes.domain.models import Guide, parse_language


def list_active_guides(cur: PgCursor) -> list[Guide]:
    """Active guides ordered by id, so selection is reproducible."""
    cur.execute(
        """
        SELECT id, languages
        FROM guides
        WHERE is_active = TRUE
        ORDER BY id ASC
        """
    )
    guides = []
    for guide_id, languages in cur.fetchall():
        parsed = (parse_language(code) for code in (languages or []))
        guides.append(
            Guide(
                id=str(guide_id),
                languages=frozenset(lang for lang in parsed if lang is not None),
            )
        )
    return guides
