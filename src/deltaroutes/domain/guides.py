"""Guide assignment - least-loaded guide with room for the party.

Every guide covers the base languages by contract, so language only affects
preference: a browser language outside the base set first tries guides who
speak it, then falls back to the whole active pool.
"""

from datetime import datetime

from psycopg2.extensions import cursor as PgCursor

from deltaroutes.domain.capacity import guide_loads
from deltaroutes.domain.models import Guide, Language, Session, is_base_language
from deltaroutes.infra.repositories.guides_repository import list_active_guides


def select_least_loaded(
    guide_ids: list[str],
    loads: dict[str, int],
    *,
    party_size: int,
    max_per_guide: int,
) -> str | None:
    """Pick the guide with the lowest load that still fits the party.

    Ties keep input order (``sorted`` is stable); callers pass guides ordered
    by id.
    """
    ranked = sorted(guide_ids, key=lambda gid: loads.get(gid, 0))
    for guide_id in ranked:
        if loads.get(guide_id, 0) + party_size <= max_per_guide:
            return guide_id
    return None


def preferred_guides(guides: list[Guide], language: Language | None) -> list[Guide]:
    """Guides matching a non-base language preference, else none."""
    if language is None or is_base_language(language):
        return []
    return [g for g in guides if g.speaks(language)]


def pick_guide(
    cur: PgCursor,
    *,
    session: Session,
    party_size: int,
    now: datetime,
    preferred_language: Language | None = None,
    candidates: list[Guide] | None = None,
) -> str | None:
    """Choose a guide for a party, or None when no guide has room.

    None means "no capacity", not an error.
    """
    if candidates is None:
        candidates = list_active_guides(cur)
    if not candidates:
        return None

    all_ids = [g.id for g in candidates]
    loads = guide_loads(cur, session_id=session.id, guide_ids=all_ids, now=now)

    tiers = [[g.id for g in preferred_guides(candidates, preferred_language)], all_ids]
    for tier in tiers:
        if not tier:
            continue
        chosen = select_least_loaded(
            tier,
            loads,
            party_size=party_size,
            max_per_guide=session.max_per_guide,
        )
        if chosen is not None:
            return chosen
    return None
