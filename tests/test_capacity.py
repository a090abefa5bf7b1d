"""Tests for the capacity ledger (no DB: cursor is mocked)."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

from deltaroutes.domain.capacity import (
    SEAT_HOLDING_PREDICATE,
    committed_seats,
    committed_seats_by_session,
    compute_free_seats,
    free_seats,
    guide_loads,
)
from helpers import make_session

NOW = datetime(2026, 6, 1, 10, 0, tzinfo=timezone.utc)


class TestComputeFreeSeats:
    def test_remaining_seats(self):
        assert compute_free_seats(5, 3) == 2

    def test_never_negative(self):
        assert compute_free_seats(5, 8) == 0


class TestCommittedSeats:
    def test_sums_seat_holding_rows(self):
        cur = MagicMock()
        cur.fetchone.return_value = (3,)

        assert committed_seats(cur, session_id="s1", now=NOW) == 3

        sql, params = cur.execute.call_args[0]
        assert SEAT_HOLDING_PREDICATE in sql
        assert params == ("s1", NOW)

    def test_predicate_counts_confirmed_and_live_holds_only(self):
        assert "status = 'CONFIRMED'" in SEAT_HOLDING_PREDICATE
        assert "hold_expires_at > %s" in SEAT_HOLDING_PREDICATE
        assert "WAITING" not in SEAT_HOLDING_PREDICATE

    def test_free_seats_uses_session_total(self):
        cur = MagicMock()
        cur.fetchone.return_value = (3,)
        assert free_seats(cur, session=make_session(max_seats_total=5), now=NOW) == 2


class TestBatchQueries:
    def test_committed_by_session_empty_skips_query(self):
        cur = MagicMock()
        assert committed_seats_by_session(cur, session_ids=[], now=NOW) == {}
        cur.execute.assert_not_called()

    def test_committed_by_session_maps_rows(self):
        cur = MagicMock()
        cur.fetchall.return_value = [("s1", 4), ("s2", 1)]
        result = committed_seats_by_session(cur, session_ids=["s1", "s2", "s3"], now=NOW)
        assert result == {"s1": 4, "s2": 1}

    def test_guide_loads_empty_skips_query(self):
        cur = MagicMock()
        assert guide_loads(cur, session_id="s1", guide_ids=[], now=NOW) == {}
        cur.execute.assert_not_called()

    def test_guide_loads_maps_rows(self):
        cur = MagicMock()
        cur.fetchall.return_value = [("g1", 3)]
        assert guide_loads(cur, session_id="s1", guide_ids=["g1", "g2"], now=NOW) == {"g1": 3}
