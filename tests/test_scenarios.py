"""End-to-end booking scenarios (requires Postgres)."""

import os
import uuid
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from deltaroutes.infra.db import txn
from deltaroutes.infra.time import utc_now
from helpers import (
    apply_schema,
    cleanup,
    force_hold_expiry,
    payment_row,
    reservation_row,
    seed_guide,
    seed_session,
    set_checkout_session,
    unique_email,
)

pytestmark = pytest.mark.skipif(
    not os.environ.get("DATABASE_URL"),
    reason="DATABASE_URL not set - skipping booking scenario tests",
)


@pytest.fixture(scope="module")
def guide_id():
    apply_schema()
    gid = seed_guide(languages=("DE",))
    yield gid
    cleanup([], [gid])


@pytest.fixture
def session_ids():
    ids = []
    yield ids
    cleanup(ids)


def book(session_id, adults=3, minors=0, now=None):
    from deltaroutes.domain.models import Language, Party
    from deltaroutes.domain.reservations import ReservationRequest, create_reservation

    return create_reservation(
        ReservationRequest(
            session_id=session_id,
            customer_email=unique_email(),
            customer_name="Test Guest",
            party=Party(adults, minors),
            tour_language=Language.EN,
        ),
        now=now,
    )


def free_seats_now(session_id, now=None):
    from deltaroutes.domain.capacity import free_seats
    from deltaroutes.infra.repositories.sessions_repository import get_session

    with txn() as cur:
        session = get_session(cur, session_id)
        return free_seats(cur, session=session, now=now or utc_now())


def paid_snapshot(checkout_session_id, reservation_id, amount_total):
    from deltaroutes.domain.models import CheckoutSnapshot

    return CheckoutSnapshot(
        id=checkout_session_id,
        payment_status="paid",
        amount_total=amount_total,
        currency="eur",
        payment_intent_id=f"pi_{checkout_session_id}",
        reservation_id=reservation_id,
    )


class TestCreation:
    def test_hold_then_waiting(self, guide_id, session_ids):
        """5 seats: first party of 3 holds, second party of 3 waits."""
        sid = seed_session(max_seats_total=5)
        session_ids.append(sid)

        first = book(sid)
        assert first.kind.value == "HOLD"
        assert free_seats_now(sid) == 2

        second = book(sid)
        assert second.kind.value == "WAITING"
        assert second.hold_expires_at is None
        assert reservation_row(second.reservation_id)["guide_id"] is None

    def test_hold_window(self, guide_id, session_ids):
        sid = seed_session()
        session_ids.append(sid)
        now = utc_now()

        result = book(sid, adults=2, minors=1, now=now)

        assert result.hold_expires_at == now + timedelta(minutes=15)
        row = reservation_row(result.reservation_id)
        assert row["hold_expires_at"] == result.hold_expires_at
        assert row["total_pax"] == 3
        assert row["guide_id"] is not None

        payment = payment_row(result.reservation_id)
        assert payment["status"] == "REQUIRES_PAYMENT"
        assert payment["amount_cents"] == 2 * 2500 + 1000

    def test_free_session_needs_no_payment(self, guide_id, session_ids):
        sid = seed_session(requires_payment=False)
        session_ids.append(sid)

        result = book(sid, adults=1)
        assert payment_row(result.reservation_id)["status"] == "NOT_REQUIRED"

    def test_duplicate_customer_rejected(self, guide_id, session_ids):
        from deltaroutes.domain.errors import DuplicateReservationError
        from deltaroutes.domain.models import Language, Party
        from deltaroutes.domain.reservations import ReservationRequest, create_reservation

        sid = seed_session()
        session_ids.append(sid)
        request = ReservationRequest(
            session_id=sid,
            customer_email=unique_email(),
            customer_name="Test Guest",
            party=Party(1, 0),
            tour_language=Language.CA,
        )
        create_reservation(request)
        with pytest.raises(DuplicateReservationError):
            create_reservation(request)

    def test_closed_session_rejected(self, guide_id, session_ids):
        from deltaroutes.domain.errors import BookingClosedError

        start_at = utc_now() + timedelta(hours=1)
        sid = seed_session(start_at=start_at, booking_closes_at=start_at - timedelta(hours=2))
        session_ids.append(sid)

        with pytest.raises(BookingClosedError):
            book(sid)


class TestSweeper:
    def test_expired_hold_releases_seats(self, guide_id, session_ids):
        from deltaroutes.domain.sweeper import sweep_expired_holds

        sid = seed_session(max_seats_total=5)
        session_ids.append(sid)
        held = book(sid)
        assert free_seats_now(sid) == 2

        now = utc_now()
        force_hold_expiry(held.reservation_id, now - timedelta(seconds=1))
        # A lapsed hold stops counting before the sweep runs.
        assert free_seats_now(sid, now) == 5

        result = sweep_expired_holds(now=now, stripe_client=MagicMock())

        assert held.reservation_id in result["reservation_ids"]
        row = reservation_row(held.reservation_id)
        assert row["status"] == "EXPIRED"
        assert row["hold_expires_at"] is None
        assert payment_row(held.reservation_id)["status"] == "CANCELED"
        assert free_seats_now(sid) == 5

        again = sweep_expired_holds(now=now, stripe_client=MagicMock())
        assert held.reservation_id not in again["reservation_ids"]

    def test_live_hold_untouched(self, guide_id, session_ids):
        from deltaroutes.domain.sweeper import sweep_expired_holds

        sid = seed_session()
        session_ids.append(sid)
        held = book(sid)

        result = sweep_expired_holds(stripe_client=MagicMock())
        assert held.reservation_id not in result["reservation_ids"]
        assert reservation_row(held.reservation_id)["status"] == "HOLD"

    def test_expires_open_checkout_session(self, guide_id, session_ids):
        from deltaroutes.domain.sweeper import sweep_expired_holds

        sid = seed_session()
        session_ids.append(sid)
        held = book(sid)
        checkout_id = f"cs_test_{held.reservation_id}"
        set_checkout_session(held.reservation_id, checkout_id)
        now = utc_now()
        force_hold_expiry(held.reservation_id, now - timedelta(minutes=1))

        client = MagicMock()
        sweep_expired_holds(now=now, stripe_client=client)

        expired_ids = [c[0][0] for c in client.expire_checkout_session.call_args_list]
        assert checkout_id in expired_ids


class TestWaitlist:
    def test_claim_after_expiry(self, guide_id, session_ids):
        from deltaroutes.domain.sweeper import sweep_expired_holds
        from deltaroutes.domain.waitlist import claim_waiting

        sid = seed_session(max_seats_total=5)
        session_ids.append(sid)
        held = book(sid)
        waiting = book(sid)
        assert waiting.kind.value == "WAITING"

        now = utc_now()
        force_hold_expiry(held.reservation_id, now - timedelta(seconds=1))
        sweep_expired_holds(now=now, stripe_client=MagicMock())

        claimed = claim_waiting(waiting.reservation_id)

        row = reservation_row(waiting.reservation_id)
        assert row["status"] == "HOLD"
        assert row["guide_id"] is not None
        assert row["hold_expires_at"] == claimed.hold_expires_at
        assert payment_row(waiting.reservation_id)["status"] == "REQUIRES_PAYMENT"

    def test_claim_refused_without_seats(self, guide_id, session_ids):
        from deltaroutes.domain.errors import NoSeatsError
        from deltaroutes.domain.waitlist import claim_waiting

        sid = seed_session(max_seats_total=5)
        session_ids.append(sid)
        book(sid)
        waiting = book(sid)

        with pytest.raises(NoSeatsError):
            claim_waiting(waiting.reservation_id)
        assert reservation_row(waiting.reservation_id)["status"] == "WAITING"

    def test_join_is_idempotent(self, guide_id, session_ids):
        from deltaroutes.domain.models import Party
        from deltaroutes.domain.reservations import join_waitlist

        sid = seed_session()
        session_ids.append(sid)
        email = unique_email()

        first = join_waitlist(session_id=sid, customer_email=email, party=Party(2, 0))
        second = join_waitlist(session_id=sid, customer_email=email, party=Party(4, 0))

        assert first.created is True
        assert second.created is False
        assert second.reservation_id == first.reservation_id
        assert second.total_pax == 2


class TestPayments:
    def test_amount_mismatch_leaves_hold(self, guide_id, session_ids):
        from deltaroutes.domain.errors import PaymentIntegrityError
        from deltaroutes.domain.payments import confirm_paid_checkout

        sid = seed_session()
        session_ids.append(sid)
        held = book(sid)
        checkout_id = f"cs_test_{held.reservation_id}"
        set_checkout_session(held.reservation_id, checkout_id)

        with pytest.raises(PaymentIntegrityError):
            confirm_paid_checkout(paid_snapshot(checkout_id, held.reservation_id, 100))

        assert reservation_row(held.reservation_id)["status"] == "HOLD"
        assert payment_row(held.reservation_id)["status"] == "PENDING"

    def test_confirm_is_idempotent(self, guide_id, session_ids):
        from deltaroutes.domain.payments import confirm_paid_checkout

        sid = seed_session()
        session_ids.append(sid)
        held = book(sid)
        checkout_id = f"cs_test_{held.reservation_id}"
        set_checkout_session(held.reservation_id, checkout_id)
        snapshot = paid_snapshot(checkout_id, held.reservation_id, 3 * 2500)

        assert confirm_paid_checkout(snapshot)["status"] == "confirmed"
        assert confirm_paid_checkout(snapshot)["status"] == "already_confirmed"

        row = reservation_row(held.reservation_id)
        assert row["status"] == "CONFIRMED"
        assert row["hold_expires_at"] is None
        payment = payment_row(held.reservation_id)
        assert payment["status"] == "SUCCEEDED"
        assert payment["stripe_payment_intent_id"] == f"pi_{checkout_id}"

    def test_confirmed_is_never_expired(self, guide_id, session_ids):
        from deltaroutes.domain.payments import confirm_paid_checkout, expire_checkout
        from deltaroutes.domain.sweeper import sweep_expired_holds

        sid = seed_session()
        session_ids.append(sid)
        held = book(sid)
        checkout_id = f"cs_test_{held.reservation_id}"
        set_checkout_session(held.reservation_id, checkout_id)
        snapshot = paid_snapshot(checkout_id, held.reservation_id, 3 * 2500)
        confirm_paid_checkout(snapshot)

        expire_checkout(snapshot)
        sweep_expired_holds(stripe_client=MagicMock())

        assert reservation_row(held.reservation_id)["status"] == "CONFIRMED"
        assert free_seats_now(sid) == 2

    def test_payment_after_expiry_does_not_revive(self, guide_id, session_ids):
        from deltaroutes.domain.payments import confirm_paid_checkout
        from deltaroutes.domain.sweeper import sweep_expired_holds

        sid = seed_session()
        session_ids.append(sid)
        held = book(sid)
        checkout_id = f"cs_test_{held.reservation_id}"
        set_checkout_session(held.reservation_id, checkout_id)
        now = utc_now()
        force_hold_expiry(held.reservation_id, now - timedelta(seconds=1))
        sweep_expired_holds(now=now, stripe_client=MagicMock())

        result = confirm_paid_checkout(paid_snapshot(checkout_id, held.reservation_id, 3 * 2500))

        assert result["status"] == "ignored"
        assert reservation_row(held.reservation_id)["status"] == "EXPIRED"

    def test_poll_self_heals_missed_webhook(self, guide_id, session_ids):
        from deltaroutes.domain.payments import poll_payment_status

        sid = seed_session()
        session_ids.append(sid)
        held = book(sid)
        checkout_id = f"cs_test_{held.reservation_id}"
        set_checkout_session(held.reservation_id, checkout_id)

        client = MagicMock()
        client.retrieve_checkout_session.return_value = paid_snapshot(
            checkout_id, held.reservation_id, 3 * 2500
        )
        result = poll_payment_status(checkout_id, stripe_client=client)

        assert result["reservation_status"] == "CONFIRMED"
        assert result["reconciled"] is True
        assert reservation_row(held.reservation_id)["status"] == "CONFIRMED"

        # Settled state answers from the database alone.
        client.reset_mock()
        poll_payment_status(checkout_id, stripe_client=client)
        client.retrieve_checkout_session.assert_not_called()


class TestProcessedEvents:
    def test_record_once(self):
        from deltaroutes.infra.repositories.processed_events_repository import (
            is_processed,
            record_processed,
        )

        apply_schema()
        event_id = f"evt_test_{uuid.uuid4().hex}"
        with txn() as cur:
            assert not is_processed(cur, source="stripe", external_id=event_id)
            assert record_processed(cur, source="stripe", external_id=event_id) is True
            assert record_processed(cur, source="stripe", external_id=event_id) is False
            assert is_processed(cur, source="stripe", external_id=event_id)
            cur.execute(
                "DELETE FROM processed_events WHERE source = 'stripe' AND external_id = %s",
                (event_id,),
            )
