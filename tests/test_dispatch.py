"""Tests for one-shot notification delivery."""

import http.client
from unittest.mock import MagicMock, patch

import pytest

from deltaroutes.infra.repositories.reservations_repository import CONFIRMED_EMAIL_MARKER
from deltaroutes.infra.settings import BookingSettings
from deltaroutes.notifications.dispatch import deliver_once
from deltaroutes.notifications.email import EmailDeliveryError, EmailMessage

CTX = {"reservation_id": "r1", "customer_email": "guest@example.com"}


def render(ctx):
    return EmailMessage(to=ctx["customer_email"], subject="s", text="t")


@pytest.fixture
def mock_txn():
    with patch("deltaroutes.notifications.dispatch.txn") as mock:
        mock.return_value.__enter__.return_value = MagicMock()
        yield mock


def test_disabled_sink_skips_without_claiming(mock_txn):
    with patch("deltaroutes.notifications.dispatch.claim_marker") as mock_claim:
        sent = deliver_once(
            reservation_id="r1",
            marker=CONFIRMED_EMAIL_MARKER,
            render=render,
            settings=BookingSettings(),
        )
    assert sent is False
    mock_claim.assert_not_called()
    mock_txn.assert_not_called()


def test_sends_when_marker_claimed(mock_txn, email_settings):
    with patch("deltaroutes.notifications.dispatch.claim_marker", return_value=True), \
         patch("deltaroutes.notifications.dispatch.get_notification_context", return_value=CTX), \
         patch("deltaroutes.notifications.dispatch.send_email") as mock_send:
        sent = deliver_once(
            reservation_id="r1",
            marker=CONFIRMED_EMAIL_MARKER,
            render=render,
            settings=email_settings,
        )
    assert sent is True
    message = mock_send.call_args[0][0]
    assert message.to == "guest@example.com"


def test_already_sent_is_not_resent(mock_txn, email_settings):
    with patch("deltaroutes.notifications.dispatch.claim_marker", return_value=False), \
         patch("deltaroutes.notifications.dispatch.send_email") as mock_send:
        sent = deliver_once(
            reservation_id="r1",
            marker=CONFIRMED_EMAIL_MARKER,
            render=render,
            settings=email_settings,
        )
    assert sent is False
    mock_send.assert_not_called()


def test_failed_delivery_rearms_marker(mock_txn, email_settings):
    with patch("deltaroutes.notifications.dispatch.claim_marker", return_value=True), \
         patch("deltaroutes.notifications.dispatch.get_notification_context", return_value=CTX), \
         patch("deltaroutes.notifications.dispatch.send_email", side_effect=EmailDeliveryError("HTTPError")), \
         patch("deltaroutes.notifications.dispatch.clear_marker") as mock_clear:
        sent = deliver_once(
            reservation_id="r1",
            marker=CONFIRMED_EMAIL_MARKER,
            render=render,
            settings=email_settings,
        )
    assert sent is False
    mock_clear.assert_called_once()
    assert mock_clear.call_args.kwargs == {"reservation_id": "r1", "marker": CONFIRMED_EMAIL_MARKER}


def test_dropped_connection_rearms_marker(mock_txn, email_settings):
    with patch("deltaroutes.notifications.dispatch.claim_marker", return_value=True), \
         patch("deltaroutes.notifications.dispatch.get_notification_context", return_value=CTX), \
         patch("deltaroutes.notifications.email._do_request",
               side_effect=http.client.RemoteDisconnected("closed")), \
         patch("deltaroutes.notifications.email.time.sleep"), \
         patch("deltaroutes.notifications.dispatch.clear_marker") as mock_clear:
        sent = deliver_once(
            reservation_id="r1",
            marker=CONFIRMED_EMAIL_MARKER,
            render=render,
            settings=email_settings,
        )
    assert sent is False
    mock_clear.assert_called_once()
    assert mock_clear.call_args.kwargs == {"reservation_id": "r1", "marker": CONFIRMED_EMAIL_MARKER}


def test_unexpected_error_rearms_marker(mock_txn, email_settings):
    with patch("deltaroutes.notifications.dispatch.claim_marker", return_value=True), \
         patch("deltaroutes.notifications.dispatch.get_notification_context", return_value=CTX), \
         patch("deltaroutes.notifications.dispatch.send_email", side_effect=RuntimeError("boom")), \
         patch("deltaroutes.notifications.dispatch.clear_marker") as mock_clear:
        sent = deliver_once(
            reservation_id="r1",
            marker=CONFIRMED_EMAIL_MARKER,
            render=render,
            settings=email_settings,
        )
    assert sent is False
    mock_clear.assert_called_once()


def test_render_failure_rearms_marker(mock_txn, email_settings):
    def broken_render(ctx):
        raise KeyError("customer_email")

    with patch("deltaroutes.notifications.dispatch.claim_marker", return_value=True), \
         patch("deltaroutes.notifications.dispatch.get_notification_context", return_value=CTX), \
         patch("deltaroutes.notifications.dispatch.send_email") as mock_send, \
         patch("deltaroutes.notifications.dispatch.clear_marker") as mock_clear:
        sent = deliver_once(
            reservation_id="r1",
            marker=CONFIRMED_EMAIL_MARKER,
            render=broken_render,
            settings=email_settings,
        )
    assert sent is False
    mock_send.assert_not_called()
    mock_clear.assert_called_once()


def test_missing_context_rearms_marker(mock_txn, email_settings):
    with patch("deltaroutes.notifications.dispatch.claim_marker", return_value=True), \
         patch("deltaroutes.notifications.dispatch.get_notification_context", return_value=None), \
         patch("deltaroutes.notifications.dispatch.send_email") as mock_send, \
         patch("deltaroutes.notifications.dispatch.clear_marker") as mock_clear:
        sent = deliver_once(
            reservation_id="r1",
            marker=CONFIRMED_EMAIL_MARKER,
            render=render,
            settings=email_settings,
        )
    assert sent is False
    mock_send.assert_not_called()
    mock_clear.assert_called_once()
    assert mock_clear.call_args.kwargs == {"reservation_id": "r1", "marker": CONFIRMED_EMAIL_MARKER}
