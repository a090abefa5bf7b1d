"""Business-rule failures of the reservation core.

Every error carries a stable ``code`` for client branching and the HTTP
status the API answers with.
"""


class BookingError(Exception):
    """Base class for business-rule failures."""

    code = "BOOKING_ERROR"
    http_status = 400

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


class SessionNotFoundError(BookingError):
    code = "SESSION_NOT_FOUND"
    http_status = 404


class SessionCancelledError(BookingError):
    code = "CANCELLED"
    http_status = 400


class BookingClosedError(BookingError):
    code = "CLOSED"
    http_status = 400


class DuplicateReservationError(BookingError):
    code = "DUPLICATE_RESERVATION"
    http_status = 409


class ReservationNotFoundError(BookingError):
    code = "RESERVATION_NOT_FOUND"
    http_status = 404


class NotWaitingError(BookingError):
    code = "NOT_WAITING"
    http_status = 409


class HoldNotActiveError(BookingError):
    """Reservation is not a live (unexpired) HOLD."""

    code = "HOLD_NOT_ACTIVE"
    http_status = 409


class NoSeatsError(BookingError):
    code = "NO_SEATS"
    http_status = 409


class NoGuideError(BookingError):
    code = "NO_GUIDE"
    http_status = 409


class ConcurrencyConflictError(BookingError):
    """Serializable retries exhausted."""

    code = "CONFLICT"
    http_status = 409


class PaymentNotFoundError(BookingError):
    code = "PAYMENT_NOT_FOUND"
    http_status = 404


class PaymentIntegrityError(BookingError):
    """Oracle-reported amount or currency disagrees with server truth.

    Never a user mistake: indicates a bug or tampering.
    """

    code = "INTEGRITY_ERROR"
    http_status = 500


class NotPayableError(BookingError):
    """Reservation cannot start a checkout (not a live hold, or nothing to pay)."""

    code = "NOT_PAYABLE"
    http_status = 400


class AlreadyPaidError(BookingError):
    code = "ALREADY_PAID"
    http_status = 409


class PaymentRecordMissingError(BookingError):
    """A HOLD without its payment row; a data bug, not a client error."""

    code = "PAYMENT_MISSING"
    http_status = 500


class PaymentProviderError(BookingError):
    code = "PROVIDER_ERROR"
    http_status = 502
