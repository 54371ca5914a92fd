class BookingError(Exception):
    """Base class for failures that map onto an HTTP response."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BookingError):
    """Malformed input."""

    status_code = 400


class InvalidRequestError(ValidationError):
    """Well-formed input asking for something that can never be served
    (a past date, a date beyond the advance booking window, an inverted range)."""


class NotFoundError(BookingError):
    status_code = 404


class PolicyError(BookingError):
    """A business rule rejects the request (too soon, outside hours, past deadline)."""

    status_code = 400


class ConflictError(BookingError):
    """The requested interval is already taken or blocked."""

    status_code = 409


class UnexpectedError(BookingError):
    status_code = 500
