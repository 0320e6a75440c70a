"""Error taxonomy shared by the API and the storefront client.

Every error carries the HTTP status it maps to and a stable ``error_type``
string. The error handler middleware renders them as JSON and the client
rebuilds them from that payload, so both sides speak the same vocabulary.
"""


class BakeryError(Exception):
    status_code = 500
    error_type = "Internal Error"

    def __init__(self, message=None, details=None):
        super().__init__(message or self.error_type)
        self.message = message or self.error_type
        self.details = details

    def to_dict(self):
        data = {"type": self.error_type, "message": self.message}
        if self.details is not None:
            data["details"] = self.details
        return data


class NotFound(BakeryError):
    status_code = 404
    error_type = "Not Found"


class ValidationError(BakeryError):
    """Malformed input. ``details`` maps field names to messages."""
    status_code = 400
    error_type = "Validation Error"


class Oversold(BakeryError):
    """More units were requested than remain in the ledger.

    ``details`` is a list of ``{"product_id", "requested", "available"}``.
    """
    status_code = 409
    error_type = "Oversold"

    @property
    def shortages(self):
        return list(self.details or [])


class StorageError(BakeryError):
    status_code = 503
    error_type = "Storage Error"


class UncertainOutcome(StorageError):
    """A write timed out; it may or may not have been applied."""
    error_type = "Uncertain Outcome"


class AuthRequired(BakeryError):
    status_code = 401
    error_type = "Authentication Required"


class Forbidden(BakeryError):
    status_code = 403
    error_type = "Forbidden"


class InvalidTransition(BakeryError):
    status_code = 409
    error_type = "Invalid Transition"


class PartialCommit(BakeryError):
    status_code = 500
    error_type = "Partial Commit"


class AlreadyBooked(BakeryError):
    """A submission code was already used for a different cart.

    Raised by the client. ``details`` is the reservation that was booked.
    """
    status_code = 409
    error_type = "Already Booked"

    @property
    def reservation(self):
        return self.details


ERRORS_BY_TYPE = {
    cls.error_type: cls
    for cls in (
        NotFound, ValidationError, Oversold, StorageError, UncertainOutcome,
        AuthRequired, Forbidden, InvalidTransition, PartialCommit, AlreadyBooked,
    )
}
