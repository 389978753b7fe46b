"""
Dispatch error taxonomy.

Every error carries the HTTP status it maps to and a stable ``code`` so that
driver-facing clients can tell "ride is gone", "not your ride" and "someone
else took it" apart.  Only ``DependencyUnavailable`` is worth retrying.
"""


class DispatchError(Exception):
    status_code = 400
    code = "dispatch_error"
    retryable = False

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__ or self.code)

    @property
    def detail(self) -> str:
        return str(self)


class ValidationError(DispatchError):
    """Malformed or missing request fields."""

    status_code = 422
    code = "validation_error"


class NotFound(DispatchError):
    """Resource not found."""

    status_code = 404
    code = "not_found"


class RideNotFound(NotFound):
    """Ride not found."""

    code = "ride_not_found"


class InvalidTransition(DispatchError):
    """Ride status change violates the state machine."""

    status_code = 409
    code = "invalid_transition"


class RideNoLongerAvailable(InvalidTransition):
    """Ride was cancelled and can no longer be taken."""

    status_code = 410
    code = "ride_unavailable"


class RideAlreadyTaken(DispatchError):
    """Another driver already holds this ride."""

    status_code = 409
    code = "ride_already_taken"


class NotRideDriver(DispatchError):
    """Ride is held by a different driver."""

    status_code = 403
    code = "not_ride_driver"


class DependencyUnavailable(DispatchError):
    """Queue, cache or ledger backend unreachable."""

    status_code = 503
    code = "dependency_unavailable"
    retryable = True
