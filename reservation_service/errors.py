class ReservationError(Exception):
    """Base class for lifecycle failures returned to the boundary adapters."""

    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(ReservationError):
    pass


class ResourceNotFoundError(ReservationError):
    """The accommodation catalog does not know the requested accommodation."""


class ForbiddenError(ReservationError):
    pass


class InvalidRequestError(ReservationError):
    pass


class InvalidStateError(ReservationError):
    pass


class ConflictError(ReservationError):
    """Dates are unavailable, or the resource stayed contended after retries."""

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable
