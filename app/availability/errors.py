"""Errors raised by the availability engine and its read collaborators.

Policy violations are not errors; see ``app.booking.policy``.
"""


class AvailabilityError(Exception):
    """Base class for availability errors."""

    pass


class InvalidInputError(AvailabilityError):
    """Raised when input is malformed or references an unknown entity.

    Rejected before any computation runs.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field


class UnknownEntityError(InvalidInputError):
    """Raised when a practitioner, room or appointment id does not exist."""

    pass


class AvailabilityUnknownError(AvailabilityError):
    """Raised when a read collaborator failed or timed out.

    Callers must surface "availability unknown" with a retry affordance,
    never treat the day as available or blocked.
    """

    def __init__(self, source: str, message: str | None = None) -> None:
        super().__init__(message or f"Unable to compute availability ({source} unavailable)")
        self.source = source
