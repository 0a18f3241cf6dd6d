"""Exception hierarchy for the scheduling pipeline."""


class SchedulingError(Exception):
    """Base class for scheduling failures."""


class IgnorableInputError(SchedulingError):
    """Inbound event that cannot be processed and should be acknowledged."""

    def __init__(self, message: str, reason: str = "ignored_invalid_payload"):
        super().__init__(message)
        self.reason = reason


class SessionUnavailableError(SchedulingError):
    """A session could not be found or established for an inbound message."""


class DuplicateMessageError(SchedulingError):
    """A message with the same provider id has already been stored."""


class DecisionEngineError(SchedulingError):
    """The decision engine failed or returned output that violates its contract."""
