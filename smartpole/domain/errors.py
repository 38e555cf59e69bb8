"""
Caller-misuse conditions for the pole state machine.

These are carried inside ``Result.err`` and are not raised by the controller.
Every session-dependent action invoked without a usable session reports a
``NoActiveSessionError``; the subclasses only narrow down the reason.
"""


class PoleStateError(Exception):
    """Base class for operations invoked in the wrong pole state."""

    reason = "invalid pole state"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.reason)


class NoActiveSessionError(PoleStateError):
    reason = "no active session"


class NotConnectedError(NoActiveSessionError):
    reason = "not connected to transport"


class SessionAlreadyActiveError(NoActiveSessionError):
    reason = "session already active"
