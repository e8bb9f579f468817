from __future__ import annotations


class RegistrarError(Exception):
    """Base class for errors raised by the block assignment client."""


class InputValidationError(RegistrarError):
    """Bad or missing input caught before any request is sent."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field


class AuthenticationError(RegistrarError):
    """No usable session token. Blocking; never retried."""


class RequestFailedError(RegistrarError):
    """Non-2xx response or unreadable body from the block API.

    `message` is the server's own text when it sent one.
    """

    def __init__(self, message: str, *, status_code: int | None = None, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code

    @property
    def retryable(self) -> bool:
        return self.status_code is None or self.status_code >= 500


class DuplicateAssignmentError(RequestFailedError):
    """The student already holds an assignment for that semester/year."""


class ServiceUnavailableError(RequestFailedError):
    """Connection failure or timeout before a response arrived."""


class InvalidTransitionError(RegistrarError):
    """A resolution controller operation was attempted from the wrong state."""

    def __init__(self, operation: str, state: str) -> None:
        super().__init__(f"Cannot {operation} while {state}")
        self.operation = operation
        self.state = state
