"""Error taxonomy raised by the elimination engine.

Each error carries the HTTP status the transport layer answers with, so
route handlers never re-derive it.
"""


class GameError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(GameError):
    """Malformed input or an operation attempted in the wrong state."""
    status_code = 400


class NotAGroupMember(ValidationError):
    status_code = 403


class ConflictError(GameError):
    """Lost a race, or repeated an action that may only happen once."""
    status_code = 409


class NotFoundError(GameError):
    status_code = 404


class InvariantViolation(GameError):
    """Programming-level bug. Must abort the operation, never be corrected."""
    status_code = 500
