"""Typed rejections raised by room transitions.

Every transition validates phase, identity and role before it mutates
anything, so a raised RoomRuleError always leaves the room untouched.
The session layer converts these into a single error message for the
requester; they are never broadcast.
"""

from tabu.logic.enums import ErrorCode


class RoomRuleError(Exception):
    """Base class for rejected participant actions.

    Attributes:
        code: Stable code the client may react to programmatically.
        message: Human-readable explanation.

    """

    def __init__(self, code: ErrorCode, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(f"{code.value}: {message}")


class AuthorizationError(RoomRuleError):
    """Wrong phase, wrong identity or wrong role for the requested action."""


class CapacityError(RoomRuleError):
    """Team full, deck empty, unknown team or room, not enough players."""
