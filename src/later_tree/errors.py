"""Errors raised by the content tree.

Every failure is reported synchronously to the immediate caller. Nothing here
is retried or corrected automatically.
"""

from enum import StrEnum


class ErrorKind(StrEnum):
    DEPTH_EXCEEDED = "depth_exceeded"
    INVALID_PARENT = "invalid_parent"
    CYCLE_DETECTED = "cycle_detected"
    INVALID_RANGE = "invalid_range"
    NOT_FOUND = "not_found"


class TreeError(Exception):
    """Base class for tree validation failures.

    ``action_hint`` phrases the failure in terms of the user's action, for
    callers that show it to people instead of the error kind.
    """

    kind: ErrorKind
    action_hint: str = "This change can't be applied."

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class DepthExceededError(TreeError):
    """A create or move would push a node or a descendant past the depth limit."""

    kind = ErrorKind.DEPTH_EXCEEDED
    action_hint = "Can't nest here, maximum depth reached."


class InvalidParentError(TreeError):
    """The parent is missing, lives in another container, or cannot hold items."""

    kind = ErrorKind.INVALID_PARENT
    action_hint = "Can't place the item there."


class CycleDetectedError(TreeError):
    """The new parent is the node itself or one of its descendants."""

    kind = ErrorKind.CYCLE_DETECTED
    action_hint = "Can't move an item inside itself."


class InvalidRangeError(TreeError):
    kind = ErrorKind.INVALID_RANGE
    action_hint = "The list changed, try the move again."


class NotFoundError(TreeError):
    kind = ErrorKind.NOT_FOUND
    action_hint = "That item no longer exists."
