"""Ordered, depth-bounded content tree for Later workspaces."""

from later_tree.errors import (
    CycleDetectedError,
    DepthExceededError,
    ErrorKind,
    InvalidParentError,
    InvalidRangeError,
    NotFoundError,
    TreeError,
)
from later_tree.protocols import MatcherProtocol, ScopeListener
from later_tree.service import ContentTree

__all__ = [
    "ContentTree",
    "CycleDetectedError",
    "DepthExceededError",
    "ErrorKind",
    "InvalidParentError",
    "InvalidRangeError",
    "MatcherProtocol",
    "NotFoundError",
    "ScopeListener",
    "TreeError",
]
