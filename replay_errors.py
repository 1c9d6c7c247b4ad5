"""
Error types raised while validating and replaying workflows.

InvalidWorkflow and NavigationError end a run before any step executes.
StepError stays inside the engine and only shows up in step outcomes.
"""

from __future__ import annotations


class ReplayError(Exception):
    """Base class for replay failures."""

    @property
    def kind(self) -> str:
        return type(self).__name__


class InvalidWorkflow(ReplayError, ValueError):
    """The submitted workflow is malformed or empty."""


class NavigationError(ReplayError):
    """A session could not be opened or could not load the target page."""


class StepError(ReplayError):
    """A single step could not be performed."""

    def __init__(self, index: int, message: str):
        super().__init__(message)
        self.index = index


class SurfaceError(ReplayError):
    """The page itself rejected an action that has no element to resolve."""
