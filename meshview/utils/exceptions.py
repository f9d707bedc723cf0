"""Custom exception hierarchy for the topology engine."""

from __future__ import annotations


class MeshViewError(Exception):
    """Base exception for all meshview errors."""


class FetchFailure(MeshViewError):
    """A graph or metrics request failed at transport level or returned non-2xx.

    The only error kind that is surfaced to the user, always as a retryable alert.
    """

    def __init__(self, message: str, status_code: int | None = None, retryable: bool = True) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class InvalidTransitionError(MeshViewError):
    """A selection event is not valid in the current selection state."""


class RendererError(MeshViewError):
    """The graph renderer was used outside its mount/unmount lifecycle."""
