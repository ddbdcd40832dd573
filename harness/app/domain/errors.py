"""Scenario error taxonomy. Each error is scoped to a single scenario."""
from __future__ import annotations


class ScenarioError(Exception):
    """Base error for a failed receive scenario."""


class ReceiveTimeoutError(ScenarioError, TimeoutError):
    """Raised when no delivery was observed before the deadline."""


class ContentMismatchError(ScenarioError):
    """Raised when a message arrived but its content did not verify."""


class TransportError(ScenarioError):
    """Raised when connect, register, send or close fails."""
