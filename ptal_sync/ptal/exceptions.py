"""Exceptions raised by the PTAL synchronization engine.

Creation failures propagate to the caller. Reconciliation failures are
isolated per record by the event router and the sweeper, which log them and
leave the record for the next trigger.
"""

from typing import Any


class PtalError(Exception):
    """Base exception for all engine errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize engine error.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional error details
        """
        super().__init__(message)
        self.details = details or {}


class ValidationError(PtalError):
    """Malformed pull request URL or identity supplied at creation."""


class InvalidTargetError(ValidationError):
    """The pull request identity is well formed but cannot be announced.

    Raised when the PR does not exist or its owner is not allowed.
    """


class NotFoundError(PtalError):
    """A remote pull request, channel or message no longer exists."""


class TransientRemoteError(PtalError):
    """A remote call failed in a way that may succeed later (network, rate limit)."""


class TransientReconcileError(TransientRemoteError):
    """A reconciliation could not complete; the record is left untouched."""


class ConsistencyFault(TransientReconcileError):
    """The merged state was observed but the final edit could not be applied.

    The record is kept so the next reconciliation re-attempts the edit before
    retiring it.
    """


class ConflictError(PtalError):
    """A chat message already owns a record."""
