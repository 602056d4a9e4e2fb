"""
moodify.exceptions — Ledger Error Taxonomy
===========================================

Every failure the ledger can report to a caller.  A duplicate claim is
*not* one of them: the claim gate reports it as ``accepted=False`` so the
app can skip the reward popup without showing an error.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for all Moodify ledger errors."""

    retryable: bool = False

    def __init__(self, message: str, *, user_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.user_id = user_id

    def to_dict(self) -> dict:
        """Serialise for API responses."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "retryable": self.retryable,
        }


class StorageError(LedgerError):
    """The database (or network to it) failed.  Safe to retry the claim."""

    retryable = True


class InvalidUserError(LedgerError):
    """No usable identity was supplied; the user must re-enter the identity flow."""


class InvalidDeltaError(LedgerError, ValueError):
    """A non-positive XP amount was passed to the ledger (programmer error)."""
