"""Error taxonomy for router reconciliation.

Transport and validation errors are recovered locally and reported as
``error`` results; persistence and config errors abort the class run.
"""

from __future__ import annotations


class RouterSyncError(Exception):
    """Base class for reconciliation errors."""


class TransportError(RouterSyncError):
    """Device unreachable, refused the login or timed out."""

    def __init__(self, message: str, router_id: object | None = None):
        super().__init__(message)
        self.router_id = router_id


class ValidationError(RouterSyncError):
    """A device record could not be parsed."""

    def __init__(self, message: str, payload: object | None = None):
        super().__init__(message)
        self.payload = payload


class PersistenceError(RouterSyncError):
    """The relational store could not be reached or written."""


class ConfigError(RouterSyncError):
    """The cursor document is unreadable, malformed or unwritable."""


class EntityNotFoundError(RouterSyncError):
    """A router, pool or user referenced by a manual sync does not exist."""


class SyncCancelled(RouterSyncError):
    """The run was cancelled between router iterations."""
