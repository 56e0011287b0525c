"""Error taxonomy surfaced to callers of the dashboard services."""

from __future__ import annotations


class DashboardError(RuntimeError):
    """Base class for failures reported to the immediate caller."""


class TelemetryUnavailable(DashboardError):
    """Raised when the printer telemetry source cannot produce a snapshot."""


class StorageError(DashboardError):
    """Raised when a read or write against a persistent store fails."""


class InvalidInput(DashboardError):
    """Raised when a required identifier or credential is missing."""


class PermissionDenied(DashboardError):
    """Raised when a user acts on a print job owned by someone else."""


class AuthenticationError(DashboardError):
    """Raised when the identity provider rejects a sign-in."""
