"""Core primitives for makerspace-dash."""

from .errors import (
    AuthenticationError,
    DashboardError,
    InvalidInput,
    PermissionDenied,
    StorageError,
    TelemetryUnavailable,
)
from .keyed_lock import KeyedLock
from .models import (
    AnnotatedPrinter,
    ClaimResult,
    EmptyingRecord,
    JobDescription,
    PrinterSnapshot,
    PrinterStatus,
    PrintJob,
    SkippedClaim,
    User,
    utcnow,
)
from .protocols import (
    DescriptionStore,
    FlagStore,
    IdentityProvider,
    JobSource,
    TelemetrySource,
)

__all__ = [
    "AnnotatedPrinter",
    "AuthenticationError",
    "ClaimResult",
    "DashboardError",
    "DescriptionStore",
    "EmptyingRecord",
    "FlagStore",
    "IdentityProvider",
    "InvalidInput",
    "JobDescription",
    "JobSource",
    "KeyedLock",
    "PermissionDenied",
    "PrintJob",
    "PrinterSnapshot",
    "PrinterStatus",
    "SkippedClaim",
    "StorageError",
    "TelemetrySource",
    "TelemetryUnavailable",
    "User",
    "utcnow",
]
