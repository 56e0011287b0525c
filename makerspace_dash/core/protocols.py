"""Protocol definitions for the external collaborators of the dashboard."""

from __future__ import annotations

from typing import Optional, Protocol, Sequence, runtime_checkable

from .models import EmptyingRecord, JobDescription, PrinterSnapshot, PrintJob, User


@runtime_checkable
class TelemetrySource(Protocol):
    """Supplies the current printer fleet on demand."""

    async def list_printers(self) -> list[PrinterSnapshot]:
        """Return a full, unordered snapshot of the printers.

        Raises:
            TelemetryUnavailable: If the upstream fetch fails.
        """
        ...


class JobSource(Protocol):
    async def list_jobs(self, limit: int) -> list[PrintJob]:
        """Return the most recent print jobs, newest first."""
        ...


@runtime_checkable
class FlagStore(Protocol):
    """Persistent per-printer emptying state."""

    async def get_many(self, printer_ids: Sequence[str]) -> list[EmptyingRecord]:
        """Return records for the given ids. Unknown ids are simply absent.

        Raises:
            StorageError: If the read fails.
        """
        ...

    async def upsert_many(self, records: Sequence[EmptyingRecord]) -> None:
        """Insert or replace all records as a single logical operation.

        Raises:
            StorageError: If the write fails. Nothing is written in that case.
        """
        ...


class DescriptionStore(Protocol):
    """Persistent ownership and annotation rows for print jobs."""

    async def get_many(self, job_ids: Sequence[str]) -> list[JobDescription]:
        ...

    async def upsert_many(self, rows: Sequence[JobDescription]) -> None:
        ...


class IdentityProvider(Protocol):
    async def sign_in(self, email: str, password: str) -> str:
        """Exchange credentials for an access token."""
        ...

    async def get_user(self, access_token: str) -> Optional[User]:
        """Resolve the user owning an access token, or None if invalid."""
        ...

    async def sign_out(self, access_token: str) -> None:
        ...
