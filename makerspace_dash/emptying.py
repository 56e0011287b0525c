"""Sticky "needs emptying" tracking for printers across polling cycles.

Each refresh compares the status a printer reports now with the status stored
on the previous refresh. A printer that went from printing to idle finished a
job and now has a part on its bed; the flag set for it stays on until an
operator clears it, no matter what the printer reports afterwards.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from .core import (
    AnnotatedPrinter,
    DashboardError,
    EmptyingRecord,
    FlagStore,
    InvalidInput,
    KeyedLock,
    PrinterStatus,
    StorageError,
    TelemetrySource,
    TelemetryUnavailable,
    utcnow,
)
from .health import HealthReporter

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def is_finishing_transition(previous_status: Optional[str], current_status: str) -> bool:
    """Return True when a printer went from printing to idle between two polls."""
    return (
        previous_status == PrinterStatus.PRINTING.value
        and current_status == PrinterStatus.IDLE.value
    )


def next_needs_emptying(
    existing: Optional[EmptyingRecord], current_status: str
) -> bool:
    """Compute the new flag value. The result is never lower than the stored one."""
    previous_flag = existing.needs_emptying if existing is not None else False
    previous_status = existing.last_status if existing is not None else None
    return previous_flag or is_finishing_transition(previous_status, current_status)


class EmptyingTracker:
    """Reconciles printer telemetry with the persisted emptying flags.

    All read-modify-write cycles for a printer id are serialized through a
    :class:`KeyedLock`, so a refresh started before an operator clear cannot
    write back the stale flag after it. Separate processes sharing one store
    fall back to last-write-wins.
    """

    def __init__(
        self,
        telemetry: TelemetrySource,
        store: FlagStore,
        *,
        telemetry_timeout: float = 20.0,
        storage_timeout: float = 10.0,
        locks: Optional[KeyedLock] = None,
        health: Optional[HealthReporter] = None,
        clock: Callable = utcnow,
    ) -> None:
        self._telemetry = telemetry
        self._store = store
        self._telemetry_timeout = telemetry_timeout
        self._storage_timeout = storage_timeout
        self._locks = locks or KeyedLock()
        self._health = health
        self._clock = clock

    async def refresh(self) -> list[AnnotatedPrinter]:
        """Fetch printers, update their flags and return the annotated snapshot."""

        try:
            printers = await self._call(
                self._telemetry.list_printers,
                timeout=self._telemetry_timeout,
                error=TelemetryUnavailable,
                label="Printer telemetry",
            )
        except TelemetryUnavailable as exc:
            await self._report("telemetry", False, str(exc))
            raise
        await self._report("telemetry", True)

        printer_ids = [printer.id for printer in printers if printer.id]
        if not printer_ids:
            return [AnnotatedPrinter(printer, False) for printer in printers]

        async with self._locks.hold(*printer_ids):
            try:
                existing_rows = await self._call(
                    lambda: self._store.get_many(printer_ids),
                    timeout=self._storage_timeout,
                    error=StorageError,
                    label="Emptying state read",
                )
            except StorageError as exc:
                await self._report("storage", False, str(exc))
                raise

            existing = {row.printer_id: row for row in existing_rows}
            now = self._clock()
            updates: dict[str, EmptyingRecord] = {}
            for printer in printers:
                if not printer.id:
                    continue
                current = printer.status.value
                record = existing.get(printer.id)
                needs_emptying = next_needs_emptying(record, current)
                if needs_emptying and not (record and record.needs_emptying):
                    LOGGER.info(
                        "Printer %s (%s) finished printing; flagged for emptying",
                        printer.id,
                        printer.name,
                    )
                updates[printer.id] = EmptyingRecord(
                    printer_id=printer.id,
                    needs_emptying=needs_emptying,
                    last_status=current,
                    updated_at=now,
                )

            try:
                await self._call(
                    lambda: self._store.upsert_many(list(updates.values())),
                    timeout=self._storage_timeout,
                    error=StorageError,
                    label="Emptying state write",
                )
            except StorageError as exc:
                await self._report("storage", False, str(exc))
                raise

        await self._report("storage", True)
        LOGGER.debug("Refreshed emptying state for %d printer(s)", len(updates))

        return [
            AnnotatedPrinter(
                printer,
                updates[printer.id].needs_emptying if printer.id in updates else False,
            )
            for printer in printers
        ]

    async def clear(self, printer_id: str) -> EmptyingRecord:
        """Acknowledge that a printer was emptied."""
        return await self.set_flag(printer_id, False)

    async def set_flag(self, printer_id: str, needs_emptying: bool) -> EmptyingRecord:
        """Force the flag on or off, keeping the last observed status."""

        key = (printer_id or "").strip()
        if not key:
            raise InvalidInput("Missing printer id.")

        async with self._locks.hold(key):
            try:
                rows = await self._call(
                    lambda: self._store.get_many([key]),
                    timeout=self._storage_timeout,
                    error=StorageError,
                    label="Emptying state read",
                )
                existing = next((row for row in rows if row.printer_id == key), None)
                record = EmptyingRecord(
                    printer_id=key,
                    needs_emptying=bool(needs_emptying),
                    last_status=existing.last_status if existing is not None else None,
                    updated_at=self._clock(),
                )
                await self._call(
                    lambda: self._store.upsert_many([record]),
                    timeout=self._storage_timeout,
                    error=StorageError,
                    label="Emptying state write",
                )
            except StorageError as exc:
                await self._report("storage", False, str(exc))
                raise

        await self._report("storage", True)
        LOGGER.info(
            "Emptying flag for printer %s set to %s by operator",
            key,
            record.needs_emptying,
        )
        return record

    async def _call(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        timeout: float,
        error: type[DashboardError],
        label: str,
    ) -> T:
        try:
            async with asyncio.timeout(timeout):
                return await operation()
        except TimeoutError as exc:
            raise error(f"{label} timed out after {timeout:.1f}s") from exc
        except DashboardError:
            raise
        except Exception as exc:
            raise error(f"{label} failed: {exc}") from exc

    async def _report(
        self, component: str, healthy: bool, detail: Optional[str] = None
    ) -> None:
        if self._health is not None:
            await self._health.update(component, healthy, detail)
