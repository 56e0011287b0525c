"""Supabase-backed stores for emptying flags and job descriptions."""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from ..adapters.supabase import SupabaseClient, in_filter
from ..core import EmptyingRecord, JobDescription
from ..core.models import isoformat, utcnow

LOGGER = logging.getLogger(__name__)


class SupabaseFlagStore:
    """Flag store over the ``printer_emptying_state`` table."""

    def __init__(self, client: SupabaseClient, table: str) -> None:
        self._client = client
        self._table = table

    async def get_many(self, printer_ids: Sequence[str]) -> list[EmptyingRecord]:
        if not printer_ids:
            return []
        rows = await self._client.select(
            self._table,
            columns=("printer_id", "needs_emptying", "last_status"),
            filters={"printer_id": in_filter(printer_ids)},
        )
        return [
            EmptyingRecord(
                printer_id=str(row["printer_id"]),
                needs_emptying=bool(row.get("needs_emptying")),
                last_status=row.get("last_status"),
            )
            for row in rows
            if row.get("printer_id")
        ]

    async def upsert_many(self, records: Sequence[EmptyingRecord]) -> None:
        rows = [
            {
                "printer_id": record.printer_id,
                "needs_emptying": record.needs_emptying,
                "last_status": record.last_status,
                "updated_at": isoformat(record.updated_at or utcnow()),
            }
            for record in records
        ]
        await self._client.upsert(self._table, rows, on_conflict="printer_id")


class SupabaseDescriptionStore:
    """Description store over the ``print_job_descriptions`` table."""

    def __init__(self, client: SupabaseClient, table: str) -> None:
        self._client = client
        self._table = table

    async def get_many(self, job_ids: Sequence[str]) -> list[JobDescription]:
        if not job_ids:
            return []
        rows = await self._client.select(
            self._table,
            columns=("job_id", "description", "owner_id"),
            filters={"job_id": in_filter(job_ids)},
        )
        return [
            JobDescription(
                job_id=str(row["job_id"]),
                owner_id=_optional_str(row.get("owner_id")),
                description=row.get("description"),
            )
            for row in rows
            if row.get("job_id")
        ]

    async def upsert_many(self, rows: Sequence[JobDescription]) -> None:
        payload = [
            {
                "job_id": row.job_id,
                "owner_id": row.owner_id,
                "description": row.description,
                "updated_at": isoformat(row.updated_at or utcnow()),
            }
            for row in rows
        ]
        await self._client.upsert(self._table, payload, on_conflict="job_id")


def _optional_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)
