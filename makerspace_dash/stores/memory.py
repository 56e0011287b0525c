"""In-process stores used for local development and tests."""

from __future__ import annotations

import copy
from typing import Dict, Sequence

from ..core import EmptyingRecord, JobDescription


class InMemoryFlagStore:
    """Dict-backed flag store. Reads return copies; a batch upsert is applied at once."""

    def __init__(self) -> None:
        self._rows: Dict[str, EmptyingRecord] = {}

    async def get_many(self, printer_ids: Sequence[str]) -> list[EmptyingRecord]:
        return [
            copy.copy(self._rows[printer_id])
            for printer_id in dict.fromkeys(printer_ids)
            if printer_id in self._rows
        ]

    async def upsert_many(self, records: Sequence[EmptyingRecord]) -> None:
        self._rows.update({record.printer_id: copy.copy(record) for record in records})

    def get(self, printer_id: str) -> EmptyingRecord | None:
        row = self._rows.get(printer_id)
        return copy.copy(row) if row is not None else None


class InMemoryDescriptionStore:
    def __init__(self) -> None:
        self._rows: Dict[str, JobDescription] = {}

    async def get_many(self, job_ids: Sequence[str]) -> list[JobDescription]:
        return [
            copy.copy(self._rows[job_id])
            for job_id in dict.fromkeys(job_ids)
            if job_id in self._rows
        ]

    async def upsert_many(self, rows: Sequence[JobDescription]) -> None:
        self._rows.update({row.job_id: copy.copy(row) for row in rows})

    def get(self, job_id: str) -> JobDescription | None:
        row = self._rows.get(job_id)
        return copy.copy(row) if row is not None else None
