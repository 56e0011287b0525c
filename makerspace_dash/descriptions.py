"""Ownership claims and free-text descriptions for print jobs."""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, Optional

from .core import (
    ClaimResult,
    DescriptionStore,
    InvalidInput,
    JobDescription,
    KeyedLock,
    PermissionDenied,
    SkippedClaim,
    utcnow,
)

LOGGER = logging.getLogger(__name__)


def _clean_ids(job_ids: Iterable[object]) -> list[str]:
    cleaned = [str(job_id).strip() for job_id in job_ids if job_id is not None]
    return list(dict.fromkeys(job_id for job_id in cleaned if job_id))


class JobDescriptionService:
    """Applies the ownership rules on top of a :class:`DescriptionStore`.

    A job has at most one owner. Anyone may claim an unowned job, only the
    owner may edit its description, and only the owner may release it.
    """

    def __init__(
        self,
        store: DescriptionStore,
        *,
        locks: Optional[KeyedLock] = None,
        clock: Callable = utcnow,
    ) -> None:
        self._store = store
        self._locks = locks or KeyedLock()
        self._clock = clock

    async def get_descriptions(
        self, job_ids: Iterable[object]
    ) -> Dict[str, Dict[str, Optional[str]]]:
        ids = _clean_ids(job_ids)
        if not ids:
            return {}
        rows = await self._store.get_many(ids)
        return {
            row.job_id: {"description": row.description or "", "ownerId": row.owner_id}
            for row in rows
        }

    async def save_description(
        self, user_id: str, job_id: str, description: Optional[str]
    ) -> JobDescription:
        key = str(job_id or "").strip()
        if not key:
            raise InvalidInput("Missing job id.")
        text = str(description or "").strip()

        async with self._locks.hold(key):
            existing = await self._get_one(key)
            if existing is not None and existing.owner_id and existing.owner_id != user_id:
                raise PermissionDenied("This print is already owned by another user.")

            row = JobDescription(
                job_id=key,
                owner_id=(existing.owner_id if existing is not None else None) or user_id,
                description=text,
                updated_at=self._clock(),
            )
            await self._store.upsert_many([row])

        LOGGER.debug("Saved description for job %s", key)
        return row

    async def claim(self, user_id: str, job_ids: Iterable[object]) -> ClaimResult:
        ids = _clean_ids(job_ids)
        if not ids:
            raise InvalidInput("No job ids provided.")

        result = ClaimResult()
        async with self._locks.hold(*ids):
            existing = {row.job_id: row for row in await self._store.get_many(ids)}
            now = self._clock()
            to_upsert: list[JobDescription] = []

            for job_id in ids:
                row = existing.get(job_id)
                if row is None or not row.owner_id:
                    to_upsert.append(
                        JobDescription(
                            job_id=job_id,
                            owner_id=user_id,
                            description=(row.description if row is not None else None) or "",
                            updated_at=now,
                        )
                    )
                    result.claimed.append(job_id)
                elif row.owner_id == user_id:
                    result.skipped.append(SkippedClaim(job_id, "Already owned"))
                else:
                    result.skipped.append(SkippedClaim(job_id, "Owned by another user"))

            if to_upsert:
                await self._store.upsert_many(to_upsert)

        LOGGER.info(
            "User %s claimed %d job(s), skipped %d",
            user_id,
            len(result.claimed),
            len(result.skipped),
        )
        return result

    async def unclaim(self, user_id: str, job_id: str) -> None:
        key = str(job_id or "").strip()
        if not key:
            raise InvalidInput("Missing job id.")

        async with self._locks.hold(key):
            existing = await self._get_one(key)
            if existing is None or not existing.owner_id or existing.owner_id != user_id:
                raise PermissionDenied("You can only unclaim your own prints.")

            await self._store.upsert_many(
                [
                    JobDescription(
                        job_id=key,
                        owner_id=None,
                        description=None,
                        updated_at=self._clock(),
                    )
                ]
            )

        LOGGER.info("User %s released job %s", user_id, key)

    async def _get_one(self, job_id: str) -> Optional[JobDescription]:
        rows = await self._store.get_many([job_id])
        return next((row for row in rows if row.job_id == job_id), None)
