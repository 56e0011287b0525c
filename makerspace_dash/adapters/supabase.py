"""Supabase adapter covering the PostgREST tables and GoTrue auth endpoints."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Mapping, Optional, Sequence

import aiohttp

from ..config import SupabaseConfig
from ..core import AuthenticationError, InvalidInput, StorageError, User

LOGGER = logging.getLogger(__name__)


def in_filter(values: Sequence[str]) -> str:
    """Build a PostgREST ``in`` filter, quoting every value."""
    quoted = []
    for value in values:
        escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
        quoted.append(f'"{escaped}"')
    return f"in.({','.join(quoted)})"


def _error_detail(text: str) -> str:
    if not text:
        return ""
    try:
        parsed = json.loads(text)
    except ValueError:
        return text.strip()
    if isinstance(parsed, dict):
        for key in ("message", "error_description", "msg", "error"):
            value = parsed.get(key)
            if value:
                return str(value)
    return text.strip()


class SupabaseClient:
    """Minimal async client for a Supabase project."""

    def __init__(
        self,
        config: SupabaseConfig,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 10.0,
    ) -> None:
        if not config.url:
            raise ValueError("Missing SUPABASE_URL environment variable.")
        if not config.anon_key:
            raise ValueError("Missing SUPABASE_ANON_KEY environment variable.")

        self.config = config
        self._base_url = config.url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    async def aclose(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    # ------------------------------------------------------------------
    # PostgREST
    # ------------------------------------------------------------------
    async def select(
        self,
        table: str,
        *,
        columns: Sequence[str],
        filters: Mapping[str, str],
    ) -> list[dict[str, Any]]:
        params = {"select": ",".join(columns), **filters}
        payload = await self._rest("GET", table, params=params)
        if not isinstance(payload, list):
            raise StorageError(f"Unexpected response from table {table}")
        return payload

    async def upsert(
        self,
        table: str,
        rows: Sequence[Mapping[str, Any]],
        *,
        on_conflict: str,
    ) -> None:
        if not rows:
            return
        await self._rest(
            "POST",
            table,
            params={"on_conflict": on_conflict},
            json_body=list(rows),
            extra_headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )

    async def _rest(
        self,
        method: str,
        table: str,
        *,
        params: Mapping[str, str],
        json_body: Any = None,
        extra_headers: Optional[Mapping[str, str]] = None,
    ) -> Any:
        session = await self._ensure_session()
        url = f"{self._base_url}/rest/v1/{table}"
        headers = self._headers(self._data_key())
        headers["apikey"] = self._data_key()
        if extra_headers:
            headers.update(extra_headers)

        LOGGER.debug("Supabase %s %s %s", method, table, dict(params))
        try:
            async with session.request(
                method, url, params=params, json=json_body, headers=headers
            ) as response:
                text = await response.text()
                if response.status >= 400:
                    detail = _error_detail(text) or response.reason or "request failed"
                    raise StorageError(
                        f"Supabase {table} request failed ({response.status}): {detail}"
                    )
                if not text:
                    return None
                return json.loads(text)
        except asyncio.TimeoutError as exc:
            raise StorageError(f"Supabase {table} request timed out") from exc
        except aiohttp.ClientError as exc:
            raise StorageError(f"Supabase {table} request failed: {exc}") from exc
        except ValueError as exc:
            raise StorageError(f"Supabase {table} returned invalid JSON") from exc

    # ------------------------------------------------------------------
    # GoTrue
    # ------------------------------------------------------------------
    async def sign_in(self, email: str, password: str) -> str:
        if not email or not password:
            raise InvalidInput("Email and password are required.")

        session = await self._ensure_session()
        url = f"{self._base_url}/auth/v1/token"
        try:
            async with session.post(
                url,
                params={"grant_type": "password"},
                json={"email": email, "password": password},
                headers=self._headers(self.config.anon_key),
            ) as response:
                text = await response.text()
                if response.status >= 400:
                    raise AuthenticationError(
                        _error_detail(text) or "Invalid login credentials"
                    )
                payload = json.loads(text)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise AuthenticationError(f"Sign-in request failed: {exc}") from exc
        except ValueError as exc:
            raise AuthenticationError("Sign-in returned invalid JSON") from exc

        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not token:
            raise AuthenticationError("Sign-in response missing access token")
        return str(token)

    async def get_user(self, access_token: str) -> Optional[User]:
        if not access_token:
            return None

        session = await self._ensure_session()
        url = f"{self._base_url}/auth/v1/user"
        try:
            async with session.get(url, headers=self._headers(access_token)) as response:
                if response.status != 200:
                    LOGGER.debug("Access token rejected (status=%s)", response.status)
                    return None
                payload = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            LOGGER.warning("Could not verify access token: %s", exc)
            return None

        user_id = payload.get("id") if isinstance(payload, dict) else None
        if not user_id:
            return None
        return User(id=str(user_id), email=payload.get("email"))

    async def sign_out(self, access_token: str) -> None:
        if not access_token:
            return

        session = await self._ensure_session()
        url = f"{self._base_url}/auth/v1/logout"
        try:
            async with session.post(url, headers=self._headers(access_token)) as response:
                if response.status >= 400:
                    LOGGER.debug("Sign-out returned status %s", response.status)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            LOGGER.debug("Sign-out request failed: %s", exc)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _data_key(self) -> str:
        return self.config.service_key or self.config.anon_key or ""

    def _headers(self, bearer: Optional[str]) -> dict[str, str]:
        headers = {
            "apikey": self.config.anon_key or "",
            "Content-Type": "application/json",
        }
        if bearer:
            headers["Authorization"] = f"Bearer {bearer}"
        return headers

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session
