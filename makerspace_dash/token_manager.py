"""Access token caching and login for the Bambu Lab cloud API."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import aiohttp

from .config import BambuConfig
from .core import TelemetryUnavailable

LOGGER = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN_SECONDS = 3600
MINIMUM_LIFETIME_SECONDS = 60


@dataclass(slots=True)
class TokenCredentials:
    """Access token with metadata."""

    token: str
    issued_at: datetime
    expires_at: datetime


class TokenCache:
    """Process-wide holder for one access token with an explicit expiry.

    The cache is created once by the application and injected into the
    clients that need it; nothing is kept at module level.
    """

    def __init__(self, *, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._current: Optional[TokenCredentials] = None

    @property
    def current(self) -> Optional[TokenCredentials]:
        return self._current

    def get(self) -> Optional[str]:
        """Return the cached token, or None if absent or expired."""
        current = self._current
        if current is None:
            return None
        if self._clock() >= current.expires_at:
            return None
        return current.token

    def store(self, token: str, expires_in_seconds: Optional[float]) -> TokenCredentials:
        issued_at = self._clock()
        lifetime = max(
            MINIMUM_LIFETIME_SECONDS,
            expires_in_seconds if expires_in_seconds is not None else DEFAULT_EXPIRES_IN_SECONDS,
        )
        self._current = TokenCredentials(
            token=token,
            issued_at=issued_at,
            expires_at=issued_at + timedelta(seconds=lifetime),
        )
        return self._current

    def invalidate(self) -> None:
        if self._current is not None:
            LOGGER.debug("Invalidating cached access token")
        self._current = None


class TokenManager:
    """Resolves a Bambu access token, logging in when the cache is empty."""

    def __init__(self, config: BambuConfig, cache: TokenCache) -> None:
        self.config = config
        self.cache = cache
        self._lock = asyncio.Lock()

    async def get_token(self, session: aiohttp.ClientSession) -> str:
        if self.config.access_token:
            return self.config.access_token

        token = self.cache.get()
        if token:
            return token

        async with self._lock:
            token = self.cache.get()
            if token:
                return token
            credentials = await self.issue_token(session)
            return credentials.token

    def invalidate(self) -> None:
        self.cache.invalidate()

    async def issue_token(self, session: aiohttp.ClientSession) -> TokenCredentials:
        """Log in with the configured account and cache the new token."""
        email = self.config.email
        if not email:
            raise TelemetryUnavailable("Missing BAMBULAB_EMAIL environment variable.")
        password = self.config.password
        code = self.config.verification_code
        if not password and not code:
            raise TelemetryUnavailable(
                "Provide BAMBULAB_ACCESS_TOKEN or BAMBULAB_PASSWORD/BAMBULAB_VERIFICATION_CODE."
            )

        url = f"{self.config.api_base_url.rstrip('/')}/v1/user-service/user/login"
        payload = {"account": email}
        if password:
            payload["password"] = password
        if code:
            payload["code"] = code

        LOGGER.debug("Requesting Bambu access token from %s", url)

        try:
            async with session.post(
                url,
                json=payload,
                timeout=aiohttp.ClientTimeout(total=self.config.request_timeout_seconds),
            ) as response:
                if response.status == 401:
                    raise TelemetryUnavailable(
                        "BambuLab login rejected: invalid account or password"
                    )
                if response.status == 429:
                    raise TelemetryUnavailable("BambuLab login rejected: rate limit exceeded")
                if response.status != 200:
                    text = await response.text()
                    raise TelemetryUnavailable(
                        f"BambuLab login failed with status {response.status}: {text.strip()}"
                    )
                data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TelemetryUnavailable(f"BambuLab login request failed: {exc}") from exc

        token = data.get("accessToken") if isinstance(data, dict) else None
        if not token:
            raise TelemetryUnavailable("BambuLab login failed. Access token missing.")

        expires_in = data.get("expiresIn")
        credentials = self.cache.store(
            str(token), float(expires_in) if isinstance(expires_in, (int, float)) else None
        )
        LOGGER.info("Bambu access token issued, expires at %s", credentials.expires_at)
        return credentials
