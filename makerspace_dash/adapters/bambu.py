"""Bambu Lab cloud adapter providing printer and print-job telemetry."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

import aiohttp

from ..config import BambuConfig
from ..core import PrinterSnapshot, PrintJob, TelemetryUnavailable, utcnow
from ..printer_status import (
    normalize_status,
    resolve_job_name,
    resolve_progress,
    to_print_job,
)
from ..token_manager import TokenManager
from .mqtt import MQTTConnectionError
from .push import PushStatusCollector

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class PrinterMetadata:
    id: str
    name: str
    model: str
    serial: str


def to_printer_metadata(device: Mapping[str, Any]) -> PrinterMetadata:
    device_id = str(device.get("dev_id") or "")
    return PrinterMetadata(
        id=device_id,
        name=str(device.get("name") or device_id),
        model=str(
            device.get("dev_product_name") or device.get("dev_model_name") or "BambuLab"
        ),
        serial=device_id,
    )


def _error_details(text: str) -> str:
    if not text:
        return ""
    try:
        parsed = json.loads(text)
    except ValueError:
        return text.strip()
    if isinstance(parsed, dict):
        return str(parsed.get("message") or parsed.get("error") or text.strip())
    return text.strip()


class BambuCloudClient:
    """Polls the Bambu cloud for printers and print jobs.

    Printer metadata (names and models) changes rarely and is cached for
    ``metadata_ttl_seconds``. Live status comes from the HTTP print-status
    list, refined by a short MQTT ``pushall`` round when enabled. If the MQTT
    round fails the HTTP status is used on its own.
    """

    def __init__(
        self,
        config: BambuConfig,
        token_manager: TokenManager,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        push_collector: Optional[PushStatusCollector] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self._tokens = token_manager
        self._base_url = config.api_base_url.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self._clock = clock
        if push_collector is None and config.push_enabled:
            push_collector = PushStatusCollector(
                config.mqtt_host,
                config.mqtt_port,
                window_seconds=config.push_window_seconds,
            )
        self._push = push_collector
        self._metadata: Optional[list[PrinterMetadata]] = None
        self._metadata_fetched_at: float = 0.0
        self._uid: Optional[str] = config.uid

    async def aclose(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def list_printers(self) -> list[PrinterSnapshot]:
        session = await self._ensure_session()
        token = await self._tokens.get_token(session)
        metadata = await self._printer_metadata(token)
        print_statuses = await self._print_statuses(token)
        push_statuses = await self._push_statuses(token, [item.id for item in metadata])

        observed_at = utcnow()
        printers: list[PrinterSnapshot] = []
        for device in metadata:
            print_status = print_statuses.get(device.id)
            push_status = push_statuses.get(device.id)
            online = bool((print_status or {}).get("dev_online", False))
            printers.append(
                PrinterSnapshot(
                    id=device.id,
                    name=device.name,
                    model=device.model,
                    serial=device.serial,
                    status=normalize_status(
                        online, push_status, (print_status or {}).get("task_status")
                    ),
                    progress=resolve_progress(push_status, print_status),
                    job_name=resolve_job_name(push_status, print_status),
                    updated_at=observed_at,
                )
            )
        return printers

    async def list_jobs(self, limit: int = 20) -> list[PrintJob]:
        session = await self._ensure_session()
        token = await self._tokens.get_token(session)
        payload = await self.request_json(
            f"/v1/user-service/my/tasks?limit={max(1, int(limit))}", token=token
        )
        hits = payload.get("hits") if isinstance(payload, dict) else None
        return [to_print_job(entry) for entry in hits or [] if isinstance(entry, dict)]

    async def request_json(
        self, path: str, *, token: Optional[str] = None, body: Any = None
    ) -> Any:
        """Call the cloud API and decode the JSON response.

        Raises:
            TelemetryUnavailable: On transport errors and non-2xx responses.
        """
        session = await self._ensure_session()
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        method = "POST" if body is not None else "GET"
        url = f"{self._base_url}{path}"
        try:
            async with session.request(
                method,
                url,
                json=body,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.config.request_timeout_seconds),
            ) as response:
                if response.status >= 400:
                    details = _error_details(await response.text())
                    if response.status == 401:
                        self._tokens.invalidate()
                    suffix = f" {details}" if details else ""
                    raise TelemetryUnavailable(
                        f"BambuLab API request failed ({response.status}).{suffix}"
                    )
                return await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TelemetryUnavailable(f"BambuLab API request failed: {exc}") from exc
        except ValueError as exc:
            raise TelemetryUnavailable("BambuLab API returned invalid JSON") from exc

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _printer_metadata(self, token: str) -> list[PrinterMetadata]:
        now = self._clock()
        if (
            self._metadata is not None
            and now - self._metadata_fetched_at < self.config.metadata_ttl_seconds
        ):
            return self._metadata

        payload = await self.request_json("/v1/iot-service/api/user/bind", token=token)
        devices = payload.get("devices") if isinstance(payload, dict) else None
        metadata = [
            to_printer_metadata(device)
            for device in devices or []
            if isinstance(device, dict) and device.get("dev_id")
        ]
        self._metadata = metadata
        self._metadata_fetched_at = now
        LOGGER.debug("Loaded metadata for %d printer(s)", len(metadata))
        return metadata

    async def _print_statuses(self, token: str) -> Dict[str, Mapping[str, Any]]:
        payload = await self.request_json(
            "/v1/iot-service/api/user/print?force=true", token=token
        )
        devices = payload.get("devices") if isinstance(payload, dict) else None
        return {
            str(entry["dev_id"]): entry
            for entry in devices or []
            if isinstance(entry, dict) and entry.get("dev_id")
        }

    async def _resolve_uid(self, token: str) -> str:
        if self._uid:
            return self._uid
        payload = await self.request_json(
            "/v1/design-user-service/my/preference", token=token
        )
        uid = payload.get("uid") if isinstance(payload, dict) else None
        if not uid:
            raise TelemetryUnavailable("Could not resolve BambuLab UID.")
        self._uid = str(uid)
        return self._uid

    async def _push_statuses(
        self, token: str, device_ids: Sequence[str]
    ) -> Dict[str, Dict[str, Any]]:
        if self._push is None or not device_ids:
            return {}
        try:
            uid = await self._resolve_uid(token)
            return await self._push.collect(uid, token, device_ids)
        except (MQTTConnectionError, TelemetryUnavailable, OSError) as exc:
            LOGGER.warning("MQTT status push unavailable, using HTTP status only: %s", exc)
            return {}

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session
