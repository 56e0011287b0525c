"""Best-effort collection of Bambu device reports over MQTT."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import re
import time
import uuid
from typing import Any, Dict, Sequence

from .mqtt import MQTTClient, MQTTConnectionError

LOGGER = logging.getLogger(__name__)

REPORT_TOPIC = re.compile(r"^device/(.+)/report$")


def build_pushall_request(sequence_id: str) -> bytes:
    return json.dumps(
        {
            "pushing": {
                "sequence_id": sequence_id,
                "command": "pushall",
                "version": 1,
                "push_target": 1,
            }
        }
    ).encode("utf-8")


class PushStatusCollector:
    """Asks every printer for a full status push and gathers replies for a fixed window."""

    def __init__(
        self,
        host: str,
        port: int,
        *,
        window_seconds: float = 3.0,
        connect_timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.window_seconds = window_seconds
        self.connect_timeout = connect_timeout

    async def collect(
        self, uid: str, token: str, device_ids: Sequence[str]
    ) -> Dict[str, Dict[str, Any]]:
        """Return the latest ``print`` report per device id seen during the window.

        Raises:
            MQTTConnectionError: If the broker cannot be reached or rejects us.
        """
        if not device_ids:
            return {}

        statuses: Dict[str, Dict[str, Any]] = {}

        async def handle_message(topic: str, payload: bytes) -> None:
            match = REPORT_TOPIC.match(topic)
            if not match:
                return
            try:
                parsed = json.loads(payload)
            except ValueError:
                LOGGER.debug("Ignoring malformed report on %s", topic)
                return
            report = parsed.get("print") if isinstance(parsed, dict) else None
            if not isinstance(report, dict):
                return
            command = report.get("command")
            if command and command != "push_status":
                return
            statuses[match.group(1)] = report

        client = MQTTClient(
            self.host,
            self.port,
            client_id=f"makerspace-dash-{uuid.uuid4().hex[:12]}",
            username=f"u_{uid}",
            password=token,
            use_tls=True,
            keepalive=30,
        )
        client.set_message_handler(handle_message)

        await client.connect(timeout=self.connect_timeout)
        try:
            sequence_id = str(int(time.time() * 1000))
            request = build_pushall_request(sequence_id)
            for device_id in device_ids:
                client.subscribe(f"device/{device_id}/report", qos=0)
                client.publish(f"device/{device_id}/request", request, qos=0)
            await asyncio.sleep(self.window_seconds)
        finally:
            with contextlib.suppress(asyncio.TimeoutError, MQTTConnectionError):
                await client.disconnect()

        LOGGER.debug(
            "Collected push status for %d of %d printer(s)", len(statuses), len(device_ids)
        )
        return statuses
