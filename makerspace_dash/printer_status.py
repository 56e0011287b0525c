"""Stateless normalization of Bambu cloud payloads.

The cloud reports printer state in two places: the HTTP print-status list
(``task_status``, ``progress``, ``task_name``) and the MQTT device report
(``gcode_state``, ``mc_percent``, ``gcode_file``, error fields). The MQTT
report is fresher and wins whenever it is present.
"""

from __future__ import annotations

import math
from typing import Any, Mapping, Optional

from .core import PrinterStatus, PrintJob

__all__ = [
    "IMAGE_URL_FIELDS",
    "normalize_status",
    "resolve_job_name",
    "resolve_progress",
    "to_print_job",
    "to_progress",
]

# Vendor task payloads use any of these keys for the cover image.
IMAGE_URL_FIELDS = (
    "cover",
    "coverUrl",
    "thumbnail",
    "thumbnailUrl",
    "image",
    "pic",
    "preview",
    "thumb",
    "fileCover",
    "fileCoverUrl",
)


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str) and value.strip():
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number):
        return None
    return number


def normalize_status(
    online: bool,
    push_status: Optional[Mapping[str, Any]] = None,
    task_status: Optional[str] = None,
) -> PrinterStatus:
    """Collapse the vendor state fields into one of the five printer statuses."""
    if not online:
        return PrinterStatus.OFFLINE

    push = push_status or {}
    gcode_state = str(push.get("gcode_state") or "").upper()
    task_state = str(task_status or "").upper()
    print_error = _as_number(push.get("print_error")) or 0.0

    if print_error > 0 or push.get("fail_reason"):
        return PrinterStatus.ERROR

    if "PAUSE" in gcode_state or task_state == "PAUSED":
        return PrinterStatus.PAUSED

    if "RUN" in gcode_state or gcode_state == "PRINTING":
        return PrinterStatus.PRINTING

    if task_state == "PRINTING":
        return PrinterStatus.PRINTING

    return PrinterStatus.IDLE


def to_progress(value: Any) -> float:
    """Parse a percentage, clamped to [0, 100]. Unparseable values count as 0."""
    number = _as_number(value)
    if number is None:
        return 0.0
    return max(0.0, min(100.0, number))


def resolve_progress(
    push_status: Optional[Mapping[str, Any]], print_status: Optional[Mapping[str, Any]]
) -> float:
    if push_status and push_status.get("mc_percent") is not None:
        return to_progress(push_status.get("mc_percent"))
    progress = (print_status or {}).get("progress")
    if isinstance(progress, (int, float)) and not isinstance(progress, bool):
        return float(progress)
    return 0.0


def resolve_job_name(
    push_status: Optional[Mapping[str, Any]], print_status: Optional[Mapping[str, Any]]
) -> Optional[str]:
    name = (push_status or {}).get("gcode_file") or (print_status or {}).get("task_name")
    return str(name) if name else None


def to_print_job(entry: Mapping[str, Any]) -> PrintJob:
    status = entry.get("status")
    image_url = next(
        (entry[key] for key in IMAGE_URL_FIELDS if entry.get(key)),
        None,
    )
    return PrintJob(
        id=str(entry.get("id") if entry.get("id") is not None else ""),
        title=entry.get("title") or "Untitled",
        status=str(status) if status is not None else "unknown",
        device_id=entry.get("deviceId"),
        start_time=entry.get("startTime"),
        end_time=entry.get("endTime"),
        duration_seconds=_as_number(entry.get("costTime")),
        weight_grams=_as_number(entry.get("weight")),
        mode=entry.get("mode") or None,
        image_url=image_url,
    )
