"""Domain models for printers, emptying state and print jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat(timespec="seconds").replace("+00:00", "Z")


class PrinterStatus(str, Enum):
    IDLE = "idle"
    PRINTING = "printing"
    PAUSED = "paused"
    OFFLINE = "offline"
    ERROR = "error"


@dataclass(slots=True)
class PrinterSnapshot:
    """Point-in-time view of one printer as reported by the telemetry source."""

    id: str
    name: str
    status: PrinterStatus
    model: str = "BambuLab"
    serial: str = ""
    progress: float = 0.0
    job_name: Optional[str] = None
    updated_at: datetime = field(default_factory=utcnow)

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "model": self.model,
            "serial": self.serial,
            "status": self.status.value,
            "progress": self.progress,
            "updatedAt": isoformat(self.updated_at),
        }
        if self.job_name:
            payload["jobName"] = self.job_name
        return payload


@dataclass(slots=True)
class EmptyingRecord:
    """Persisted emptying state for one printer."""

    printer_id: str
    needs_emptying: bool = False
    last_status: Optional[str] = None
    updated_at: Optional[datetime] = None


@dataclass(slots=True, frozen=True)
class AnnotatedPrinter:
    printer: PrinterSnapshot
    needs_emptying: bool

    def as_dict(self) -> Dict[str, Any]:
        payload = self.printer.as_dict()
        payload["needsEmptying"] = self.needs_emptying
        return payload


@dataclass(slots=True)
class PrintJob:
    """A print task from the vendor's job history."""

    id: str
    title: str = "Untitled"
    status: str = "unknown"
    device_id: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    duration_seconds: Optional[float] = None
    weight_grams: Optional[float] = None
    mode: Optional[str] = None
    image_url: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "status": self.status,
        }
        optional = {
            "deviceId": self.device_id,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "durationSeconds": self.duration_seconds,
            "weightGrams": self.weight_grams,
            "mode": self.mode,
            "imageUrl": self.image_url,
        }
        payload.update({key: value for key, value in optional.items() if value is not None})
        return payload


@dataclass(slots=True)
class JobDescription:
    """Ownership and free-text annotation attached to a print job."""

    job_id: str
    owner_id: Optional[str] = None
    description: Optional[str] = None
    updated_at: Optional[datetime] = None


@dataclass(slots=True)
class SkippedClaim:
    job_id: str
    reason: str


@dataclass(slots=True)
class ClaimResult:
    claimed: List[str] = field(default_factory=list)
    skipped: List[SkippedClaim] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "claimed": list(self.claimed),
            "skipped": [
                {"jobId": item.job_id, "reason": item.reason} for item in self.skipped
            ],
        }


@dataclass(slots=True, frozen=True)
class User:
    id: str
    email: Optional[str] = None
