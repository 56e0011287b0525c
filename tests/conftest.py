import asyncio
from typing import Optional, Sequence

import pytest

from makerspace_dash.core import (
    AuthenticationError,
    EmptyingRecord,
    PrinterSnapshot,
    PrinterStatus,
    StorageError,
    User,
)
from makerspace_dash.stores import InMemoryFlagStore


def make_printer(
    printer_id: str, status: str = "idle", *, name: Optional[str] = None
) -> PrinterSnapshot:
    return PrinterSnapshot(
        id=printer_id,
        name=name or f"Printer {printer_id}",
        status=PrinterStatus(status),
    )


class FakeTelemetry:
    """Telemetry source returning whatever statuses the test sets."""

    def __init__(self, **statuses: str) -> None:
        self.statuses = dict(statuses)
        self.error: Optional[BaseException] = None
        self.delay = 0.0
        self.calls = 0

    def set(self, **statuses: str) -> None:
        self.statuses.update(statuses)

    async def list_printers(self) -> list[PrinterSnapshot]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return [make_printer(pid, status) for pid, status in self.statuses.items()]


class RecordingFlagStore(InMemoryFlagStore):
    """In-memory flag store that records calls and can be told to fail or stall."""

    def __init__(self) -> None:
        super().__init__()
        self.reads: list[list[str]] = []
        self.writes: list[list[EmptyingRecord]] = []
        self.fail_reads = False
        self.fail_writes = False
        self.read_gate: Optional[asyncio.Event] = None
        self.read_started = asyncio.Event()

    def seed(self, printer_id: str, *, needs_emptying: bool, last_status: Optional[str]) -> None:
        self._rows[printer_id] = EmptyingRecord(
            printer_id=printer_id,
            needs_emptying=needs_emptying,
            last_status=last_status,
        )

    @property
    def calls(self) -> int:
        return len(self.reads) + len(self.writes)

    async def get_many(self, printer_ids: Sequence[str]) -> list[EmptyingRecord]:
        self.reads.append(list(printer_ids))
        self.read_started.set()
        gate, self.read_gate = self.read_gate, None
        if gate is not None:
            await gate.wait()
        if self.fail_reads:
            raise StorageError("read failed")
        return await super().get_many(printer_ids)

    async def upsert_many(self, records: Sequence[EmptyingRecord]) -> None:
        self.writes.append(list(records))
        if self.fail_writes:
            raise StorageError("write failed")
        await super().upsert_many(records)


class FakeIdentity:
    """Identity provider with a fixed set of accounts and issued tokens."""

    def __init__(self) -> None:
        self.accounts = {"ada@example.org": ("secret", User(id="user-ada", email="ada@example.org"))}
        self.tokens: dict[str, User] = {"token-bob": User(id="user-bob", email="bob@example.org")}
        self.signed_out: list[str] = []

    async def sign_in(self, email: str, password: str) -> str:
        account = self.accounts.get(email)
        if account is None or account[0] != password:
            raise AuthenticationError("Invalid login credentials")
        token = f"token-{account[1].id}"
        self.tokens[token] = account[1]
        return token

    async def get_user(self, access_token: str) -> Optional[User]:
        return self.tokens.get(access_token)

    async def sign_out(self, access_token: str) -> None:
        self.signed_out.append(access_token)
        self.tokens.pop(access_token, None)


@pytest.fixture
def telemetry() -> FakeTelemetry:
    return FakeTelemetry()


@pytest.fixture
def flag_store() -> RecordingFlagStore:
    return RecordingFlagStore()
