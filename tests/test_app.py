import asyncio
from pathlib import Path

import aiohttp
import pytest

from conftest import FakeIdentity, FakeTelemetry

from makerspace_dash.app import DashboardApp
from makerspace_dash.config import load_config
from makerspace_dash.stores import InMemoryFlagStore, SupabaseFlagStore


def _config(tmp_path: Path, body: str, port: int = 8080):
    config_path = tmp_path / "makerspace-dash.cfg"
    config_path.write_text(
        f"[server]\nhost = 127.0.0.1\nport = {port}\n\n{body}", encoding="utf-8"
    )
    return load_config(config_path, environ={})


@pytest.mark.asyncio
async def test_memory_backend_wires_in_process_stores(tmp_path):
    config = _config(tmp_path, "[tracker]\nstore_backend = memory\n")

    async with DashboardApp(
        config, telemetry=FakeTelemetry(X="printing"), identity=FakeIdentity()
    ) as app:
        annotated = await app.refresh_once()
        assert isinstance(app._flag_store, InMemoryFlagStore)
        assert [item.printer.id for item in annotated] == ["X"]
        record = await app.set_flag_once("X", True)
        assert record.last_status == "printing"


@pytest.mark.asyncio
async def test_supabase_backend_requires_project_settings(tmp_path):
    config = _config(tmp_path, "")

    app = DashboardApp(config, telemetry=FakeTelemetry(), identity=FakeIdentity())
    try:
        with pytest.raises(ValueError, match="SUPABASE_URL"):
            await app.open()
    finally:
        await app.aclose()


@pytest.mark.asyncio
async def test_supabase_backend_builds_table_stores(tmp_path):
    config = _config(
        tmp_path,
        "[supabase]\nurl = https://project.supabase.co\nanon_key = anon\n",
    )

    async with DashboardApp(config, telemetry=FakeTelemetry()) as app:
        assert isinstance(app._flag_store, SupabaseFlagStore)
        assert app._identity is app._supabase


@pytest.mark.asyncio
async def test_serve_exposes_api_until_stopped(tmp_path, unused_tcp_port):
    config = _config(
        tmp_path,
        "[tracker]\nstore_backend = memory\nrefresh_interval_seconds = 0.05\n",
        port=unused_tcp_port,
    )
    telemetry = FakeTelemetry(X="idle")
    stop = asyncio.Event()

    async with DashboardApp(config, telemetry=telemetry, identity=FakeIdentity()) as app:
        server = asyncio.create_task(app.serve(stop_event=stop))
        try:
            url = f"http://127.0.0.1:{unused_tcp_port}"
            async with aiohttp.ClientSession() as session:
                for _ in range(50):
                    try:
                        async with session.get(f"{url}/healthz") as response:
                            status = response.status
                        break
                    except aiohttp.ClientConnectionError:
                        await asyncio.sleep(0.02)
                else:
                    pytest.fail("server did not start")
                assert status == 200

                async with session.get(
                    f"{url}/api/printers/emptying",
                    headers={"Authorization": "Bearer token-bob"},
                ) as response:
                    assert response.status == 200

            for _ in range(50):
                if telemetry.calls >= 2:
                    break
                await asyncio.sleep(0.02)
            assert telemetry.calls >= 2
        finally:
            stop.set()
            await asyncio.wait_for(server, timeout=2.0)
