import pytest
from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer

from makerspace_dash.health import HEALTH_KEY, HealthReporter, handle_health


@pytest.mark.asyncio
async def test_health_reporter_snapshot():
    reporter = HealthReporter()

    await reporter.update("telemetry", True)
    await reporter.update("storage", False, "Emptying state write timed out after 10.0s")

    snapshot = await reporter.snapshot()

    assert snapshot["status"] == "degraded"
    component_list = snapshot.get("components", [])
    assert isinstance(component_list, list)
    components = {item["name"]: item for item in component_list}
    assert components["telemetry"]["healthy"] is True
    assert components["storage"]["healthy"] is False
    assert components["storage"]["detail"].startswith("Emptying state write")


@pytest.mark.asyncio
async def test_empty_reporter_is_ok():
    snapshot = await HealthReporter().snapshot()

    assert snapshot == {"status": "ok", "components": []}


@pytest.mark.asyncio
async def test_health_handler_serves_snapshot():
    reporter = HealthReporter()
    await reporter.update("telemetry", True)
    app = web.Application()
    app[HEALTH_KEY] = reporter
    app.router.add_get("/healthz", handle_health)

    async with TestClient(TestServer(app)) as client:
        response = await client.get("/healthz")
        assert response.status == 200
        assert (await response.json())["status"] == "ok"

        await reporter.update("telemetry", False, "down")
        response = await client.get("/healthz")
        assert response.status == 503
        assert (await response.json())["status"] == "degraded"
