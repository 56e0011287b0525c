"""Tests for the MQTT adapter and the pushall status collector."""

import asyncio
import json
from types import SimpleNamespace

import paho.mqtt.client as mqtt
import pytest
import pytest_asyncio

from makerspace_dash.adapters import MQTTClient, MQTTConnectionError, PushStatusCollector
from makerspace_dash.adapters.push import build_pushall_request


class FakeMqttClient:
    """Minimal fake paho-mqtt client for testing."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        events: dict,
        *,
        rc_connect: int = 0,
        rc_disconnect: int = 0,
        publish_rc: int = mqtt.MQTT_ERR_SUCCESS,
        subscribe_rc: int = mqtt.MQTT_ERR_SUCCESS,
        connect_ack: bool = True,
        replies: dict | None = None,
    ):
        self._loop = loop
        self._events = events
        self._rc_connect = rc_connect
        self._rc_disconnect = rc_disconnect
        self._publish_rc = publish_rc
        self._subscribe_rc = subscribe_rc
        self._connect_ack = connect_ack
        self._replies = replies or {}

        self.on_connect = None
        self.on_disconnect = None
        self.on_message = None

    # paho interface -------------------------------------------------
    def enable_logger(self, logger):
        self._events.setdefault("logger_enabled", True)

    def username_pw_set(self, username, password=None):
        self._events["auth"] = (username, password)

    def tls_set(self):
        self._events["tls"] = True

    def connect_async(self, host, port, keepalive):
        self._events["connect_args"] = (host, port, keepalive)
        if self.on_connect and self._connect_ack:
            self._loop.call_soon(
                self.on_connect,
                self,
                None,
                None,
                self._rc_connect,
                None,
            )

    def loop_start(self):
        self._events["loop_start"] = self._events.get("loop_start", 0) + 1

    def loop_stop(self):
        self._events["loop_stop"] = self._events.get("loop_stop", 0) + 1

    def disconnect(self):
        self._events["disconnect_called"] = True
        if self.on_disconnect:
            self._loop.call_soon(
                self.on_disconnect,
                self,
                None,
                None,
                self._rc_disconnect,
                None,
            )

    def publish(self, topic, payload, qos=0, retain=False, properties=None):
        self._events.setdefault("published", []).append((topic, payload, qos, retain))
        for reply_topic, reply in self._replies.get(topic, []):
            message = SimpleNamespace(topic=reply_topic, payload=reply)
            self._loop.call_soon(self.on_message, self, None, message)
        return SimpleNamespace(rc=self._publish_rc)

    def subscribe(self, topic, qos=0):
        self._events.setdefault("subscribed", []).append((topic, qos))
        return self._subscribe_rc, 1


def install_fake(monkeypatch, **options) -> dict:
    loop = asyncio.get_running_loop()
    events: dict = {}

    def factory(*args, **kwargs):
        events["client_kwargs"] = kwargs
        return FakeMqttClient(loop, events, **options)

    monkeypatch.setattr("makerspace_dash.adapters.mqtt.mqtt.Client", factory)
    return events


@pytest_asyncio.fixture
async def mqtt_client(monkeypatch):
    events = install_fake(monkeypatch)

    client = MQTTClient(
        "broker.example",
        8883,
        client_id="dash-1",
        username="u_42",
        password="token",
    )
    await client.connect()

    yield client, events

    await client.disconnect()


@pytest.mark.asyncio
async def test_connect_configures_client(mqtt_client):
    client, events = mqtt_client

    assert events["connect_args"] == ("broker.example", 8883, 60)
    assert events["auth"] == ("u_42", "token")
    assert events["tls"] is True
    assert events["loop_start"] == 1
    assert events["client_kwargs"]["client_id"] == "dash-1"
    assert client.is_connected()


@pytest.mark.asyncio
async def test_publish_and_subscribe_delegate_to_client(mqtt_client):
    client, events = mqtt_client

    client.subscribe("device/P1/report", qos=0)
    client.publish("device/P1/request", b"payload", qos=0)

    assert events["subscribed"] == [("device/P1/report", 0)]
    assert events["published"] == [("device/P1/request", b"payload", 0, False)]


@pytest.mark.asyncio
async def test_publish_failure_raises(monkeypatch):
    install_fake(monkeypatch, publish_rc=mqtt.MQTT_ERR_NO_CONN)
    client = MQTTClient("broker.example", 8883, client_id="dash-1")
    await client.connect()
    try:
        with pytest.raises(MQTTConnectionError):
            client.publish("device/P1/request", b"{}")
    finally:
        await client.disconnect()


@pytest.mark.asyncio
async def test_rejected_connection_raises(monkeypatch):
    events = install_fake(monkeypatch, rc_connect=5)
    client = MQTTClient("broker.example", 8883, client_id="dash-1")

    with pytest.raises(MQTTConnectionError, match="rc=5"):
        await client.connect()

    assert events["loop_stop"] == 1
    assert not client.is_connected()


@pytest.mark.asyncio
async def test_connect_timeout_raises(monkeypatch):
    install_fake(monkeypatch, connect_ack=False)
    client = MQTTClient("broker.example", 8883, client_id="dash-1")

    with pytest.raises(MQTTConnectionError, match="Timed out"):
        await client.connect(timeout=0.05)


@pytest.mark.asyncio
async def test_cancelled_connect_stops_network_loop(monkeypatch):
    events = install_fake(monkeypatch, connect_ack=False)
    client = MQTTClient("broker.example", 8883, client_id="dash-1")

    task = asyncio.create_task(client.connect(timeout=5.0))
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert events["loop_start"] == 1
    assert events["loop_stop"] == 1
    assert not client.is_connected()


@pytest.mark.asyncio
async def test_disconnect_stops_loop(mqtt_client):
    client, events = mqtt_client

    await client.disconnect()

    assert events["disconnect_called"] is True
    assert events["loop_stop"] == 1
    assert not client.is_connected()


def test_pushall_request_shape():
    payload = json.loads(build_pushall_request("17"))
    assert payload == {
        "pushing": {"sequence_id": "17", "command": "pushall", "version": 1, "push_target": 1}
    }


@pytest.mark.asyncio
async def test_collector_gathers_push_status_reports(monkeypatch):
    replies = {
        "device/P1/request": [
            ("device/P1/report", json.dumps({"print": {"command": "push_status", "gcode_state": "RUNNING", "mc_percent": 12}}).encode()),
            ("device/P1/report", json.dumps({"print": {"command": "gcode_line"}}).encode()),
        ],
        "device/P2/request": [
            ("device/P2/report", b"not json"),
            ("device/P2/report", json.dumps({"info": {}}).encode()),
        ],
    }
    events = install_fake(monkeypatch, replies=replies)
    collector = PushStatusCollector("us.mqtt.example", 8883, window_seconds=0.05)

    statuses = await collector.collect("42", "tok", ["P1", "P2"])

    assert statuses == {"P1": {"command": "push_status", "gcode_state": "RUNNING", "mc_percent": 12}}
    assert events["auth"] == ("u_42", "tok")
    assert ("device/P2/report", 0) in events["subscribed"]
    assert [topic for topic, *_ in events["published"]] == [
        "device/P1/request",
        "device/P2/request",
    ]
    assert events["disconnect_called"] is True


@pytest.mark.asyncio
async def test_collector_skips_connecting_without_devices(monkeypatch):
    events = install_fake(monkeypatch)
    collector = PushStatusCollector("us.mqtt.example", 8883)

    assert await collector.collect("42", "tok", []) == {}
    assert "connect_args" not in events


@pytest.mark.asyncio
async def test_collector_propagates_connection_failure(monkeypatch):
    install_fake(monkeypatch, rc_connect=5)
    collector = PushStatusCollector("us.mqtt.example", 8883, window_seconds=0.01)

    with pytest.raises(MQTTConnectionError):
        await collector.collect("42", "bad-token", ["P1"])


@pytest.mark.asyncio
async def test_cancelled_collect_stops_network_loop(monkeypatch):
    events = install_fake(monkeypatch, connect_ack=False)
    collector = PushStatusCollector("us.mqtt.example", 8883, connect_timeout=5.0)

    task = asyncio.create_task(collector.collect("42", "tok", ["P1"]))
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert events.get("loop_stop", 0) == events["loop_start"] == 1
