import time
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from guard_agent.agent import GuardAgent
from guard_agent.status_api import create_app


def _parse_iso_z(ts: str) -> datetime:
    """
    Parse ISO-8601 timestamps that may end with 'Z' (UTC).
    Python's datetime.fromisoformat() doesn't accept trailing 'Z', so convert to +00:00.
    """
    if not isinstance(ts, str):
        raise TypeError(f"timestamp must be str, got {type(ts)}")
    return datetime.fromisoformat(ts.replace("Z", "+00:00"))


def _wait_for(client, key: str, value, timeout: float = 5.0) -> dict:
    deadline = time.monotonic() + timeout
    while True:
        data = client.get("/status").json()
        if data[key] == value or time.monotonic() > deadline:
            return data
        time.sleep(0.01)


def _wait_for_idle(client) -> dict:
    return _wait_for(client, "phase", "idle")


@pytest.fixture
def make_client(cfg, server):
    """Yields a factory; each client runs the app lifespan (agent start/stop)."""
    clients = []

    def factory(sensor_available: bool = False, arm_on_start: bool = False) -> TestClient:
        agent = GuardAgent.simulated(cfg, sensor_available=sensor_available, transport=server.transport)
        client = TestClient(create_app(cfg, agent=agent, arm_on_start=arm_on_start))
        client.__enter__()
        clients.append(client)
        return client

    yield factory

    for client in clients:
        client.__exit__(None, None, None)


def test_health_endpoint(make_client):
    client = make_client()
    response = client.get("/health")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "ok"
    assert "time_utc" in data

    # Validate timestamp format (supports trailing 'Z')
    try:
        _parse_iso_z(data["time_utc"])
    except (ValueError, TypeError) as e:
        pytest.fail(f"time_utc is not a valid ISO 8601 timestamp: {data.get('time_utc')} ({e})")


def test_status_starts_disarmed_and_idle(make_client, cfg):
    client = make_client()

    data = client.get("/status").json()

    assert data["agent_id"] == cfg.agent_id
    assert data["arm_state"] == "disarmed"
    assert data["phase"] == "idle"
    assert data["sensor_available"] is False
    assert data["manual_trigger_available"] is False
    assert data["local_alarm_active"] is False
    assert data["episodes_started"] == 0


def test_trigger_rejected_while_disarmed(make_client):
    client = make_client()

    response = client.post("/trigger")

    assert response.status_code == 409


def test_arm_without_sensor_offers_manual_trigger(make_client):
    client = make_client(sensor_available=False)

    data = client.post("/arm").json()

    assert data["arm_state"] == "armed"
    assert data["sensor_available"] is False
    assert data["manual_trigger_available"] is True
    assert data["notice"]["kind"] == "info"
    assert data["notice"]["title"] == "Sensor not available"


def test_manual_trigger_runs_episode(make_client, server):
    client = make_client(sensor_available=False, arm_on_start=True)

    response = client.post("/trigger")
    assert response.status_code == 200
    body = response.json()
    assert body["accepted"] is True
    assert body["episode_id"]

    data = _wait_for_idle(client)

    assert data["phase"] == "idle"
    assert data["episodes_started"] == 1
    assert data["last_episode"]["episode_id"] == body["episode_id"]
    assert data["last_episode"]["manual"] is True
    assert data["last_episode"]["alert_sent"] is True
    assert data["last_episode"]["photo_sent"] is True
    assert data["local_alarm_active"] is True
    assert "/alert" in server.paths()
    assert "/upload-photo" in server.paths()


def test_manual_trigger_rejected_when_sensor_works(make_client):
    client = make_client(sensor_available=True, arm_on_start=True)

    data = client.get("/status").json()
    assert data["sensor_available"] is True
    assert data["manual_trigger_available"] is False

    assert client.post("/trigger").status_code == 409


def test_stop_local_alarm(make_client):
    client = make_client(sensor_available=False, arm_on_start=True)
    client.post("/trigger")
    assert _wait_for_idle(client)["local_alarm_active"] is True

    data = client.post("/alarm/stop").json()

    assert data["local_alarm_active"] is False


def test_disarm_stops_alarm(make_client):
    client = make_client(sensor_available=False, arm_on_start=True)
    client.post("/trigger")
    _wait_for_idle(client)

    data = client.post("/disarm").json()

    assert data["arm_state"] == "disarmed"
    assert data["local_alarm_active"] is False
    assert data["manual_trigger_available"] is False


def test_stop_remote_alarm(make_client, server):
    client = make_client()
    server.alarm_active = True

    response = client.post("/remote-alarm/stop")

    assert response.status_code == 200
    assert response.json()["status"] == "success"
    assert server.alarm_active is False

    data = client.get("/status").json()
    assert data["remote_alarm"]["active"] is False
    assert data["notice"]["title"] == "Server alarm stopped"


def test_stop_remote_alarm_failure_is_bad_gateway(make_client, server):
    client = make_client()
    # Let the start-up ping settle first.
    assert _wait_for(client, "connection_status", "connected")["connection_status"] == "connected"
    server.fail.add("/stop-alarm")

    response = client.post("/remote-alarm/stop")

    assert response.status_code == 502
    assert "stop" in response.json()["detail"].lower()

    data = client.get("/status").json()
    assert data["connection_status"] == "error"
    assert "HTTP 500" in data["last_error"]


def test_acknowledge_notice(make_client):
    client = make_client()
    assert client.post("/arm").json()["notice"] is not None

    data = client.post("/notice/ack").json()

    assert data["notice"] is None
