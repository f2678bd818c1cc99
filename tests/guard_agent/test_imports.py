# These imports should work if PYTHONPATH is set to include /src
from guard_agent.config import GuardSettings
from guard_agent.main import run


def test_guard_agent_imports_and_settings():
    """
    Sanity test:
    - GuardSettings can be constructed
    - Basic field types are correct (pydantic validation works)
    """
    cfg = GuardSettings()

    # agent_id should always be a string (from defaults or .env)
    assert isinstance(cfg.agent_id, str)

    # ports should always be integers (pydantic should coerce/validate)
    assert isinstance(cfg.sensor_tcp_port, int)
    assert isinstance(cfg.status_http_port, int)


def test_settings_defaults_match_alarm_policy(monkeypatch):
    for var in ("CLOSE_RANGE_THRESHOLD_MM", "CAPTURE_SETTLE_DELAY_MS", "SETTLE_GRACE_MS",
                "POLL_INTERVAL_MS", "ALLOW_MANUAL_TRIGGER"):
        monkeypatch.delenv(var, raising=False)

    cfg = GuardSettings(_env_file=None)

    assert cfg.close_range_threshold_mm == 50
    assert cfg.capture_settle_delay_ms == 500
    assert cfg.settle_grace_ms == 1000
    assert cfg.poll_interval_ms == 3000
    assert cfg.allow_manual_trigger is False
    assert cfg.photo_timeout_sec > cfg.alert_timeout_sec


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("SERVER_BASE_URL", "http://10.0.0.5:5000")
    monkeypatch.setenv("ALLOW_MANUAL_TRIGGER", "true")

    cfg = GuardSettings(_env_file=None)

    assert cfg.server_base_url == "http://10.0.0.5:5000"
    assert cfg.allow_manual_trigger is True


def test_run_does_not_crash(monkeypatch):
    """
    run() uses argparse (which reads sys.argv).
    In pytest, sys.argv includes pytest arguments, so we patch it to keep run() clean.
    """
    monkeypatch.setattr("sys.argv", ["guard_agent"])

    code = run()
    assert code == 0
