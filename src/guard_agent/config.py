from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class GuardSettings(BaseSettings):
    """
    Configuration for the guard agent.
    """

    # Tell pydantic-settings to load environment variables from .env if present.
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",  # ignore unknown env vars
    )

    # --- Identity ---
    agent_id: str = "guard_demo"
    device_name: str = "Mobile Guard"

    # --- Alarm server (Guard agent -> remote server) ---
    server_base_url: str = "http://127.0.0.1:5000"

    # Per-call timeouts (seconds). Photo upload gets the longest budget.
    ping_timeout_sec: float = Field(5.0, gt=0)
    alert_timeout_sec: float = Field(10.0, gt=0)
    photo_timeout_sec: float = Field(30.0, gt=0)
    status_timeout_sec: float = Field(5.0, gt=0)
    stop_alarm_timeout_sec: float = Field(10.0, gt=0)

    # --- Trigger policy ---
    close_range_threshold_mm: float = Field(50.0, ge=0)  # ~5cm
    capture_settle_delay_ms: int = Field(500, ge=0)  # camera warm-up before the shot
    settle_grace_ms: int = Field(1000, ge=0)  # camera indicator stays on after an episode
    allow_manual_trigger: bool = False  # manual trigger even when the sensor works

    # --- Periodic timers ---
    poll_interval_ms: int = Field(3000, gt=0)  # remote alarm flag polling
    reconnect_interval_sec: int = Field(30, gt=0)  # ping while disconnected
    poll_failure_limit: int = Field(3, gt=0)  # failed polls in a row before the server counts as down

    # --- Proximity sensor feed (sensor bridge -> Guard agent) ---
    sensor_enabled: bool = True
    sensor_tcp_host: str = "127.0.0.1"
    sensor_tcp_port: int = 8129
    sensor_distance_unit: Literal["mm", "cm"] = "mm"

    # --- Camera ---
    camera_index: int = 0
    jpeg_quality: int = Field(70, ge=1, le=100)
    photo_dir: Path = Path("data/security")
    photo_library_dir: Optional[Path] = None  # extra copy, like a phone gallery

    # --- Siren ---
    alarm_frequency_hz: int = Field(1000, gt=0)

    # --- Logging ---
    log_level: str = "INFO"
    debug: bool = False

    # --- Local control API (UI -> Guard agent) ---
    status_http_host: str = "127.0.0.1"
    status_http_port: int = 8128


# Convenience global settings object.
# This lets other modules do: from guard_agent.config import settings
settings = GuardSettings()
