from pydantic import BaseModel, ConfigDict, Field, StrictBool
from typing import Any, Dict, Optional
from datetime import datetime


# Alarm server wire schemas (Guard agent -> server)
class SensorData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    proximity_distance: float = Field(0.0, alias="proximityDistance")
    proximity_accuracy: float = Field(0.0, alias="proximityAccuracy")
    manual_trigger: bool = Field(False, alias="manualTrigger")


class DeviceInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    agent_id: str = Field(..., alias="agentId")
    device_name: str = Field(..., alias="deviceName")
    episode_id: Optional[str] = Field(None, alias="episodeId")


class AlertPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    timestamp: datetime
    type: str = "proximity_alert"
    sensor_data: Optional[SensorData] = Field(None, alias="sensorData")
    device_info: Optional[DeviceInfo] = Field(None, alias="deviceInfo")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ServerAck(BaseModel):
    """Whatever JSON object the server answers with; known keys are typed."""
    model_config = ConfigDict(extra="allow")

    status: Optional[str] = None
    message: Optional[str] = None


class PingOut(BaseModel):
    status: str


class AlarmStatusOut(BaseModel):
    alarm_active: StrictBool


# Local control API schemas (UI -> Guard agent)
class HealthOut(BaseModel):
    status: str
    time_utc: datetime

    model_config = {"json_schema_extra": {"examples": [{"status": "ok", "time_utc": "2026-02-18T12:00:00Z"}]}}


class StatusOut(BaseModel):
    agent_id: str
    arm_state: str
    phase: str
    connection_status: str
    last_error: Optional[str] = None
    remote_alarm: Optional[Dict[str, Any]] = None
    local_alarm_active: bool
    camera_active: bool
    sensor_available: bool
    manual_trigger_available: bool
    current_episode: Optional[Dict[str, Any]] = None
    last_episode: Optional[Dict[str, Any]] = None
    episodes_started: int
    notice: Optional[Dict[str, Any]] = None


class TriggerOut(BaseModel):
    accepted: bool
    episode_id: Optional[str] = None
