from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, HTTPException, status

from .agent import GuardAgent
from .config import GuardSettings
from .errors import StopAlarmError
from .schemas import HealthOut, ServerAck, StatusOut, TriggerOut


def create_app(cfg: GuardSettings, agent: Optional[GuardAgent] = None, arm_on_start: bool = False) -> FastAPI:
    """
    Create the local control API for the guard agent.

    The lifespan starts the agent and stops it on shutdown.
    """
    agent = agent or GuardAgent.from_settings(cfg)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await agent.start(arm=arm_on_start)
        yield
        await agent.stop()

    app = FastAPI(
        title="Mobile Guard - Control API",
        version="0.1.0",
        description="Local endpoints for the guard UI: state, arm/disarm, manual trigger and alarm control.",
        lifespan=lifespan,
    )
    app.state.agent = agent

    def status_out() -> StatusOut:
        return StatusOut(agent_id=cfg.agent_id, **agent.store.snapshot())

    @app.get("/")
    def root():
        return {"status": "guard agent running"}

    @app.get("/health", response_model=HealthOut, tags=["health"])
    def health() -> HealthOut:
        """Liveness check: returns OK if the guard agent process is running."""
        return HealthOut(status="ok", time_utc=datetime.now(timezone.utc))

    @app.get("/status", response_model=StatusOut, tags=["state"])
    def get_status() -> StatusOut:
        """Snapshot of arm state, episode phase, connection and alarm flags."""
        return status_out()

    @app.post("/arm", response_model=StatusOut, tags=["control"])
    async def arm() -> StatusOut:
        await agent.orchestrator.arm()
        return status_out()

    @app.post("/disarm", response_model=StatusOut, tags=["control"])
    async def disarm() -> StatusOut:
        await agent.orchestrator.disarm()
        return status_out()

    @app.post("/trigger", response_model=TriggerOut, tags=["control"])
    async def trigger() -> TriggerOut:
        """Manual trigger; only accepted when the sensor cannot be used."""
        episode = agent.orchestrator.manual_trigger()
        if episode is None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Manual trigger not accepted in the current state",
            )
        return TriggerOut(accepted=True, episode_id=episode.episode_id)

    @app.post("/alarm/stop", response_model=StatusOut, tags=["control"])
    async def stop_local_alarm() -> StatusOut:
        await agent.orchestrator.stop_local_alarm()
        return status_out()

    @app.post("/remote-alarm/stop", response_model=ServerAck, tags=["control"])
    async def stop_remote_alarm() -> ServerAck:
        try:
            return await agent.orchestrator.stop_remote_alarm()
        except StopAlarmError as e:
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=f"Failed to stop the server alarm: {e}",
            ) from e

    @app.post("/notice/ack", response_model=StatusOut, tags=["state"])
    def acknowledge_notice() -> StatusOut:
        agent.store.acknowledge_notice()
        return status_out()

    return app
