from __future__ import annotations

import argparse
import asyncio
import json
import logging

from .config import GuardSettings
from .logging import configure_logging

logger = logging.getLogger(__name__)


def _reading_list(text: str) -> list[float]:
    try:
        values = [float(part) for part in text.split(",") if part.strip()]
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"expected comma-separated distances in mm, got '{text}'") from e
    if not values:
        raise argparse.ArgumentTypeError("at least one distance is required")
    return values


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Mobile Guard - proximity alarm agent")
    parser.add_argument("--print-config", action="store_true", help="Print resolved configuration and exit.")
    parser.add_argument("--ping", action="store_true", help="Check that the alarm server answers /ping.")
    parser.add_argument("--http-serve", action="store_true", help="Run the agent with its local control API.")
    parser.add_argument("--arm", action="store_true", help="Arm security mode on start-up.")
    parser.add_argument(
        "--simulate",
        action="store_true",
        help="Dry run with in-memory devices against the configured server.",
    )
    parser.add_argument(
        "--readings",
        type=_reading_list,
        default=[120.0, 30.0, 10.0],
        help="Distances (mm) fed to the simulated sensor, e.g. 120,30,10.",
    )
    return parser


async def _ping(cfg: GuardSettings) -> int:
    from .errors import ServerConnectionError
    from .gateway import GatewayTimeouts, ServerGateway

    async with ServerGateway(cfg.server_base_url, GatewayTimeouts.from_settings(cfg)) as gateway:
        try:
            await gateway.ping()
        except ServerConnectionError as e:
            print(f"Server unreachable: {e}")
            return 1

    print(f"Server reachable at {cfg.server_base_url}")
    return 0


async def _simulate(cfg: GuardSettings, readings: list[float]) -> int:
    from .agent import GuardAgent

    agent = GuardAgent.simulated(cfg)
    await agent.start(arm=True)
    try:
        for distance in readings:
            agent.sensor_driver.emit(distance)
            await asyncio.sleep(0)
        await agent.orchestrator.wait_idle()
        episode = agent.store.state.last_episode
    finally:
        await agent.stop()

    if episode is None:
        print("No episode fired")
    else:
        print(json.dumps(episode.to_dict(), indent=2))
    return 0


def run(argv: list[str] | None = None, cfg: GuardSettings | None = None) -> int:
    """
    Guard agent entrypoint.
    """
    try:
        args = build_parser().parse_args(argv)

        # Load settings from environment / .env
        cfg = cfg or GuardSettings()

        # Setup logging using configured level
        configure_logging(cfg.log_level)

        logger.info("Guard agent starting")
        logger.info(
            "Resolved config: agent_id=%s server=%s sensor=%s:%s threshold=%smm",
            cfg.agent_id, cfg.server_base_url, cfg.sensor_tcp_host, cfg.sensor_tcp_port,
            cfg.close_range_threshold_mm,
        )

        if args.print_config:
            print(cfg.model_dump())
            return 0

        if args.ping:
            return asyncio.run(_ping(cfg))

        if args.simulate:
            return asyncio.run(_simulate(cfg, args.readings))

        if args.http_serve:
            import uvicorn
            from .status_api import create_app

            app = create_app(cfg, arm_on_start=args.arm)

            logger.info("Starting control API at http://%s:%s", cfg.status_http_host, cfg.status_http_port)
            uvicorn.run(
                app,
                host=cfg.status_http_host,
                port=cfg.status_http_port,
                log_level=cfg.log_level.lower(),
            )
            return 0

        logger.info("Nothing to do. Use --print-config, --ping, --simulate or --http-serve.")
        return 0

    except Exception:
        # Log unexpected exceptions so the agent is diagnosable.
        logger.exception("Guard agent crashed due to an unexpected error")
        if cfg is not None and (cfg.debug or cfg.log_level.upper() == "DEBUG"):
            raise
        return 1


if __name__ == "__main__":
    raise SystemExit(run())
