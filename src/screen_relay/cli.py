"""
Command Line Entry Point
========================

    screen-relay serve   [--host H] [--port P] [--policy allow|reject]
    screen-relay present [--url URL] [--name NAME] [--fps N] [--quality Q] [--resolution 720p]
    screen-relay view    [--url URL] [--name NAME] [--output latest.jpg]

All subcommands accept --config PATH and --log-level LEVEL.
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from screen_relay.config import Settings, load_config, setup_logging


logger = logging.getLogger(__name__)


def _override(settings: Settings, section: str, **values) -> Settings:
    """Re-validate `settings` with non-None values applied to one section."""
    updates = {k: v for k, v in values.items() if v is not None}
    if not updates:
        return settings
    data = settings.model_dump()
    data[section].update(updates)
    return Settings.model_validate(data)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="screen-relay",
        description="Local-network screen sharing: relay hub, presenter and viewer",
    )
    parser.add_argument("--config", type=str, default=None, help="Path to config.yaml")
    parser.add_argument("--log-level", type=str, default=None, help="Log level (default: INFO)")

    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the relay hub")
    serve.add_argument("--host", type=str, default=None, help="Bind host (default: 0.0.0.0)")
    serve.add_argument("--port", type=int, default=None, help="Bind port (default: 3000)")
    serve.add_argument(
        "--policy",
        choices=["allow", "reject"],
        default=None,
        help="Second presenter handling (default: allow)",
    )

    for name, help_text in (("present", "Share this screen"), ("view", "Watch the presenter")):
        client = sub.add_parser(name, help=help_text)
        client.add_argument("--url", type=str, default=None, help="Hub WebSocket URL")
        client.add_argument("--name", type=str, default=None, help="Display name")

    present = sub.choices["present"]
    present.add_argument("--fps", type=int, default=None, help="Target frame rate (default: 10)")
    present.add_argument("--quality", type=float, default=None, help="Initial quality (default: 0.7)")
    present.add_argument(
        "--resolution",
        choices=["480p", "720p", "1080p"],
        default=None,
        help="Resolution preset (default: 720p)",
    )
    present.add_argument("--monitor", type=int, default=None, help="mss monitor index (default: 1)")

    view = sub.choices["view"]
    view.add_argument(
        "--output",
        type=str,
        default="latest.jpg",
        help="File the newest frame is written to (default: latest.jpg)",
    )

    return parser


def serve(settings: Settings) -> None:
    import uvicorn

    from screen_relay.main import create_app

    uvicorn.run(
        create_app(settings),
        host=settings.server.host,
        port=settings.server.port,
        ws_max_size=settings.server.max_message_size,
        ws_ping_interval=settings.server.ws_ping_interval_sec,
        ws_ping_timeout=settings.server.ws_ping_timeout_sec,
    )


async def present(settings: Settings) -> None:
    from screen_relay.client.presenter import PresenterSession

    session = PresenterSession(settings)
    session.start_sharing()
    try:
        await session.run()
    finally:
        await session.stop()
        logger.info(f"Capture summary: {session.capturer.metrics.to_dict()}")


async def view(settings: Settings, output: str) -> None:
    from screen_relay.client.viewer import ViewerSession
    from screen_relay.viewer.decoder import SnapshotRenderer

    session = ViewerSession(
        settings,
        renderer=SnapshotRenderer(output),
        on_quality_change=lambda q: logger.info(f"Connection quality: {q.value}"),
    )
    try:
        await session.run()
    finally:
        await session.stop()
        logger.info(f"Viewer summary: {session.consumer.get_metrics()}")


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    settings = load_config(args.config)
    settings = _override(settings, "logging", level=args.log_level)
    setup_logging(settings)

    try:
        if args.command == "serve":
            settings = _override(settings, "server", host=args.host, port=args.port)
            settings = _override(settings, "hub", presenter_policy=args.policy)
            serve(settings)
        elif args.command == "present":
            settings = _override(settings, "client", url=args.url, display_name=args.name)
            settings = _override(
                settings,
                "capture",
                target_fps=args.fps,
                initial_quality=args.quality,
                resolution=args.resolution,
                monitor=args.monitor,
            )
            asyncio.run(present(settings))
        elif args.command == "view":
            settings = _override(settings, "client", url=args.url, display_name=args.name)
            asyncio.run(view(settings, args.output))
    except KeyboardInterrupt:
        logger.info("Interrupted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
