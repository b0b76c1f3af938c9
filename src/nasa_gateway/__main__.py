from __future__ import annotations

import argparse
import asyncio
import logging

from aiohttp import web

from nasa_gateway.api import create_app
from nasa_gateway.config import YamlConfigLoader
from nasa_gateway.config.models import AppConfig, ConfigLoadRequest
from nasa_gateway.logging import init_logging
from nasa_gateway.service import build_gateway

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="nasa-gateway", description="NASA open-data gateway")
    parser.add_argument(
        "--config",
        default="data/config/config.yaml",
        help="Path to config.yaml (default: data/config/config.yaml)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True, help="Command to run")

    # Command: serve
    subparsers.add_parser("serve", help="Start the REST gateway and the startup rover sync")

    # Command: sync
    sync_parser = subparsers.add_parser("sync", help="Reconcile stored rover manifests with upstream once")
    sync_parser.add_argument("--rover", action="append", default=None, help="Rover to sync (repeatable)")
    sync_parser.add_argument("--force", action="store_true", help="Sync even if already checked today")

    # Command: populate
    populate_parser = subparsers.add_parser("populate", help="Seed per-sol photo counts by querying each sol")
    populate_parser.add_argument("--rover", action="append", default=None, help="Rover to populate (repeatable)")
    populate_parser.add_argument("--limit", type=int, default=None, help="Maximum number of sols per rover")

    return parser


def _load_config(args: argparse.Namespace) -> AppConfig:
    loader = YamlConfigLoader()
    return loader.load(ConfigLoadRequest(yaml_path=args.config))


def _serve(config: AppConfig) -> None:
    gateway = build_gateway(config)
    app = create_app(config, gateway)
    logger.info("Starting gateway. host=%s port=%s", config.server.host, config.server.port)
    web.run_app(app, host=config.server.host, port=config.server.port, print=None)


async def _sync(config: AppConfig, args: argparse.Namespace) -> None:
    gateway = build_gateway(config)
    try:
        rovers = args.rover or list(config.sync.rovers)
        if args.force:
            for index, rover in enumerate(rovers):
                if index:
                    await asyncio.sleep(config.sync.inter_entity_delay_seconds)
                await gateway.synchronizer.update_rover(rover, force=True)
        else:
            await gateway.synchronizer.sync_all(rovers)
    finally:
        await gateway.close()


async def _populate(config: AppConfig, args: argparse.Namespace) -> None:
    gateway = build_gateway(config)
    try:
        rovers = args.rover or list(config.sync.rovers)
        for rover in rovers:
            logger.info("=== Populating data for %s ===", rover.upper())
            try:
                await gateway.synchronizer.populate_rover(rover, limit=args.limit)
            except Exception:
                logger.exception("Error populating database. rover=%s", rover)
        logger.info("=== Database population completed ===")
    finally:
        await gateway.close()


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()
    config = _load_config(args)
    init_logging(config.logging)

    try:
        if args.command == "serve":
            _serve(config)
        elif args.command == "sync":
            asyncio.run(_sync(config, args))
        elif args.command == "populate":
            asyncio.run(_populate(config, args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user.")


if __name__ == "__main__":
    main()
