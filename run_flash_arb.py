#!/usr/bin/env python3
"""
Flash-Loan Arbitrage Runner

Usage:
    # Dry run, single tick, print the strategy state
    python run_flash_arb.py --config configs/base_flash_arb.yaml --once

    # Continuous dry run
    python run_flash_arb.py --config configs/base_flash_arb.yaml

    # Control API + dashboard feed on port 8000 (strategies started via API)
    python run_flash_arb.py --config configs/base_flash_arb.yaml --serve --port 8000

    # Live trading (requires BOT_PRIVATE_KEY and FLASH_ARB_CONTRACT_ADDRESS)
    python run_flash_arb.py --config configs/base_flash_arb.yaml --live
"""

import argparse
import asyncio
import json
import logging
import sys

from dotenv import load_dotenv

import logging_config
from flash_arbitrage.app import Application, build_application
from flash_arbitrage.config import load_config
from flash_arbitrage.exceptions import ConfigurationError, NetworkError
from flash_arbitrage.utils import get_logger
from flash_arbitrage.version import get_version

logger = get_logger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Base flash-loan arbitrage controller"
    )
    parser.add_argument("--config", required=True, help="Path to YAML configuration file")

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--live", action="store_true", help="Submit real transactions (overrides DRY_RUN)"
    )
    mode.add_argument(
        "--dry-run", action="store_true", help="Simulate fills only (overrides DRY_RUN)"
    )

    parser.add_argument("--once", action="store_true", help="Run a single tick and exit")
    parser.add_argument("--serve", action="store_true", help="Run the HTTP control API")
    parser.add_argument("--host", default="0.0.0.0", help="Control API host")
    parser.add_argument("--port", type=int, default=8000, help="Control API port")
    parser.add_argument("--strategy", help="Strategy id to run (default: first configured)")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    return parser.parse_args(argv)


async def run_once(application: Application, strategy_id: str) -> int:
    controller = application.registry.get(strategy_id)
    await controller.tick()
    print(json.dumps(controller.get_state().to_dict(), indent=2))
    print(json.dumps(application.scanner.get_stats(), indent=2, default=str))
    return 0


async def run_loop(application: Application, strategy_id: str) -> int:
    controller = application.registry.get(strategy_id)
    controller.start()
    try:
        while controller.is_running:
            await asyncio.sleep(1)
    finally:
        await application.shutdown()

    state = controller.get_state()
    if state.auto_paused:
        logger.error(f"Strategy auto-paused after {state.consecutive_failures} failures")
        return 2
    return 0 if state.status.value != "ERROR" else 1


async def serve(application: Application, host: str, port: int) -> int:
    import uvicorn

    from flash_arbitrage.web_api import create_app

    app = create_app(application)
    config = uvicorn.Config(app, host=host, port=port, log_level="info")
    server = uvicorn.Server(config)
    logger.info(f"Control API listening on http://{host}:{port}")
    await server.serve()
    return 0


async def main(argv=None) -> int:
    args = parse_args(argv)

    if args.debug:
        logging_config.setup_debug()
    else:
        logging_config.setup()

    # Load environment variables
    load_dotenv()

    try:
        config = load_config(args.config)
        application = build_application(config)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    if args.live:
        logger.warning("LIVE MODE requested on the command line")
        try:
            application.runtime_config.set_live_mode(True)
        except ConfigurationError as e:
            logger.error(str(e))
            return 1
    elif args.dry_run:
        application.runtime_config.set_live_mode(False)

    strategy_id = args.strategy or config.strategies[0].id
    if strategy_id not in application.registry:
        logger.error(f"Unknown strategy: {strategy_id}")
        return 1

    try:
        network = await application.chain.describe()
        logger.info(f"flash-arbitrage {get_version()} connected to {network}")
    except NetworkError as e:
        logger.error(f"Cannot reach RPC endpoint: {e}")
        return 1

    mode = "LIVE" if application.runtime_config.live_mode else "DRY RUN"
    logger.info(f"Running in {mode} mode")

    if args.once:
        return await run_once(application, strategy_id)
    if args.serve:
        if args.strategy:
            application.registry.start(strategy_id)
        return await serve(application, args.host, args.port)
    return await run_loop(application, strategy_id)


def cli():
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Interrupted, exiting")
        sys.exit(130)


if __name__ == "__main__":
    cli()
