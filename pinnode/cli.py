from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from dotenv import load_dotenv

from pinnode import __version__
from pinnode.agent import NodeAgent
from pinnode.config import Config, env_config_path, env_log_level, env_threads, load_config
from pinnode.exceptions import PinConfigError

logger = logging.getLogger("pinnode")

BANNER = r"""
     ____ ___ _   _
    |  _ \_ _| \ | |
    | |_) | ||  \| |
    |  __/| || |\  |
    |_|  |___|_| \_|
"""


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="pinnode",
        description="PIN node agent - serve local model backends to the inference network.",
    )
    parser.add_argument(
        "-c", "--config", default=env_config_path(), help="Path to config JSON."
    )
    parser.add_argument(
        "-l", "--log-level", default=env_log_level(), help="Logging level (debug, info, ...)."
    )
    parser.add_argument(
        "-n",
        "--threads",
        type=int,
        default=env_threads(),
        help="Number of concurrent inference calls.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    args = parser.parse_args(argv)
    if args.threads < 1:
        parser.error("--threads must be >= 1")
    return args


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _print_banner() -> None:
    print(BANNER)
    print(f"    PIN Client Daemon v{__version__}")
    print()


def _log_config(config: Config) -> None:
    logger.info("Operator ID: %s", config.client_id)
    logger.info("Nodes configured: %d", len(config.nodes))
    for node in config.nodes:
        logger.info(
            "  - %s | %s | %s | capacity: %d",
            node.alias,
            node.inference_uri,
            node.api_mode,
            node.capacity,
        )


def _install_signal_handlers(agent: NodeAgent) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, agent.flag.stop)
        except (NotImplementedError, RuntimeError):
            # No loop signal support (Windows): hand the stop to the loop thread.
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(agent.flag.stop))


async def _serve(config: Config, threads: int) -> int:
    agent = NodeAgent(config, max_concurrent=threads)
    _install_signal_handlers(agent)
    return await agent.run()


def main(argv: Optional[List[str]] = None) -> None:
    load_dotenv()
    try:
        args = _parse_args(argv)
    except PinConfigError as exc:
        print(f"error: {exc.message}", file=sys.stderr)
        sys.exit(2)

    _configure_logging(args.log_level)
    _print_banner()

    logger.info("Loading config from: %s", args.config)
    try:
        config = load_config(args.config)
    except PinConfigError as exc:
        logger.error("%s", exc.message)
        logger.debug("Config error details: %s", exc.to_dict())
        logger.error("Create config.json with: clientId, apiSecret, nodes")
        logger.error("  Each node requires: alias, inferenceUri, apiMode, region, capacity")
        sys.exit(1)

    _log_config(config)
    asyncio.run(_serve(config, args.threads))


if __name__ == "__main__":
    main()
