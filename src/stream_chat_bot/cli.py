"""
Command line entry point.

Usage:
    stream-chat-bot [--no-msg] [--debug] [--log-level LEVEL] [--chat N]

Environment:
    CHAT_BOT_CONFIG_PATH    Config file path (default: config.yaml)
    CHAT_BOT_STARTUP_ONLY   "true" to shut down right after startup

Exit codes:
    0: Normal exit
    1: Argument or configuration error
"""

import argparse
import asyncio
import os
import sys
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from loguru import logger

from .app_runtime import AppRuntime
from .config_manager import load_config
from .exceptions import ConfigurationError

LOG_LEVELS = {
    "debug": "DEBUG",
    "info": "INFO",
    "warn": "WARNING",
    "error": "ERROR",
}

STARTUP_ONLY_ENV = "CHAT_BOT_STARTUP_ONLY"


class ArgumentParser(argparse.ArgumentParser):
    """argparse exits with 2 on bad arguments; this CLI documents 1."""

    def error(self, message: str):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="stream-chat-bot",
        description="Multi-platform live stream chat bot with OBS overlays",
    )
    parser.add_argument(
        "--no-msg",
        action="store_true",
        help="Do not echo chat messages to the console",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable verbose diagnostics (same as --log-level debug)",
    )
    parser.add_argument(
        "--log-level",
        choices=sorted(LOG_LEVELS),
        default="info",
        help="Console log level (default: info)",
    )
    parser.add_argument(
        "--chat",
        type=int,
        metavar="N",
        default=None,
        help="Exit gracefully after N chat messages were displayed",
    )
    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse CLI arguments. Unknown arguments are ignored with a warning.

    Raises:
        SystemExit: With code 1 on invalid values, 0 for --help
    """
    parser = build_parser()
    args, unknown = parser.parse_known_args(argv)
    if unknown:
        logger.warning(f"Ignoring unknown arguments: {' '.join(unknown)}")
    if args.chat is not None and args.chat < 1:
        parser.error("--chat must be a positive integer")
    return args


def configure_logging(level: str = "info", debug: bool = False) -> str:
    """
    기본 loguru 핸들러를 제거하고 stderr 싱크를 다시 등록합니다.

    Args:
        level: CLI 로그 레벨 (debug, info, warn, error)
        debug: True면 레벨과 무관하게 DEBUG

    Returns:
        str: 적용된 loguru 레벨 이름
    """
    resolved = "DEBUG" if debug else LOG_LEVELS.get(level, "INFO")
    logger.remove()
    logger.add(
        sys.stderr,
        level=resolved,
        format=(
            "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
            "<level>{message}</level>"
        ),
        colorize=True,
    )
    return resolved


def _is_startup_only() -> bool:
    return os.getenv(STARTUP_ONLY_ENV, "").strip().lower() == "true"


async def run(args: argparse.Namespace, adapter_factories: Optional[Dict[str, Any]] = None) -> int:
    try:
        config = load_config()
    except (FileNotFoundError, ConfigurationError) as e:
        logger.critical(f"Failed to load configuration: {e}")
        return 1

    runtime = AppRuntime(
        config,
        adapter_factories=adapter_factories,
        chat_target=args.chat,
        echo_chat=not args.no_msg,
    )
    try:
        await runtime.start()
        if _is_startup_only():
            logger.info(f"{STARTUP_ONLY_ENV} is set, shutting down after startup")
            await runtime.shutdown("startup-only")
        await runtime.wait_until_shutdown()
    except asyncio.CancelledError:
        await runtime.shutdown("interrupted")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = parse_args(argv)
    configure_logging(args.log_level, args.debug)
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting")
        return 0


if __name__ == "__main__":
    sys.exit(main())
