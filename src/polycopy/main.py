"""CLI entry point — config → bot → loops until SIGINT/SIGTERM.

Usage:
    python -m polycopy
    python -m polycopy --wallet-interval 2 --arb-interval 1
    python -m polycopy --live
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys

from polycopy.bot import CopyArbBot
from polycopy.config import BotConfig, ConfigError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Banner
# ---------------------------------------------------------------------------

BANNER = r"""
╔══════════════════════════════════════════════╗
║   polycopy — Polymarket Copy + Arb Bot       ║
║   Wallet Mirror · Arbitrage-Gated            ║
╚══════════════════════════════════════════════╝
"""


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """커맨드라인 인자 파싱."""
    parser = argparse.ArgumentParser(
        prog="polycopy",
        description="Polymarket arbitrage-gated copy trading bot",
    )
    parser.add_argument(
        "--live", action="store_true", default=False,
        help="Enable live trading (default: dry run)",
    )
    parser.add_argument(
        "--wallet-interval", type=float, default=None,
        help="Wallet check interval in seconds (default: env or 1.0)",
    )
    parser.add_argument(
        "--arb-interval", type=float, default=None,
        help="Arbitrage scan interval in seconds (default: env or 0.5)",
    )
    parser.add_argument(
        "--status-interval", type=float, default=None,
        help="Status report interval in seconds (default: env or 60)",
    )
    parser.add_argument(
        "--log-level", type=str, default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: env LOG_LEVEL or INFO)",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> BotConfig:
    """환경변수 설정 + CLI 오버라이드."""
    config = BotConfig.from_env()
    if args.live:
        config.dry_run = False
    if args.wallet_interval is not None:
        config.wallet_check_interval = args.wallet_interval
    if args.arb_interval is not None:
        config.arb_scan_interval = args.arb_interval
    if args.status_interval is not None:
        config.status_interval = args.status_interval
    if args.log_level:
        config.log_level = args.log_level
    # 최소 간격 재적용
    config.__post_init__()
    return config


# ---------------------------------------------------------------------------
# Main loop
# ---------------------------------------------------------------------------


async def main_loop(config: BotConfig) -> None:
    """봇 실행. 시그널 수신 시 graceful shutdown."""
    wallets = config.enabled_wallets()

    print(BANNER)
    print(f"Mode: {'DRY RUN' if config.dry_run else 'LIVE'}")
    print(f"Wallets: {', '.join(w.name for w in wallets)}")
    print(f"Wallet interval: {config.wallet_check_interval}s")
    print(f"Arb scan interval: {config.arb_scan_interval}s")
    print("-" * 60)

    bot = CopyArbBot.from_config(config)

    # Graceful shutdown
    stop_event = asyncio.Event()

    def _handle_signal():
        print("\n⚡ Shutting down gracefully...")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _handle_signal)
        except NotImplementedError:
            pass  # Windows

    await bot.run(stop_event)
    print("Goodbye! 🤙")


def cli_main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    args = parse_args(argv)

    try:
        config = build_config(args)
    except ConfigError as exc:
        logging.basicConfig(level=logging.INFO)
        logger.error("Configuration error: %s", exc)
        sys.exit(1)

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        config.validate()
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        sys.exit(1)

    asyncio.run(main_loop(config))


if __name__ == "__main__":
    cli_main()
