"""
LayerEdge Light Node Keeper - Main Entry Point

Loads the wallet and proxy lists, then keeps every wallet's light node alive:
each sweep checks the node, stops and claims it if running, reconnects it and
reads back the points, then waits an hour and starts over.

Usage:
    python main.py                  # Run sweeps forever
    python main.py --once           # Run a single sweep and exit
    python main.py --register       # One-time referral registration
    python main.py --generate 5     # Create 5 new wallets in wallets.txt
"""
from dotenv import load_dotenv

# Load environment variables from .env file into os.environ
load_dotenv()

import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional, Sequence

from nodekeeper.config import NodeSettings
from nodekeeper.errors import ConfigurationError, NodeKeeperError
from nodekeeper.events import EventSink, LoggingEventSink
from nodekeeper.http_client import ResilientHttpClient
from nodekeeper.logging_setup import setup_logging
from nodekeeper.node import LayerEdgeApi, NodeLifecycle
from nodekeeper.proxy_pool import ProxyPool, load_proxies
from nodekeeper.scheduler import SweepScheduler
from nodekeeper.wallet import WalletCredentials, WalletIdentity, load_wallets, save_wallet

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def positive_int(value: str) -> int:
    count = int(value)
    if count < 1:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value}")
    return count


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="LayerEdge Light Node Keeper")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--once", action="store_true", help="Run a single sweep and exit")
    mode.add_argument("--register", action="store_true", help="Verify the referral code and register every wallet")
    mode.add_argument("--generate", type=positive_int, metavar="N", help="Generate N new wallets into the wallet file")
    parser.add_argument("--log-level", type=str.upper, choices=LOG_LEVELS, help="Override LOG_LEVEL")
    return parser.parse_args(argv)


def load_inputs(settings: NodeSettings):
    """Load proxies and wallets.

    Raises:
        ConfigurationError: If no wallets could be loaded.
    """
    proxies = load_proxies(settings.proxies_file)
    wallets = load_wallets(settings.wallets_file)
    if not wallets:
        raise ConfigurationError(
            f"No wallets loaded; ensure {settings.wallets_file} exists and "
            f"contains one 'address,privateKey' per line"
        )
    return wallets, proxies


def build_scheduler(
    settings: NodeSettings,
    wallets: List[WalletCredentials],
    proxies: ProxyPool,
    sink: EventSink,
    client: Optional[ResilientHttpClient] = None,
) -> SweepScheduler:
    client = client or ResilientHttpClient(settings.request_defaults(), sink=sink)
    return SweepScheduler(
        wallets,
        proxies,
        client,
        LayerEdgeApi(settings.api_base_url),
        sink=sink,
        interval_seconds=settings.sweep_interval_seconds,
    )


async def register_wallets(
    settings: NodeSettings,
    wallets: List[WalletCredentials],
    proxies: ProxyPool,
    sink: EventSink,
    client: Optional[ResilientHttpClient] = None,
) -> int:
    """Verify the referral code once, then register each wallet.

    Returns:
        Number of wallets registered.
    """
    client = client or ResilientHttpClient(settings.request_defaults(), sink=sink)
    api = LayerEdgeApi(settings.api_base_url)
    registered = 0
    invite_checked = False

    for index, credentials in enumerate(wallets):
        try:
            identity = WalletIdentity.from_credentials(credentials)
        except NodeKeeperError as e:
            logger.error(f"❌ Skipping wallet {credentials.address}: {e}")
            continue

        lifecycle = NodeLifecycle(identity, client, api, proxies.assign(index), sink)
        if not invite_checked:
            if not await lifecycle.verify_invite(settings.referral_code):
                logger.error(f"❌ Referral code {settings.referral_code} is not valid; nothing registered.")
                return 0
            invite_checked = True

        if await lifecycle.register_wallet(settings.referral_code):
            registered += 1

    logger.info(f"📝 Registered {registered}/{len(wallets)} wallets.")
    return registered


def generate_wallets(settings: NodeSettings, count: int) -> List[WalletIdentity]:
    """Create *count* random wallets and append them to the wallet file."""
    created = []
    for _ in range(count):
        identity = WalletIdentity.create()
        save_wallet(settings.wallets_file, identity)
        logger.info(f"🔑 New wallet: {identity.address}")
        created.append(identity)
    return created


async def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main execution.

    1. Parses command line arguments and builds settings.
    2. Configures logging.
    3. Loads proxies (optional) and wallets (required).
    4. Runs the requested mode; by default the sweep loop until SIGTERM
       or Ctrl-C.
    """
    args = parse_args(argv)
    settings = NodeSettings()
    if args.log_level:
        settings.log_level = args.log_level

    setup_logging(settings.log_level, settings.log_file)
    logger.info("🚀 Starting LayerEdge Node Keeper...")

    if args.generate is not None:
        generate_wallets(settings, args.generate)
        return 0

    await asyncio.sleep(settings.startup_delay_seconds)

    try:
        wallets, proxies = load_inputs(settings)
    except ConfigurationError as e:
        logger.error(f"❌ Missing wallet configuration: {e}")
        return 1

    logger.info(f"👛 Processing wallets: {len(wallets)} | Proxies: {len(proxies) or 'none'}")
    sink = LoggingEventSink()

    if args.register:
        await register_wallets(settings, wallets, proxies, sink)
        return 0

    scheduler = build_scheduler(settings, wallets, proxies, sink)

    def handle_sigterm():
        logger.info("🛑 Received SIGTERM. Initiating graceful shutdown...")
        scheduler.stop()

    loop = asyncio.get_running_loop()
    if sys.platform != "win32":
        loop.add_signal_handler(signal.SIGTERM, handle_sigterm)

    try:
        await scheduler.run(max_sweeps=1 if args.once else None)
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("👋 Stopping Node Keeper (interrupted)...")
        scheduler.stop()
    return 0


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        pass
