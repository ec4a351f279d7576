"""Sweep scheduler.

Runs the node lifecycle for every wallet, one wallet at a time in input
order, then sleeps for the sweep interval and starts over.  Processing is
strictly sequential so proxy usage and request pacing stay predictable.

Any unexpected error inside one wallet (an unreadable signing key, a bug in
response handling) is caught at the wallet boundary, recorded as a failed
:class:`~nodekeeper.node.WalletSweepResult`, and the sweep moves on.  Nothing
short of :meth:`SweepScheduler.stop` ends the loop.
"""

import asyncio
import logging
from typing import Callable, List, Optional, Sequence

from nodekeeper.events import EventSink, NullEventSink
from nodekeeper.http_client import ResilientHttpClient
from nodekeeper.node import LayerEdgeApi, NodeLifecycle, WalletSweepResult
from nodekeeper.proxy_pool import ProxyEndpoint, ProxyPool
from nodekeeper.wallet import WalletCredentials, WalletIdentity

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_INTERVAL = 3600.0


class SweepScheduler:
    """Repeat full sweeps over all wallets until stopped.

    Args:
        wallets: Wallet list entries, in processing order.
        proxies: Proxy pool; wallet ``i`` uses ``proxies.assign(i)``.
        client: Shared resilient HTTP client.
        api: Remote endpoint URLs.
        sink: Event sink passed down to every lifecycle.
        interval_seconds: Pause between the end of one sweep and the
            start of the next.
        identity_factory: Builds a :class:`WalletIdentity` from a wallet
            entry.  Called inside the wallet boundary.
    """

    def __init__(
        self,
        wallets: Sequence[WalletCredentials],
        proxies: ProxyPool,
        client: ResilientHttpClient,
        api: LayerEdgeApi,
        sink: Optional[EventSink] = None,
        interval_seconds: float = DEFAULT_SWEEP_INTERVAL,
        identity_factory: Callable[[WalletCredentials], WalletIdentity] = WalletIdentity.from_credentials,
    ):
        self.wallets = list(wallets)
        self.proxies = proxies
        self.client = client
        self.api = api
        self.sink = sink or NullEventSink()
        self.interval_seconds = interval_seconds
        self.identity_factory = identity_factory
        self.sweeps_completed = 0
        self._stop_event = asyncio.Event()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> None:
        """Signal the loop to stop after the current wallet."""
        self._stop_event.set()

    def proxy_for(self, index: int) -> Optional[ProxyEndpoint]:
        return self.proxies.assign(index)

    async def process_wallet(self, index: int, credentials: WalletCredentials) -> WalletSweepResult:
        """Run one wallet's lifecycle inside a failure boundary."""
        proxy = self.proxy_for(index)
        address = credentials.address
        try:
            identity = self.identity_factory(credentials)
            address = identity.address
            self.sink.emit(
                "wallet_started",
                address=address,
                proxy=proxy.masked() if proxy else "No proxy",
                status="start",
            )
            lifecycle = NodeLifecycle(identity, self.client, self.api, proxy, self.sink)
            result = await lifecycle.run()
        except Exception as e:
            logger.debug("Wallet %s failed", address, exc_info=True)
            self.sink.emit("wallet_failed", address=address, error=str(e), status="failed")
            return WalletSweepResult(address=address, overall_status="failed", error=str(e))

        self.sink.emit(
            "wallet_completed", address=address, points=result.points, status="success",
        )
        return result

    async def run_sweep(self) -> List[WalletSweepResult]:
        """Process every wallet once, in order."""
        sweep_number = self.sweeps_completed + 1
        self.sink.emit("sweep_started", sweep=sweep_number, wallets=len(self.wallets))

        results: List[WalletSweepResult] = []
        for index, credentials in enumerate(self.wallets):
            if self.stopped:
                break
            results.append(await self.process_wallet(index, credentials))

        self.sweeps_completed += 1
        failed = sum(1 for r in results if r.overall_status == "failed")
        self.sink.emit(
            "sweep_completed",
            sweep=sweep_number,
            succeeded=len(results) - failed,
            failed=failed,
        )
        return results

    async def _wait_interval(self) -> bool:
        """Sleep for the sweep interval; returns ``True`` if stopped meanwhile."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            return True
        except asyncio.TimeoutError:
            return False

    async def run(self, max_sweeps: Optional[int] = None) -> int:
        """Run sweeps until :meth:`stop` is called or *max_sweeps* is reached.

        Returns:
            Number of sweeps completed by this call.
        """
        logger.info("Sweep scheduler started for %d wallets.", len(self.wallets))
        completed = 0
        while not self.stopped:
            await self.run_sweep()
            completed += 1
            if max_sweeps is not None and completed >= max_sweeps:
                break

            self.sink.emit("sweep_sleeping", seconds=self.interval_seconds)
            if await self._wait_interval():
                break

        logger.info("Sweep scheduler stopped after %d sweeps.", completed)
        return completed
