"""One polling cycle: prices once, every wallet, one stored snapshot."""

import asyncio
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Sequence

from wallet_monitor.common.config import WalletEntry
from wallet_monitor.common.logging_setup import get_logger
from services.balances.balance_fetcher import BalanceFetcher, BalanceResult
from services.prices.price_oracle import PriceOracle, PriceQuote
from .storage import Snapshot, SnapshotStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class CycleReport:
    snapshot: Snapshot
    prices: PriceQuote
    results: Dict[str, BalanceResult] = field(default_factory=dict)

    @property
    def total_primary(self) -> Decimal:
        return sum((r.primary_amount for r in self.results.values()), Decimal("0"))

    @property
    def total_secondary(self) -> Decimal:
        return sum((r.secondary_amount for r in self.results.values()), Decimal("0"))


class SnapshotAggregator:
    """Drives the price oracle and balance fetcher across the wallet list."""

    def __init__(
        self,
        price_oracle: PriceOracle,
        balance_fetcher: BalanceFetcher,
        store: SnapshotStore,
        max_concurrency: int = 5,
    ):
        """Initialize aggregator.

        Args:
            price_oracle: Source of per-cycle prices
            balance_fetcher: Per-wallet balance lookup
            store: Destination for the cycle's snapshot
            max_concurrency: Wallets looked up at the same time
        """
        self.price_oracle = price_oracle
        self.balance_fetcher = balance_fetcher
        self.store = store
        self.max_concurrency = max(1, max_concurrency)

    async def _fetch_wallet(
        self,
        wallet: WalletEntry,
        prices: PriceQuote,
        semaphore: asyncio.Semaphore,
    ) -> BalanceResult:
        async with semaphore:
            try:
                return await self.balance_fetcher.fetch(wallet, prices)
            except Exception as e:
                logger.log_operation(
                    operation="fetch_wallet",
                    params={"label": wallet.label},
                    status="degraded",
                    error=str(e),
                    message=f"Failed to process wallet {wallet.label}, counting it as 0"
                )
                return BalanceResult(address=wallet.address, label=wallet.label)

    async def collect(self, wallets: Sequence[WalletEntry]) -> Dict[str, BalanceResult]:
        """Fetch every wallet against one shared price quote, without storing"""
        prices = await self.price_oracle.fetch_prices()
        return await self._collect_with_prices(wallets, prices)

    async def _collect_with_prices(
        self,
        wallets: Sequence[WalletEntry],
        prices: PriceQuote,
    ) -> Dict[str, BalanceResult]:
        semaphore = asyncio.Semaphore(self.max_concurrency)
        results: List[BalanceResult] = await asyncio.gather(
            *(self._fetch_wallet(wallet, prices, semaphore) for wallet in wallets)
        )
        # gather keeps input order, so the mapping follows the configured order
        return {result.label: result for result in results}

    async def run_cycle(self, wallets: Sequence[WalletEntry]) -> CycleReport:
        """Collect all wallets and append one snapshot of their total value.

        Raises:
            PersistenceError: If the snapshot could not be stored
        """
        start_time = time.time()
        logger.log_operation(
            operation="run_cycle",
            params={"wallets": len(wallets)},
            status="started",
            message=f"Collecting wallet data for {len(wallets)} wallets"
        )

        prices = await self.price_oracle.fetch_prices()
        results = await self._collect_with_prices(wallets, prices)
        total = sum((r.fiat_value for r in results.values()), Decimal("0.00"))

        snapshot = await asyncio.to_thread(self.store.append, total)

        logger.log_operation(
            operation="run_cycle",
            params={"wallets": len(wallets)},
            status="completed",
            duration_ms=int((time.time() - start_time) * 1000),
            message=f"Saved: ${total:.2f}"
        )
        return CycleReport(snapshot=snapshot, prices=prices, results=results)
