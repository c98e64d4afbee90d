"""Fixed-interval driver for polling cycles.

Cycles never overlap: each one is awaited before the next trigger is
considered, and triggers that fell due while a cycle was still running are
skipped rather than queued.
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional, Sequence

from wallet_monitor.common.config import WalletEntry
from wallet_monitor.common.logging_setup import get_logger, log_cycle_summary
from .aggregator import CycleReport, SnapshotAggregator

logger = get_logger(__name__)


class SnapshotScheduler:
    """Runs SnapshotAggregator cycles once or on a wall-clock interval."""

    def __init__(
        self,
        aggregator: SnapshotAggregator,
        wallets: Sequence[WalletEntry],
        interval_seconds: float = 60,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self.aggregator = aggregator
        self.wallets = list(wallets)
        self.interval_seconds = interval_seconds
        self.sleep = sleep
        self.clock = clock

        self.cycles_run = 0
        self.cycles_failed = 0
        self.triggers_skipped = 0

    async def run_once(self) -> Optional[CycleReport]:
        """Run one cycle; failures are logged and reported as None"""
        self.cycles_run += 1
        cycle = self.cycles_run
        start = self.clock()

        try:
            report = await self.aggregator.run_cycle(self.wallets)
        except Exception as e:
            self.cycles_failed += 1
            logger.log_operation(
                operation="run_cycle",
                params={"cycle": cycle},
                status="failed",
                error=str(e),
                message=f"Cycle {cycle} failed: {e}"
            )
            return None

        log_cycle_summary(__name__, cycle, len(report.results), self.clock() - start)
        return report

    async def run_forever(self, max_cycles: Optional[int] = None) -> None:
        """Trigger a cycle every ``interval_seconds`` until ``max_cycles`` have run"""
        logger.info(
            f"Starting polling loop: {len(self.wallets)} wallets every {self.interval_seconds}s"
        )
        completed = 0
        next_run = self.clock()

        while max_cycles is None or completed < max_cycles:
            await self.run_once()
            completed += 1
            if max_cycles is not None and completed >= max_cycles:
                break

            next_run += self.interval_seconds
            now = self.clock()
            if now > next_run:
                missed = int((now - next_run) // self.interval_seconds) + 1
                next_run += missed * self.interval_seconds
                self.triggers_skipped += missed
                logger.warning(
                    f"Cycle overran the {self.interval_seconds}s interval, skipped {missed} trigger(s)"
                )
            await self.sleep(max(0.0, next_run - now))

        logger.info(f"Polling loop stopped after {completed} cycles ({self.cycles_failed} failed)")
