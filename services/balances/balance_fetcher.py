"""Per-wallet SOL and ORE balance lookup with degrade-to-zero semantics.

The SOL balance goes through the endpoint rotator; the ORE reward balance has
a single known source. Either failing leaves that amount at zero and the other
amount intact.
"""

import asyncio
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

from wallet_monitor.common.config import WalletEntry
from wallet_monitor.common.logging_setup import get_logger
from services.prices.price_oracle import PriceQuote
from services.rpc.endpoint_rotator import EndpointRotator
from .ore_stats_client import OreStatsClient
from .solana_client import SolanaRpcClient

logger = get_logger(__name__)

LAMPORTS_PER_SOL = Decimal(10) ** 9
ORE_REWARD_DIVISOR = Decimal(10) ** 11

BALANCE_QUANTUM = Decimal("0.0001")
FIAT_QUANTUM = Decimal("0.01")
ZERO = Decimal("0")


@dataclass(frozen=True)
class BalanceResult:
    address: str
    label: str
    primary_amount: Decimal = ZERO
    secondary_amount: Decimal = ZERO
    fiat_value: Decimal = ZERO


def to_whole_units(raw: Union[int, Decimal], divisor: Decimal) -> Decimal:
    """Scale a smallest-unit amount to whole units, 4 decimal places"""
    return (Decimal(raw) / divisor).quantize(BALANCE_QUANTUM, rounding=ROUND_HALF_UP)


def compute_fiat_value(primary: Decimal, secondary: Decimal, prices: PriceQuote) -> Decimal:
    value = primary * prices.primary_price + secondary * prices.secondary_price
    return value.quantize(FIAT_QUANTUM, rounding=ROUND_HALF_UP)


class BalanceFetcher:
    """Builds a BalanceResult for one wallet; never raises on upstream failure."""

    def __init__(
        self,
        rotator: EndpointRotator,
        rpc_client: SolanaRpcClient,
        ore_client: OreStatsClient,
    ):
        """Initialize balance fetcher.

        Args:
            rotator: Rotator over the SOL RPC endpoints (shared cursor)
            rpc_client: Client issuing ``getBalance`` against one endpoint
            ore_client: Client for the ORE rewards endpoint
        """
        self.rotator = rotator
        self.rpc_client = rpc_client
        self.ore_client = ore_client

    async def fetch_primary(self, address: str) -> Decimal:
        """SOL balance in whole SOL, 0 once every RPC endpoint has failed"""

        async def lookup(endpoint: str) -> int:
            return await self.rpc_client.get_balance(endpoint, address)

        lamports = await self.rotator.call(lookup, default=None)
        if lamports is None:
            logger.log_operation(
                operation="fetch_primary",
                params={"address": address},
                status="degraded",
                error="all RPC endpoints failed",
                message=f"All RPCs failed for {address}, using 0 SOL"
            )
            return ZERO
        return to_whole_units(lamports, LAMPORTS_PER_SOL)

    async def fetch_secondary(self, address: str) -> Decimal:
        """ORE rewards in whole ORE, 0 on any failure"""
        try:
            raw = await self.ore_client.get_rewards(address)
        except Exception as e:
            logger.log_operation(
                operation="fetch_secondary",
                params={"address": address},
                status="degraded",
                error=str(e),
                message=f"ORE balance error for {address}, using 0 ORE"
            )
            return ZERO
        return to_whole_units(raw, ORE_REWARD_DIVISOR)

    async def fetch(self, wallet: WalletEntry, prices: PriceQuote) -> BalanceResult:
        primary, secondary = await asyncio.gather(
            self.fetch_primary(wallet.address),
            self.fetch_secondary(wallet.address),
        )
        return BalanceResult(
            address=wallet.address,
            label=wallet.label,
            primary_amount=primary,
            secondary_amount=secondary,
            fiat_value=compute_fiat_value(primary, secondary, prices),
        )
