"""Live USD prices for the two tracked assets."""

import asyncio
from dataclasses import dataclass
from decimal import Decimal

from wallet_monitor.common.logging_setup import get_logger
from .coingecko_client import CoinGeckoClient

logger = get_logger(__name__)

SOL_COIN_ID = "solana"
ORE_COIN_ID = "ore"


@dataclass(frozen=True)
class PriceQuote:
    primary_price: Decimal = Decimal("0")
    secondary_price: Decimal = Decimal("0")


class PriceOracle:
    """Fetches SOL and ORE prices; each degrades to zero on its own failure."""

    def __init__(
        self,
        client: CoinGeckoClient,
        primary_coin_id: str = SOL_COIN_ID,
        secondary_coin_id: str = ORE_COIN_ID,
    ):
        self.client = client
        self.primary_coin_id = primary_coin_id
        self.secondary_coin_id = secondary_coin_id

    async def _price_or_zero(self, coin_id: str) -> Decimal:
        try:
            return await self.client.get_current_price(coin_id)
        except Exception as e:
            logger.log_operation(
                operation="fetch_price",
                params={"coin_id": coin_id},
                status="degraded",
                error=str(e),
                message=f"Price lookup for {coin_id} failed, using 0"
            )
            return Decimal("0")

    async def fetch_prices(self) -> PriceQuote:
        primary, secondary = await asyncio.gather(
            self._price_or_zero(self.primary_coin_id),
            self._price_or_zero(self.secondary_coin_id),
        )
        logger.log_operation(
            operation="fetch_prices",
            status="completed",
            message=f"Prices: {self.primary_coin_id}=${primary} {self.secondary_coin_id}=${secondary}"
        )
        return PriceQuote(primary_price=primary, secondary_price=secondary)
