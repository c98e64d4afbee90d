"""ORE stats API client for unclaimed mining rewards."""

import asyncio
from decimal import Decimal, InvalidOperation
from typing import Any, Dict

import aiohttp
import structlog

from services.errors import TransportError, UpstreamDataError

logger = structlog.get_logger()

ORE_STATS_BASE_URL = "https://api.ore-stats.com"


class OreStatsClient:
    """Async client for ``GET /miner/{address}``."""

    def __init__(self, base_url: str = ORE_STATS_BASE_URL, timeout: int = 30, verify_ssl: bool = True):
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.verify_ssl = verify_ssl

        self.logger = logger.bind(component="ore_stats_client")

    async def get_miner(self, address: str) -> Dict[str, Any]:
        """Fetch the raw miner record for a wallet.

        Raises:
            TransportError: On HTTP failures
            UpstreamDataError: If the body is not a JSON object
        """
        url = f"{self.base_url}/miner/{address}"
        try:
            connector = aiohttp.TCPConnector(ssl=self.verify_ssl)
            async with aiohttp.ClientSession(timeout=self.timeout, connector=connector) as session:
                async with session.get(url) as response:
                    response.raise_for_status()
                    data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"ORE stats transport error: {e}") from e
        except ValueError as e:
            raise UpstreamDataError(f"ORE stats returned invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise UpstreamDataError("ORE stats response is not a JSON object")
        return data

    async def get_rewards(self, address: str) -> Decimal:
        """Get unclaimed rewards for a wallet in the smallest ORE unit.

        Raises:
            TransportError: On HTTP failures
            UpstreamDataError: If ``rewards_ore`` is missing or not numeric
        """
        data = await self.get_miner(address)
        return parse_rewards(data)


def parse_rewards(data: Dict[str, Any]) -> Decimal:
    value = data.get("rewards_ore")
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise UpstreamDataError(f"rewards_ore missing or not numeric: {value!r}")

    try:
        rewards = Decimal(str(value))
    except InvalidOperation as e:
        raise UpstreamDataError(f"rewards_ore is not a number: {value!r}") from e

    if not rewards.is_finite() or rewards < 0:
        raise UpstreamDataError(f"rewards_ore out of range: {value!r}")
    return rewards
