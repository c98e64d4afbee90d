"""Authenticated lookup of a miner's public deployment settings."""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp
import structlog

from services.auth.credential_refresher import CredentialRefresher
from services.errors import MinerApiError

logger = structlog.get_logger()


@dataclass(frozen=True)
class MinerSettings:
    deployment_type: Optional[str] = None
    ev_percent: Optional[str] = None
    total_sol: Optional[float] = None
    tiles_per_round: Optional[int] = None
    timeframe: Optional[str] = None

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> "MinerSettings":
        """Map the API's ``settings`` object; an absent object gives empty settings"""
        settings = data.get("settings") if isinstance(data, dict) else None
        if not isinstance(settings, dict):
            return cls()

        min_ev = settings.get("min_ev_percent")
        return cls(
            deployment_type=settings.get("deployment_mode"),
            ev_percent=f"{min_ev}%" if min_ev is not None else None,
            total_sol=settings.get("deployment_amount_sol"),
            tiles_per_round=settings.get("tiles_per_round"),
            timeframe=settings.get("mining_cost_timeframe"),
        )


class MinerSettingsClient:
    """Client for ``GET /api/game/public-settings/{address}``."""

    def __init__(
        self,
        refresher: CredentialRefresher,
        base_url: str,
        app_id: str,
        origin: str = "",
        timeout: int = 30,
        verify_ssl: bool = True,
    ):
        self.refresher = refresher
        self.base_url = base_url.rstrip("/")
        self.app_id = app_id
        self.origin = origin.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.verify_ssl = verify_ssl

        self.logger = logger.bind(component="miner_settings_client")

    async def get_raw_settings(self, address: str) -> Dict[str, Any]:
        """Fetch the upstream JSON unchanged.

        Raises:
            CredentialError: If no valid bearer token can be obtained
            MinerApiError: On HTTP failures or a non-object body
        """
        if not address:
            raise ValueError("Missing address parameter")

        token = await self.refresher.get_bearer_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "privy-app-id": self.app_id,
        }
        if self.origin:
            headers["referer"] = f"{self.origin}/"

        url = f"{self.base_url}/api/game/public-settings/{address}"
        try:
            connector = aiohttp.TCPConnector(ssl=self.verify_ssl)
            async with aiohttp.ClientSession(timeout=self.timeout, connector=connector) as session:
                async with session.get(url, headers=headers) as response:
                    response.raise_for_status()
                    data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.error("miner_settings_failed", error=str(e))
            raise MinerApiError(f"Error fetching miner public settings: {e}") from e
        except ValueError as e:
            raise MinerApiError(f"Miner API returned invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise MinerApiError("Miner API response is not a JSON object")
        return data

    async def get_settings(self, address: str) -> MinerSettings:
        data = await self.get_raw_settings(address)
        return MinerSettings.from_response(data)
