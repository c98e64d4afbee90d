"""Client for the session refresh endpoint of the auth provider."""

import asyncio
from dataclasses import dataclass
from typing import Dict

import aiohttp
import structlog

from services.errors import RefreshRejectedError, TransportError

logger = structlog.get_logger()

DEFAULT_REFRESH_URL = "https://auth.privy.io/api/v1/sessions"


@dataclass(frozen=True)
class TokenPair:
    token: str
    refresh_token: str


class AuthRefreshClient:
    """Exchanges a refresh token for a new session token pair."""

    def __init__(
        self,
        app_id: str,
        refresh_url: str = DEFAULT_REFRESH_URL,
        origin: str = "",
        timeout: int = 30,
        verify_ssl: bool = True,
    ):
        """Initialize refresh client.

        Args:
            app_id: Application identifier sent as ``privy-app-id``
            refresh_url: Session refresh endpoint
            origin: Origin the session was issued for (also sent as referer)
            timeout: Request timeout in seconds
            verify_ssl: Verify the auth endpoint's TLS certificate

        Raises:
            ValueError: If no application identifier is configured
        """
        if not app_id:
            raise ValueError("PRIVY_APP_ID is required to refresh session tokens")

        self.app_id = app_id
        self.refresh_url = refresh_url
        self.origin = origin.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.verify_ssl = verify_ssl

        self.logger = logger.bind(component="auth_refresh_client")

    def build_headers(self, access_token: str) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "privy-app-id": self.app_id,
            "Authorization": f"Bearer {access_token}",
        }
        if self.origin:
            headers["origin"] = self.origin
            headers["referer"] = f"{self.origin}/"
        return headers

    async def refresh(self, refresh_token: str, access_token: str) -> TokenPair:
        """POST the refresh token and return the new pair.

        Raises:
            TransportError: On connection errors or timeouts
            RefreshRejectedError: On non-2xx status or a body without both tokens
        """
        try:
            connector = aiohttp.TCPConnector(ssl=self.verify_ssl)
            async with aiohttp.ClientSession(timeout=self.timeout, connector=connector) as session:
                async with session.post(
                    self.refresh_url,
                    json={"refresh_token": refresh_token},
                    headers=self.build_headers(access_token),
                ) as response:
                    if response.status < 200 or response.status >= 300:
                        body = await response.text()
                        self.logger.error("refresh_rejected", status=response.status)
                        raise RefreshRejectedError(
                            f"Failed to refresh token: {response.status} {response.reason} - {body[:200]}"
                        )
                    data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"Auth endpoint unreachable: {e}") from e
        except ValueError as e:
            raise RefreshRejectedError(f"Auth endpoint returned invalid JSON: {e}") from e

        token = data.get("token") if isinstance(data, dict) else None
        new_refresh = data.get("refresh_token") if isinstance(data, dict) else None
        if not isinstance(token, str) or not token or not isinstance(new_refresh, str) or not new_refresh:
            raise RefreshRejectedError("Refresh response missing token or refresh_token")

        self.logger.info("token_refreshed")
        return TokenPair(token=token, refresh_token=new_refresh)
