"""Keeps the stored session credential usable.

Callers ask for a valid credential; the refresher answers from storage while
the access token has more than ``buffer_seconds`` left, and otherwise
exchanges the refresh token once and persists the new pair. Concurrent
callers share a single in-flight resolution so a refresh token is never
spent twice at the same time.
"""

import asyncio
import time
from typing import Callable, Dict, Any, Optional

from wallet_monitor.common.logging_setup import get_logger, fingerprint
from services.errors import CredentialError, MonitorError, PersistenceError
from .jwt_claims import DEFAULT_REFRESH_BUFFER_SECONDS, decode_token_expiry, is_token_stale
from .refresh_client import AuthRefreshClient
from .token_store import Credential, TokenStore

logger = get_logger(__name__)
audit = get_logger("audit")


class CredentialRefresher:
    """Single-flight provider of a currently valid credential."""

    def __init__(
        self,
        store: TokenStore,
        refresh_client: AuthRefreshClient,
        buffer_seconds: int = DEFAULT_REFRESH_BUFFER_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize refresher.

        Args:
            store: Storage for the credential record
            refresh_client: Client for the auth refresh endpoint
            buffer_seconds: Refresh when the token has less than this left
            clock: Source of the current epoch time in seconds
        """
        self.store = store
        self.refresh_client = refresh_client
        self.buffer_seconds = buffer_seconds
        self.clock = clock
        self._inflight: Optional[asyncio.Future] = None

    def is_stale(self, credential: Credential) -> bool:
        return is_token_stale(credential.access_token, now=self.clock(), buffer_seconds=self.buffer_seconds)

    async def _load(self) -> Credential:
        try:
            credential = await asyncio.to_thread(self.store.load)
        except PersistenceError as e:
            raise CredentialError(f"Credential record unreadable: {e}") from e

        if credential is None:
            raise CredentialError("No credential record available")
        return credential

    async def _refresh(self, credential: Credential) -> Credential:
        audit.log_operation(
            operation="refresh_credential",
            params={"token": fingerprint(credential.access_token)},
            status="started",
            message="Bearer token expired or near expiry, refreshing"
        )

        try:
            pair = await self.refresh_client.refresh(credential.refresh_token, credential.access_token)
        except MonitorError as e:
            # The stale record stays in place; its refresh token may still work later
            audit.log_operation(
                operation="refresh_credential",
                params={"token": fingerprint(credential.access_token)},
                status="failed",
                error=str(e)
            )
            if isinstance(e, CredentialError):
                raise
            raise CredentialError(f"Token refresh failed: {e}") from e

        refreshed = await asyncio.to_thread(self.store.save_tokens, pair.token, pair.refresh_token)

        audit.log_operation(
            operation="refresh_credential",
            params={"token": fingerprint(pair.token)},
            status="completed",
            message="Credential refreshed and stored"
        )
        return refreshed

    async def _resolve(self) -> Credential:
        credential = await self._load()
        if credential.access_token and not self.is_stale(credential):
            return credential
        if not credential.access_token:
            # PAT-only records have nothing to refresh
            if credential.personal_access_token:
                return credential
            raise CredentialError("Credential record has no session token")
        if not credential.refresh_token:
            raise CredentialError("Session token is stale and no refresh token is stored")
        return await self._refresh(credential)

    def _clear_inflight(self, task: asyncio.Future) -> None:
        if self._inflight is task:
            self._inflight = None

    async def get_valid_credential(self) -> Credential:
        """Return a credential whose access token outlives the buffer.

        Raises:
            CredentialError: If no usable credential exists or the refresh is rejected
            PersistenceError: If a refreshed pair could not be stored
        """
        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._resolve())
            self._inflight.add_done_callback(self._clear_inflight)
        return await asyncio.shield(self._inflight)

    async def get_bearer_token(self) -> str:
        """Access token for an Authorization header, falling back to the PAT"""
        credential = await self.get_valid_credential()
        token = credential.access_token or credential.personal_access_token
        if not token:
            raise CredentialError("Could not retrieve bearer token")
        return token

    async def token_status(self) -> Dict[str, Any]:
        """Describe the stored credential without refreshing it"""
        credential = await self._load()
        now = self.clock()
        status: Dict[str, Any] = {
            "last_updated": credential.last_updated.isoformat() if credential.last_updated else None,
            "has_personal_access_token": bool(credential.personal_access_token),
            "stale": self.is_stale(credential),
        }
        try:
            expiry = decode_token_expiry(credential.access_token)
        except CredentialError:
            status.update(expires_at=None, seconds_remaining=None)
        else:
            status.update(expires_at=expiry, seconds_remaining=expiry - int(now))
        return status
