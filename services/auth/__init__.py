"""Session credential storage and refresh."""

from .jwt_claims import decode_token_expiry, is_token_stale, seconds_until_expiry
from .token_store import Credential, TokenStore, PostgresTokenStore
from .refresh_client import AuthRefreshClient, TokenPair
from .credential_refresher import CredentialRefresher

__all__ = [
    'decode_token_expiry',
    'is_token_stale',
    'seconds_until_expiry',
    'Credential',
    'TokenStore',
    'PostgresTokenStore',
    'AuthRefreshClient',
    'TokenPair',
    'CredentialRefresher',
]
