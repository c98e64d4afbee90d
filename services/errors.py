"""Error taxonomy shared by the polling and credential services.

Transport and upstream-data failures are absorbed by the balance and price
layers (they degrade to zero). Credential and persistence failures are the
only ones allowed to reach a caller.
"""


class MonitorError(Exception):
    """Base class for wallet monitor errors."""
    pass


class TransportError(MonitorError):
    """Raised when an upstream HTTP call fails or returns a non-success status."""
    pass


class UpstreamDataError(MonitorError):
    """Raised when an upstream response body is malformed or missing fields."""
    pass


class RpcError(UpstreamDataError):
    """Raised when a JSON-RPC endpoint reports an error or an unusable result."""
    pass


class CredentialError(MonitorError):
    """Raised when no currently valid bearer credential can be produced."""
    pass


class TokenDecodeError(CredentialError):
    """Raised when a signed token's expiry claim cannot be read."""
    pass


class RefreshRejectedError(CredentialError):
    """Raised when the auth endpoint refuses or garbles a refresh."""
    pass


class PersistenceError(MonitorError):
    """Raised when a snapshot or credential write fails."""
    pass


class MinerApiError(TransportError):
    """Raised when the miner settings API cannot be queried."""
    pass
