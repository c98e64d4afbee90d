"""Expiry judgment on signed session tokens.

Only the payload's ``exp`` claim is read; signatures are not verified here,
the auth service is the one that validates them.
"""

import math
import time
from typing import Optional

from jose import JWTError, jwt

from services.errors import TokenDecodeError

DEFAULT_REFRESH_BUFFER_SECONDS = 60


def decode_token_expiry(token: Optional[str]) -> int:
    """Return the token's ``exp`` claim in seconds since the epoch.

    Raises:
        TokenDecodeError: If the token is empty, malformed or lacks a numeric ``exp``
    """
    if not token or not isinstance(token, str):
        raise TokenDecodeError("Token is empty")
    if token.count(".") != 2:
        raise TokenDecodeError("Token is not a three-part signed token")

    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError as e:
        raise TokenDecodeError(f"Token payload unreadable: {e}") from e

    exp = claims.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        raise TokenDecodeError(f"Token exp claim missing or not numeric: {exp!r}")
    if isinstance(exp, float) and not math.isfinite(exp):
        raise TokenDecodeError(f"Token exp claim is not finite: {exp!r}")
    return int(exp)


def seconds_until_expiry(token: Optional[str], now: Optional[float] = None) -> int:
    now = time.time() if now is None else now
    return decode_token_expiry(token) - int(now)


def is_token_stale(
    token: Optional[str],
    now: Optional[float] = None,
    buffer_seconds: int = DEFAULT_REFRESH_BUFFER_SECONDS,
) -> bool:
    """True when the token is expired, expires within ``buffer_seconds``, or is unreadable"""
    now = time.time() if now is None else now
    try:
        expiry = decode_token_expiry(token)
    except TokenDecodeError:
        return True
    return int(now) >= expiry - buffer_seconds
