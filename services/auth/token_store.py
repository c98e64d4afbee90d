"""Durable storage for the single session credential record.

The record lives in ``credentials`` keyed by ``(collection, document_id)``.
It is seeded out of band; this module only reads it and partially updates
the token fields, letting the database clock stamp ``last_updated``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

import psycopg

from wallet_monitor.common.db import execute_with_retry
from wallet_monitor.common.logging_setup import get_logger
from services.errors import PersistenceError

logger = get_logger(__name__)


@dataclass(frozen=True)
class Credential:
    access_token: str
    refresh_token: str
    last_updated: Optional[datetime] = None
    personal_access_token: Optional[str] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> Optional["Credential"]:
        """Build a credential from a stored row, None when the row is unusable"""
        access_token = record.get("access_token") or ""
        refresh_token = record.get("refresh_token") or ""
        pat = record.get("personal_access_token") or None

        if not isinstance(access_token, str) or not isinstance(refresh_token, str):
            return None
        if not access_token and not pat:
            return None

        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            last_updated=record.get("last_updated"),
            personal_access_token=pat,
        )


class TokenStore(ABC):
    """Read/partial-write access to one credential record."""

    @abstractmethod
    def load(self) -> Optional[Credential]:
        """Return the stored credential, or None if absent or unreadable.

        Raises:
            PersistenceError: If the storage backend cannot be read
        """

    @abstractmethod
    def save_tokens(self, access_token: str, refresh_token: str) -> Credential:
        """Replace the token pair, stamp ``last_updated`` with the storage clock.

        Raises:
            PersistenceError: If the write fails or the record does not exist
        """


CREATE_CREDENTIALS_TABLE = """
CREATE TABLE IF NOT EXISTS credentials (
    collection VARCHAR(100) NOT NULL,
    document_id VARCHAR(100) NOT NULL,
    access_token TEXT,
    refresh_token TEXT,
    personal_access_token TEXT,
    last_updated TIMESTAMPTZ NOT NULL DEFAULT NOW(),

    PRIMARY KEY (collection, document_id)
);
"""


class PostgresTokenStore(TokenStore):
    """TokenStore backed by the ``credentials`` table."""

    def __init__(self, collection: str, document_id: str):
        self.collection = collection
        self.document_id = document_id

    def load(self) -> Optional[Credential]:
        query = """
            SELECT access_token, refresh_token, personal_access_token, last_updated
            FROM credentials
            WHERE collection = %s AND document_id = %s
        """
        try:
            rows = execute_with_retry(query, (self.collection, self.document_id))
        except psycopg.Error as e:
            logger.log_operation(
                operation="load_credential",
                params={"collection": self.collection},
                status="failed",
                error=str(e)
            )
            raise PersistenceError(f"Could not read credential record: {e}") from e

        if not rows:
            logger.warning(f"No credential record {self.collection}/{self.document_id}")
            return None
        return Credential.from_record(rows[0])

    def save_tokens(self, access_token: str, refresh_token: str) -> Credential:
        query = """
            UPDATE credentials
            SET access_token = %s,
                refresh_token = %s,
                last_updated = NOW()
            WHERE collection = %s AND document_id = %s
            RETURNING access_token, refresh_token, personal_access_token, last_updated
        """
        try:
            rows = execute_with_retry(
                query,
                (access_token, refresh_token, self.collection, self.document_id)
            )
        except psycopg.Error as e:
            logger.log_operation(
                operation="save_credential",
                params={"collection": self.collection},
                status="failed",
                error=str(e)
            )
            raise PersistenceError(f"Could not update credential record: {e}") from e

        if not rows:
            raise PersistenceError(
                f"Credential record {self.collection}/{self.document_id} does not exist"
            )

        logger.log_operation(
            operation="save_credential",
            params={"collection": self.collection},
            status="completed",
            message="Credential record updated with new tokens"
        )
        return Credential.from_record(rows[0])
