"""Append-only storage of aggregate wallet snapshots.

Timestamps come from the database clock (``TIMESTAMPTZ``, microsecond
resolution) so chronological order can be recovered from the rows alone.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

import psycopg

from wallet_monitor.common.db import execute_with_retry
from wallet_monitor.common.logging_setup import get_logger
from services.errors import PersistenceError

logger = get_logger(__name__)


@dataclass(frozen=True)
class Snapshot:
    total_fiat_value: Decimal
    generated_at: Optional[datetime]
    id: Optional[int] = None


class SnapshotStore(ABC):
    """Append-only store of snapshots."""

    @abstractmethod
    def append(self, total_fiat_value: Decimal) -> Snapshot:
        """Insert one snapshot with a storage-assigned timestamp.

        Raises:
            PersistenceError: If the insert fails
        """

    @abstractmethod
    def list_snapshots(self) -> List[Snapshot]:
        """All snapshots, oldest first."""


class PostgresSnapshotStore(SnapshotStore):
    """SnapshotStore backed by the ``wallet_snapshots`` table."""

    def append(self, total_fiat_value: Decimal) -> Snapshot:
        query = """
            INSERT INTO wallet_snapshots (total_value, timestamp)
            VALUES (%s, NOW())
            RETURNING id, total_value, timestamp
        """
        try:
            rows = execute_with_retry(query, (total_fiat_value,))
        except psycopg.Error as e:
            logger.log_operation(
                operation="append_snapshot",
                status="failed",
                error=str(e),
                message="Failed to save snapshot"
            )
            raise PersistenceError(f"Failed to save snapshot: {e}") from e

        row = rows[0]
        snapshot = Snapshot(
            total_fiat_value=Decimal(row["total_value"]),
            generated_at=row["timestamp"],
            id=row["id"],
        )
        logger.log_operation(
            operation="append_snapshot",
            params={"id": snapshot.id},
            status="completed",
            message=f"Saved snapshot {snapshot.id}: ${snapshot.total_fiat_value}"
        )
        return snapshot

    def list_snapshots(self) -> List[Snapshot]:
        query = """
            SELECT id, total_value, timestamp
            FROM wallet_snapshots
            ORDER BY timestamp ASC, id ASC
        """
        try:
            rows = execute_with_retry(query) or []
        except psycopg.Error as e:
            raise PersistenceError(f"Failed to read snapshots: {e}") from e

        return [
            Snapshot(
                total_fiat_value=Decimal(row["total_value"]),
                generated_at=row["timestamp"],
                id=row["id"],
            )
            for row in rows
        ]


def build_snapshot_payload(snapshots: List[Snapshot]) -> Dict[str, Any]:
    """Render snapshots in the shape the charting front end reads.

    ``totalValue`` stays a Decimal so cents survive any size of total; JSON
    writers render it with ``default=str``.
    """
    data = [
        {
            "totalValue": s.total_fiat_value,
            "timestamp": s.generated_at.isoformat() if s.generated_at else None,
        }
        for s in snapshots
    ]
    return {
        "success": True,
        "count": len(data),
        "data": data,
    }


def build_error_payload(error: Exception) -> Dict[str, Any]:
    return {"success": False, "error": str(error)}


def parse_snapshot_payload(payload: Dict[str, Any]) -> List[Snapshot]:
    """Read snapshots back out of a payload built by ``build_snapshot_payload``"""
    if not payload.get("success"):
        raise ValueError(f"Snapshot payload reports failure: {payload.get('error')}")

    snapshots = []
    for item in payload.get("data", []):
        timestamp = item.get("timestamp")
        snapshots.append(
            Snapshot(
                total_fiat_value=Decimal(str(item["totalValue"])).quantize(Decimal("0.01")),
                generated_at=datetime.fromisoformat(timestamp) if timestamp else None,
            )
        )
    return snapshots
