"""Database schema for wallet snapshots and the session credential record."""

from wallet_monitor.common.db import get_cursor
from wallet_monitor.common.logging_setup import get_logger
from services.auth.token_store import CREATE_CREDENTIALS_TABLE

logger = get_logger(__name__)


CREATE_WALLET_SNAPSHOTS_TABLE = """
CREATE TABLE IF NOT EXISTS wallet_snapshots (
    id BIGSERIAL PRIMARY KEY,
    total_value NUMERIC(20,2) NOT NULL CHECK (total_value >= 0),
    timestamp TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""

CREATE_WALLET_SNAPSHOTS_INDEXES = """
-- Charting reads the whole series in time order
CREATE INDEX IF NOT EXISTS idx_wallet_snapshots_timestamp
    ON wallet_snapshots(timestamp);
"""


def init_schema() -> None:
    """Create the snapshot and credential tables if they are missing"""
    logger.info("Initializing wallet monitor database schema")

    with get_cursor() as cur:
        logger.info("Creating wallet_snapshots table")
        cur.execute(CREATE_WALLET_SNAPSHOTS_TABLE)
        cur.execute(CREATE_WALLET_SNAPSHOTS_INDEXES)

        logger.info("Creating credentials table")
        cur.execute(CREATE_CREDENTIALS_TABLE)

    logger.info("Schema initialization completed successfully")


def get_table_stats() -> dict:
    """Row counts and time range of stored snapshots"""
    with get_cursor(readonly=True) as cur:
        cur.execute(
            "SELECT COUNT(*) AS total, MIN(timestamp) AS first, MAX(timestamp) AS last "
            "FROM wallet_snapshots"
        )
        row = cur.fetchone()

    return {
        'total_snapshots': row['total'],
        'first_snapshot': row['first'].isoformat() if row['first'] else None,
        'last_snapshot': row['last'].isoformat() if row['last'] else None,
    }
