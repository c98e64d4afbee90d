"""Snapshot collection, storage and scheduling.

A polling cycle prices every tracked wallet and appends one aggregate
snapshot; the scheduler keeps cycles from overlapping.
"""

from .storage import (
    Snapshot,
    SnapshotStore,
    PostgresSnapshotStore,
    build_snapshot_payload,
    parse_snapshot_payload,
)
from .aggregator import CycleReport, SnapshotAggregator
from .scheduler import SnapshotScheduler
from .schema import init_schema, get_table_stats

__all__ = [
    'Snapshot',
    'SnapshotStore',
    'PostgresSnapshotStore',
    'build_snapshot_payload',
    'parse_snapshot_payload',
    'CycleReport',
    'SnapshotAggregator',
    'SnapshotScheduler',
    'init_schema',
    'get_table_stats',
]
