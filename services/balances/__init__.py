"""Wallet balance lookup services.

This module provides the SOL and ORE balance clients and the per-wallet
fetcher that combines them into a priced balance result.
"""

from .solana_client import SolanaRpcClient
from .ore_stats_client import OreStatsClient
from .balance_fetcher import (
    BalanceFetcher,
    BalanceResult,
    compute_fiat_value,
    to_whole_units,
    LAMPORTS_PER_SOL,
    ORE_REWARD_DIVISOR,
)

__all__ = [
    # Clients
    'SolanaRpcClient',
    'OreStatsClient',

    # Services
    'BalanceFetcher',
    'BalanceResult',

    # Unit helpers
    'compute_fiat_value',
    'to_whole_units',
    'LAMPORTS_PER_SOL',
    'ORE_REWARD_DIVISOR',
]
