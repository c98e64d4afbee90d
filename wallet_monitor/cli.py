import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict

from .common import config
from .common.logging_setup import setup_logging
from .common.db import close_pool, test_connection

from services.auth import AuthRefreshClient, CredentialRefresher, PostgresTokenStore
from services.balances import BalanceFetcher, OreStatsClient, SolanaRpcClient
from services.errors import CredentialError, MinerApiError, PersistenceError
from services.miner import MinerSettingsClient
from services.prices.coingecko_client import CoinGeckoClient
from services.prices.price_oracle import PriceOracle
from services.rpc import EndpointRotator
from services.snapshots import (
    PostgresSnapshotStore,
    SnapshotAggregator,
    SnapshotScheduler,
    build_snapshot_payload,
    get_table_stats,
    init_schema,
)
from services.snapshots.storage import build_error_payload


def build_aggregator(settings: config.Settings) -> SnapshotAggregator:
    rotator = EndpointRotator(settings.rpc_endpoints, name="solana_rpc")
    fetcher = BalanceFetcher(
        rotator=rotator,
        rpc_client=SolanaRpcClient(timeout=settings.http_timeout, verify_ssl=settings.tls_verify),
        ore_client=OreStatsClient(
            base_url=settings.ore_stats_base_url,
            timeout=settings.http_timeout,
            verify_ssl=settings.tls_verify,
        ),
    )
    oracle = PriceOracle(
        CoinGeckoClient(
            api_key=settings.coingecko_api_key or None,
            base_url=settings.coingecko_base_url,
            timeout=settings.http_timeout,
            verify_ssl=settings.tls_verify,
        )
    )
    return SnapshotAggregator(
        price_oracle=oracle,
        balance_fetcher=fetcher,
        store=PostgresSnapshotStore(),
        max_concurrency=settings.max_concurrent_wallets,
    )


def build_refresher(settings: config.Settings) -> CredentialRefresher:
    return CredentialRefresher(
        store=PostgresTokenStore(settings.token_collection, settings.token_document_id),
        refresh_client=AuthRefreshClient(
            app_id=settings.privy_app_id,
            refresh_url=settings.auth_refresh_url,
            origin=settings.auth_origin,
            timeout=settings.http_timeout,
            verify_ssl=settings.tls_verify,
        ),
        buffer_seconds=settings.token_refresh_buffer_seconds,
    )


def _require_wallets(settings: config.Settings) -> None:
    if not settings.wallets:
        logging.error("WALLETS is empty, nothing to collect")
        sys.exit(2)


def _print_json(payload) -> None:
    print(json.dumps(payload, indent=2, default=str))


def cmd_init_db(_: argparse.Namespace) -> None:
    setup_logging()
    logging.info("initializing database schema")
    init_schema()
    logging.info("schema applied")


def cmd_health(_: argparse.Namespace) -> None:
    setup_logging()
    logging.info("testing database connectivity")
    ok = test_connection()
    logging.info({"db": "ok" if ok else "unreachable", "config": config.get_config()})
    if ok:
        logging.info({"snapshots": get_table_stats()})
    else:
        sys.exit(1)


def cmd_collect(_: argparse.Namespace) -> None:
    """Run one cycle and exit; meant for cron-style job runners"""
    setup_logging()
    settings = config.settings
    _require_wallets(settings)

    scheduler = SnapshotScheduler(build_aggregator(settings), settings.wallets,
                                  interval_seconds=settings.poll_interval_seconds)
    report = asyncio.run(scheduler.run_once())
    if report is None:
        sys.exit(1)
    logging.info(f"Saved: ${report.snapshot.total_fiat_value:.2f}")


def cmd_run(args: argparse.Namespace) -> None:
    setup_logging()
    settings = config.settings
    _require_wallets(settings)

    scheduler = SnapshotScheduler(
        build_aggregator(settings),
        settings.wallets,
        interval_seconds=args.interval if args.interval is not None else settings.poll_interval_seconds,
    )
    try:
        asyncio.run(scheduler.run_forever(max_cycles=args.max_cycles))
    except KeyboardInterrupt:
        logging.info("polling loop interrupted")
    finally:
        close_pool()


def cmd_balances(_: argparse.Namespace) -> None:
    """Print the per-wallet breakdown without storing a snapshot"""
    setup_logging()
    settings = config.settings
    _require_wallets(settings)

    results = asyncio.run(build_aggregator(settings).collect(settings.wallets))
    rows = {label: asdict(result) for label, result in results.items()}
    rows["total"] = {
        "address": "--- TOTAL ---",
        "primary_amount": sum(r.primary_amount for r in results.values()),
        "secondary_amount": sum(r.secondary_amount for r in results.values()),
        "fiat_value": sum(r.fiat_value for r in results.values()),
    }
    _print_json(rows)


def cmd_snapshots(_: argparse.Namespace) -> None:
    setup_logging()
    try:
        payload = build_snapshot_payload(PostgresSnapshotStore().list_snapshots())
    except PersistenceError as e:
        logging.error(f"Error fetching snapshots: {e}")
        _print_json(build_error_payload(e))
        sys.exit(1)
    _print_json(payload)


def cmd_token_status(_: argparse.Namespace) -> None:
    setup_logging()
    try:
        status = asyncio.run(build_refresher(config.settings).token_status())
    except (CredentialError, ValueError) as e:
        logging.error(f"credential unavailable: {e}")
        sys.exit(1)
    _print_json(status)


def cmd_refresh_token(_: argparse.Namespace) -> None:
    setup_logging()
    try:
        credential = asyncio.run(build_refresher(config.settings).get_valid_credential())
    except (CredentialError, PersistenceError, ValueError) as e:
        logging.error(f"token refresh failed: {e}")
        sys.exit(1)
    logging.info({"credential": "valid", "last_updated": credential.last_updated})


def cmd_miner_settings(args: argparse.Namespace) -> None:
    setup_logging()
    settings = config.settings
    try:
        client = MinerSettingsClient(
            build_refresher(settings),
            base_url=settings.miner_api_base_url,
            app_id=settings.privy_app_id,
            origin=settings.auth_origin,
            timeout=settings.http_timeout,
            verify_ssl=settings.tls_verify,
        )
        result = asyncio.run(client.get_settings(args.address))
    except (CredentialError, MinerApiError, PersistenceError, ValueError) as e:
        logging.error(f"Error fetching miner public settings: {e}")
        sys.exit(1)
    _print_json(asdict(result))


def positive_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}")
    if not number > 0:
        raise argparse.ArgumentTypeError(f"must be positive: {value!r}")
    return number


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser("wallet-monitor")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("init-db").set_defaults(func=cmd_init_db)
    sub.add_parser("health").set_defaults(func=cmd_health)
    sub.add_parser("collect").set_defaults(func=cmd_collect)
    sub.add_parser("balances").set_defaults(func=cmd_balances)
    sub.add_parser("snapshots").set_defaults(func=cmd_snapshots)
    sub.add_parser("token-status").set_defaults(func=cmd_token_status)
    sub.add_parser("refresh-token").set_defaults(func=cmd_refresh_token)

    p_run = sub.add_parser("run")
    p_run.add_argument("--interval", type=positive_float, help="seconds between cycles")
    p_run.add_argument("--max-cycles", type=int)
    p_run.set_defaults(func=cmd_run)

    p_miner = sub.add_parser("miner-settings")
    p_miner.add_argument("--address", required=True)
    p_miner.set_defaults(func=cmd_miner_settings)

    return p


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    config.settings.validate()
    args.func(args)


if __name__ == "__main__":
    main()
