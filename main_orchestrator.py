"""
main_orchestrator.py
The main entry point and orchestrator for the trade-history sync service.

This module is responsible for:
1. Loading configuration.
2. Setting up all services (Dependency Injection).
3. Running one command: sync, add, import or report.
4. Handling graceful shutdown.

Cadence is not decided here: an external scheduler (cron, systemd timer)
runs `python main_orchestrator.py sync` as often as it likes.
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional, Tuple

from config import load_config, Config
from ledger import (
    analyze,
    analyze_strategy,
    calculate_benchmark_performance,
    parse_benchmark_export,
    parse_trade_export,
)
from persistence import SQLiteAccountRepository
from trade_source import HttpTradeSource
from trade_reconciler import TradeReconciler
from notifier import LoggingTradeNotifier
from sync_engine import AccountSyncEngine
from account_manager import AccountManager

# Setup basic logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger(__name__)


async def setup_dependencies(cfg: Config) -> Tuple[AccountSyncEngine, AccountManager, HttpTradeSource]:
    """
    Initializes all services and wires them together (Dependency Injection).
    """
    logger.info("Setting up dependencies...")

    # 1. Persistence
    repository = SQLiteAccountRepository(db_path=cfg.db_path)

    # 2. Network boundary
    source = HttpTradeSource(timeout=cfg.fetch_timeout_seconds, max_retries=cfg.fetch_max_retries)

    # 3. Core services
    reconciler = TradeReconciler()
    notifier = LoggingTradeNotifier(enabled=cfg.notify_trade_closed)
    engine = AccountSyncEngine(
        repository=repository,
        source=source,
        reconciler=reconciler,
        notifier=notifier,
        notify_trade_closed=cfg.notify_trade_closed,
    )
    manager = AccountManager(engine, reconciler, default_currency=cfg.default_currency)

    # 4. Load stored accounts
    await engine.load()

    logger.info("All dependencies initialized successfully.")
    return engine, manager, source


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Trade history sync and analytics")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("sync", help="Sync every account that has a data URL")

    add = commands.add_parser("add", help="Create an account")
    add.add_argument("name")
    add.add_argument("--balance", type=float, required=True, help="Initial balance")
    add.add_argument("--currency", default=None, help="USD or EUR")
    add.add_argument("--url", default=None, help="URL of the broker export to sync from")
    add.add_argument("--csv", default=None, help="Local broker export to seed the account with")

    imp = commands.add_parser("import", help="Merge a local broker export into an account")
    imp.add_argument("name")
    imp.add_argument("file")

    report = commands.add_parser("report", help="Log the dashboard metrics of an account")
    report.add_argument("name")
    report.add_argument("--strategy", default=None, help="Only trades with this comment")
    report.add_argument("--benchmark", default=None, help="Benchmark CSV (Date, Open, Close)")

    return parser


def _read_text(path: str) -> str:
    with open(path, 'r', encoding='utf-8') as f:
        return f.read()


def _log_report(engine: AccountSyncEngine, name: str,
                strategy: Optional[str], benchmark_path: Optional[str]) -> None:
    account = engine.get_account(name)
    if account is None:
        raise ValueError(f"Account '{name}' does not exist.")

    if strategy:
        snapshot = analyze_strategy(account, strategy)
    else:
        snapshot = analyze(account)
    if snapshot is None:
        logger.info(f"Account '{name}' has no trades yet.")
        return

    m = snapshot.metrics
    sym = account.currency_symbol
    pf = f"{m.profit_factor:.2f}" if m.profit_factor is not None else "n/a"
    logger.info(f"=== {name}{' [' + strategy + ']' if strategy else ''} ===")
    logger.info(f"Balance: {m.total_balance:.2f}{sym} (floating {m.floating_pnl:+.2f}{sym}, "
                f"today {m.todays_floating_pnl:+.2f}{sym})")
    logger.info(f"Net profit: {m.net_profit:+.2f}{sym} ({m.total_return_percent:.2f}%), "
                f"expected payoff {m.expected_payoff:.2f}{sym}")
    logger.info(f"Orders: {m.total_orders}, win rate {m.win_rate:.1f}%, profit factor {pf}")
    logger.info(f"Max drawdown: {m.max_drawdown.absolute:.2f}{sym} ({m.max_drawdown.percentage:.2f}%)")
    logger.info(f"Largest win/loss: {m.largest_win:.2f}/{m.largest_loss:.2f}, "
                f"streaks {m.max_consecutive_wins}W/{m.max_consecutive_losses}L")
    logger.info(f"Long {m.long_won}/{m.long_trades} ({m.long_win_rate:.1f}%), "
                f"short {m.short_won}/{m.short_trades} ({m.short_win_rate:.1f}%)")
    logger.info(f"Last trading day: {m.last_day_profit:+.2f}{sym}, {m.last_day_profit_days_ago} day(s) ago")

    if benchmark_path and snapshot.closed_trades:
        points = parse_benchmark_export(_read_text(benchmark_path))
        start = min(t.open_time for t in snapshot.closed_trades)
        perf = calculate_benchmark_performance(start, points)
        if perf is None:
            logger.warning("Benchmark return could not be determined for this period.")
        else:
            logger.info(f"Benchmark over the same period: {perf:+.2f}%")


async def run_command(args: argparse.Namespace, engine: AccountSyncEngine, manager: AccountManager) -> int:
    if args.command == "sync":
        results = await engine.sync_all()
        return 1 if any(not r.ok for r in results) else 0

    if args.command == "add":
        trades = parse_trade_export(_read_text(args.csv)) if args.csv else ()
        await manager.add_account(args.name, args.balance, currency=args.currency,
                                  trades=trades, data_url=args.url)
        return 0

    if args.command == "import":
        await manager.import_export(args.name, _read_text(args.file))
        return 0

    if args.command == "report":
        _log_report(engine, args.name, args.strategy, args.benchmark)
        return 0

    raise ValueError(f"Unknown command '{args.command}'")


async def main(argv: Optional[List[str]] = None) -> int:
    """Main application entry point."""
    args = build_arg_parser().parse_args(argv)
    source: Optional[HttpTradeSource] = None

    try:
        # 1. Load Config
        cfg = load_config()
        logging.getLogger().setLevel(cfg.log_level)

        # 2. Setup
        engine, manager, source = await setup_dependencies(cfg)

        # 3. Run
        return await run_command(args, engine, manager)

    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
    except ValueError as e:
        logger.error(f"Error: {e}")
    except Exception as e:
        logger.exception(f"Command failed: {e}")
    finally:
        # 4. Graceful Shutdown
        if source:
            await source.close()  # Close httpx client
    return 1


def cli():
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")


if __name__ == "__main__":
    cli()
