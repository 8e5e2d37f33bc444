"""
CLI entrypoint for running backtests.
"""

import argparse
import logging
import sys
from typing import List, Optional

from ..config import RunConfig, apply_cli_overrides, apply_env_overrides, load_config
from .artifacts import generate_run_id
from .runner import RunResult, run_backtest

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO"):
    """Setup logging configuration"""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def print_days(result: RunResult):
    """Print one line per trading day"""
    print("\n" + "-" * 70)
    print(f"{'Date':<12}{'Strike':>8}{'Legs':>6}{'Adj':>5}{'P&L':>16}{'P&L %':>10}")
    print("-" * 70)
    for day in result.result.days:
        strike = "-" if day.atm_strike is None else str(day.atm_strike)
        adj = "yes" if day.made_adjustment else ""
        print(
            f"{day.date.isoformat():<12}{strike:>8}{len(day.positions):>6}{adj:>5}"
            f"{day.total_pnl:>16,.2f}{day.day_pnl_percent:>9.2f}%"
        )


def print_summary(result: RunResult):
    """Print backtest summary to console"""
    metrics = result.metrics

    print("\n" + "=" * 70)
    print("BACKTEST SUMMARY")
    print("=" * 70)
    print(f"Run ID: {result.run_id}")
    print(f"Run Directory: {result.run_dir}")
    print("-" * 70)
    print(f"Instrument: {metrics.get('instrument')} (lot size {metrics.get('lot_size')})")
    print(f"Days: {metrics.get('total_days', 0)} ({metrics.get('no_trade_days', 0)} without trade, {metrics.get('adjustment_days', 0)} adjusted)")
    print(f"Total P&L: INR {metrics.get('total_pnl', 0.0):,.2f}")
    print(f"Winning / Losing Days: {metrics.get('winning_days', 0)} / {metrics.get('losing_days', 0)}")
    print(f"Win Rate: {metrics.get('win_rate_pct', 0.0):.2f}%")
    print(f"Avg Daily P&L: INR {metrics.get('average_daily_pnl', 0.0):,.2f}")
    print(f"Max Drawdown: INR {metrics.get('max_drawdown', 0.0):,.2f}")
    if metrics.get("unresolved_positions"):
        print(f"WARNING: {metrics['unresolved_positions']} position(s) could not be closed (missing ticks)")
    print("=" * 70 + "\n")


def build_config(
    config_path: str,
    sets: List[str],
    dates: Optional[List[str]] = None,
    start: Optional[str] = None,
    end: Optional[str] = None,
    last_n: Optional[int] = None,
) -> RunConfig:
    """Load config, then apply env overrides, --set overrides and date flags (in that order)"""
    config = load_config(config_path)
    config = apply_env_overrides(config)
    if sets:
        config = apply_cli_overrides(config, sets)

    engine: dict = {}
    if dates:
        engine = {"dates": dates, "start": None, "end": None, "last_n_days": None}
    elif start or end:
        engine = {"dates": None, "start": start, "end": end, "last_n_days": None}
    elif last_n:
        engine = {"dates": None, "start": None, "end": None, "last_n_days": last_n}
    if engine:
        config = RunConfig(**{**config.model_dump(), "engine": {**config.engine.model_dump(), **engine}})
    return config


def cmd_dry_run(config: RunConfig, run_id_mode: str) -> str:
    """Dry run: resolve config and print run ID without executing"""
    run_id = generate_run_id(config.model_dump(), mode=run_id_mode)
    engine = config.engine
    rules = config.rules

    print("\n" + "=" * 70)
    print("DRY RUN - Configuration Resolved")
    print("=" * 70)
    print(f"Run ID (mode: {run_id_mode}): {run_id}")
    print(f"Instrument: {config.instrument.name} (lot size {config.instrument.resolved_lot_size()})")
    if engine.dates:
        print(f"Dates: {', '.join(engine.dates)}")
    elif engine.start:
        print(f"Date Range: {engine.start} to {engine.end}")
    elif engine.last_n_days:
        print(f"Last {engine.last_n_days} trading days in data")
    print(f"Entry / Adjustment cutoff / Exit: {rules.entry_time} / {rules.adjustment_time} / {rules.exit_time}")
    print(
        f"Stop loss {rules.stop_loss_pct}% | Combined target {rules.combined_target_pct}% | "
        f"Combined stop {rules.combined_stop_loss_pct}%"
    )
    print(f"SQLite Path: {config.data.sqlite_path}")
    print("=" * 70 + "\n")

    return run_id


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entrypoint"""
    parser = argparse.ArgumentParser(
        description="Intraday Straddle Backtester - CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with config file
  python -m straddle_bt.run --config configs/nifty_straddle.yaml

  # Explicit days
  python -m straddle_bt.run --config configs/nifty_straddle.yaml --dates 2025-10-01 2025-10-03

  # Weekday range, tighter stop loss
  python -m straddle_bt.run --config configs/nifty_straddle.yaml --start 2025-10-01 --end 2025-10-15 --set rules.stop_loss_pct=20

  # Dry run (resolve config without executing)
  python -m straddle_bt.run --config configs/nifty_straddle.yaml --last-n 5 --dry-run
        """,
    )

    parser.add_argument("--config", type=str, help="Path to config file (YAML or JSON)")
    parser.add_argument("--dates", nargs="+", metavar="YYYY-MM-DD", help="Explicit trading days")
    parser.add_argument("--start", type=str, help="Start date (ISO format, e.g., 2025-10-01)")
    parser.add_argument("--end", type=str, help="End date (ISO format, e.g., 2025-10-15)")
    parser.add_argument("--last-n", type=int, dest="last_n", help="Run the last N trading days present in the data")
    parser.add_argument(
        "--set",
        action="append",
        dest="sets",
        metavar="KEY=VALUE",
        help="Override config value (can be used multiple times). Use nested keys: rules.stop_loss_pct=20",
    )
    parser.add_argument(
        "--run-id-mode",
        choices=["deterministic", "timestamp"],
        default="timestamp",
        help="Run ID generation mode (default: timestamp)",
    )
    parser.add_argument("--dry-run", action="store_true", help="Resolve config and print run ID without executing")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )

    args = parser.parse_args(argv)

    setup_logging(args.log_level)

    if not args.config:
        print("ERROR: --config is required", file=sys.stderr)
        parser.print_help()
        return 1

    try:
        config = build_config(args.config, args.sets or [], args.dates, args.start, args.end, args.last_n)

        if args.dry_run:
            cmd_dry_run(config, args.run_id_mode)
            return 0

        result = run_backtest(config, run_id_mode=args.run_id_mode)
        print_days(result)
        print_summary(result)
        return 0

    except Exception as e:
        print(f"ERROR: {e}", file=sys.stderr)
        logger.exception("Backtest failed")
        return 1


if __name__ == "__main__":
    sys.exit(main())
