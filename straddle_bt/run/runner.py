"""
Backtest runner: fetches each day's data, simulates it and accumulates the results.

run_backtest() is the single entry point used by the CLI; BacktestRunner can be driven
directly with any PriceSeriesProvider.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FuturesTimeoutError, wait
from dataclasses import dataclass, field
from datetime import date, tzinfo
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union
from zoneinfo import ZoneInfo

import numpy as np
import pandas as pd

from ..config import RunConfig, RulesConfig
from ..data import DayData, LegType, PriceSeriesProvider, SQLitePriceSeriesProvider
from ..data.calendars import last_n_weekdays, to_date, to_ist, trading_datetime, weekdays_between
from ..errors import InvalidInputError, MissingDataError
from ..portfolio import BacktestResult, ExitReason, TradeDay, settle_day
from ..strategy import TradeDaySimulator
from .artifacts import RunArtifacts, generate_run_id

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """Result of a backtest run"""
    run_id: str
    run_dir: Path
    result: BacktestResult
    metrics: Dict[str, Any] = field(default_factory=dict)
    days: pd.DataFrame = field(default_factory=pd.DataFrame)
    positions: pd.DataFrame = field(default_factory=pd.DataFrame)
    config: Dict[str, Any] = field(default_factory=dict)


class BacktestRunner:
    """
    Runs the straddle over a list of trading days.

    Days are independent: each gets its own TradeDay, so they may be simulated on a
    thread pool (max_workers > 1). Results always keep the input order.
    """

    def __init__(
        self,
        provider: PriceSeriesProvider,
        rules: Optional[RulesConfig] = None,
        instrument: str = "NIFTY",
        lot_size: Optional[int] = None,
        simulator: Optional[TradeDaySimulator] = None,
        provider_timeout_s: Optional[float] = None,
        max_workers: int = 1,
    ):
        self.provider = provider
        self.rules = rules or RulesConfig()
        self.instrument = instrument.upper()
        self.lot_size = int(lot_size) if lot_size is not None else int(provider.lot_size(self.instrument))
        self.simulator = simulator or TradeDaySimulator(self.rules)
        self.provider_timeout_s = provider_timeout_s
        self.max_workers = max(1, int(max_workers))
        # Fetches that outlived provider_timeout_s; drained at the end of run()
        self._abandoned: List[Future] = []
        self._abandoned_lock = threading.Lock()

    def fetch_day(self, day: date) -> DayData:
        """Pull ATM strike, entry prices and both tick series for one day"""
        rules = self.rules
        atm_strike = self.provider.resolve_atm_strike(day, rules.entry_time)
        if atm_strike is None:
            return DayData.no_data(day)

        def _leg(leg_type: LegType):
            price = self.provider.entry_price(day, rules.entry_time, atm_strike, leg_type)
            ticks = self.provider.tick_series(day, rules.entry_time, rules.exit_time, atm_strike, leg_type)
            return price, ticks

        ce_price, ce_ticks = _leg(LegType.CALL)
        pe_price, pe_ticks = _leg(LegType.PUT)
        logger.info(f"{day}: strike {atm_strike}, CE entry {ce_price}, PE entry {pe_price}, ticks CE={len(ce_ticks)} PE={len(pe_ticks)}")

        return DayData(
            date=day,
            atm_strike=atm_strike,
            entry_time=trading_datetime(day, rules.entry_time),
            entry_price_ce=ce_price,
            entry_price_pe=pe_price,
            ce_ticks=list(ce_ticks),
            pe_ticks=list(pe_ticks),
        )

    def _load(self, day: date) -> Tuple[DayData, Optional[str]]:
        """fetch_day() with MissingData and the optional timeout degraded to a no-data day"""
        if self.provider_timeout_s is None:
            try:
                return self.fetch_day(day), None
            except MissingDataError as e:
                return DayData.no_data(day), f"Missing data on {day}: {e}"

        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="fetch")
        future = executor.submit(self.fetch_day, day)
        try:
            return future.result(timeout=self.provider_timeout_s), None
        except FuturesTimeoutError:
            with self._abandoned_lock:
                self._abandoned.append(future)
            return DayData.no_data(day), f"Data fetch for {day} timed out after {self.provider_timeout_s}s"
        except MissingDataError as e:
            return DayData.no_data(day), f"Missing data on {day}: {e}"
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def drain_abandoned(self) -> int:
        """
        Give timed-out fetches one more timeout period to finish.

        Returns:
            Number of fetches still running; the provider must refuse their queries once
            it is closed (SQLitePriceSeriesProvider.close interrupts and locks them out)
        """
        with self._abandoned_lock:
            pending = [f for f in self._abandoned if not f.done()]
            self._abandoned.clear()
        if not pending:
            return 0

        _, still_running = wait(pending, timeout=self.provider_timeout_s)
        if still_running:
            logger.warning(f"{len(still_running)} timed-out data fetch(es) still running after the run")
        return len(still_running)

    def process_day(self, day: Union[date, str]) -> TradeDay:
        """Fetch, simulate and settle one trading day"""
        day = to_date(day)
        data, problem = self._load(day)
        if problem:
            logger.warning(problem)

        trade_day = self.simulator.simulate(
            data.date,
            data.atm_strike,
            data.entry_price_ce,
            data.entry_price_pe,
            data.entry_time,
            data.ce_ticks,
            data.pe_ticks,
        )
        if problem:
            trade_day.warnings.insert(0, problem)
        return settle_day(trade_day, self.lot_size)

    def run(self, dates: Iterable[Union[date, str]]) -> BacktestResult:
        """
        Simulate every date in input order and accumulate win/loss statistics.

        An empty date list is reported as a warning on the result (metrics stay 0).
        """
        dates = [to_date(d) for d in dates]
        result = BacktestResult()

        if not dates:
            message = "No trading dates supplied; win rate and average daily P&L are undefined"
            logger.warning(message)
            result.warnings.append(message)
            return result.finalize()

        logger.info(f"Running {len(dates)} day(s) for {self.instrument} (lot size {self.lot_size})")

        try:
            if self.max_workers > 1:
                with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                    trade_days = list(pool.map(self.process_day, dates))
            else:
                trade_days = [self.process_day(d) for d in dates]
        finally:
            self.drain_abandoned()

        for trade_day in trade_days:
            result.add_day(trade_day)
            result.warnings.extend(f"{trade_day.date}: {w}" for w in trade_day.warnings)
            logger.info(
                f"{trade_day.date}: P&L {trade_day.total_pnl:,.2f} ({trade_day.day_pnl_percent:.2f}%)"
                f"{' [adjusted]' if trade_day.made_adjustment else ''}"
            )

        return result.finalize()


def days_frame(result: BacktestResult) -> pd.DataFrame:
    return pd.DataFrame([d.to_row() for d in result.days])


def positions_frame(result: BacktestResult, tz_display: Optional[tzinfo] = None) -> pd.DataFrame:
    """One row per leg; aware entry/exit timestamps shown in tz_display (IST by default)"""
    rows = []
    for day in result.days:
        for position in day.positions:
            row = {"date": day.date, **position.to_row()}
            for key in ("entry_time", "exit_time"):
                ts = row[key]
                if ts is None or ts.tzinfo is None:
                    continue
                row[key] = ts.astimezone(tz_display) if tz_display is not None else to_ist(ts)
            rows.append(row)
    return pd.DataFrame(rows)


def summarize(result: BacktestResult) -> Dict[str, Any]:
    """Headline statistics of a finished run"""
    pnl = np.array([d.total_pnl for d in result.days], dtype=float)
    reasons = {reason.value: 0 for reason in ExitReason}
    unresolved = 0
    for day in result.days:
        for position in day.positions:
            if position.exit_reason is not None:
                reasons[position.exit_reason.value] += 1
            elif position.is_active:
                unresolved += 1

    max_drawdown = 0.0
    if pnl.size:
        equity = np.cumsum(pnl)
        peak = np.maximum.accumulate(np.concatenate([[0.0], equity]))[1:]
        max_drawdown = float((equity - peak).min())

    return {
        "total_days": len(result.days),
        "trade_days": sum(1 for d in result.days if d.is_trade_day),
        "no_trade_days": sum(1 for d in result.days if not d.is_trade_day),
        "adjustment_days": sum(1 for d in result.days if d.made_adjustment),
        "total_pnl": float(result.total_pnl),
        "winning_days": result.winning_days,
        "losing_days": result.losing_days,
        "win_rate_pct": float(result.win_rate),
        "average_daily_pnl": float(result.average_daily_pnl),
        "best_day_pnl": float(pnl.max()) if pnl.size else 0.0,
        "worst_day_pnl": float(pnl.min()) if pnl.size else 0.0,
        "max_drawdown": max_drawdown,
        "exit_reason_counts": reasons,
        "unresolved_positions": unresolved,
    }


def resolve_dates(config: RunConfig, provider: Optional[SQLitePriceSeriesProvider] = None) -> List[date]:
    """
    Dates to run, in order of precedence: engine.dates, engine.start..end (weekdays),
    engine.last_n_days (most recent dates present in the data, oldest first; the last N
    weekdays up to today when no provider is given).
    """
    engine = config.engine
    explicit = engine.explicit_dates()
    if explicit is not None:
        return explicit
    if engine.start or engine.end:
        if not (engine.start and engine.end):
            raise InvalidInputError("engine.start and engine.end must be given together")
        return weekdays_between(engine.start, engine.end)
    if engine.last_n_days:
        if provider is None:
            return sorted(last_n_weekdays(engine.last_n_days))
        return sorted(provider.last_n_trading_days(engine.last_n_days))
    raise InvalidInputError("No dates configured: set engine.dates, engine.start/end or engine.last_n_days")


def run_backtest(config: RunConfig, run_id_mode: str = "timestamp") -> RunResult:
    """
    Run a backtest with the given configuration and write run artifacts.

    Args:
        config: RunConfig instance
        run_id_mode: "deterministic" or "timestamp" for run ID generation

    Returns:
        RunResult with the BacktestResult, summary metrics, DataFrames and run_dir

    Raises:
        InvalidInputError: If the configuration resolves to no trading dates
    """
    logger.info("Starting backtest run...")

    config_dict = config.model_dump()
    run_id = generate_run_id(config_dict, mode=run_id_mode)
    artifacts = RunArtifacts(
        Path(config.reporting.run_dir_root), run_id, config_dict, save_log=config.reporting.save_log
    )

    try:
        logger.info(f"Run ID: {run_id}")
        logger.info(f"Run directory: {artifacts.run_dir}")
        artifacts.write_config_resolved()

        instrument = config.instrument
        with SQLitePriceSeriesProvider(
            sqlite_path=config.data.sqlite_path,
            instrument=instrument.name,
            instruments=instrument.table(),
            table=config.data.table,
            atm_window_minutes=config.data.atm_window_minutes,
        ) as provider:
            dates = resolve_dates(config, provider)
            if not dates:
                raise InvalidInputError("Date range contains no trading days")
            logger.info(f"Dates: {dates[0]} .. {dates[-1]} ({len(dates)} days)")

            runner = BacktestRunner(
                provider,
                rules=config.rules,
                instrument=instrument.name,
                lot_size=instrument.resolved_lot_size(),
                provider_timeout_s=config.engine.provider_timeout_s,
                max_workers=config.engine.max_workers,
            )
            result = runner.run(dates)

        days = days_frame(result)
        positions = positions_frame(result, ZoneInfo(config.engine.tz_display))
        metrics = summarize(result)
        metrics["lot_size"] = runner.lot_size
        metrics["instrument"] = instrument.name

        artifacts.write_manifest({
            "total_days": len(dates),
            "start": dates[0].isoformat(),
            "end": dates[-1].isoformat(),
            "warnings": result.warnings,
        })
        if config.reporting.save_csv:
            artifacts.write_days(days)
            artifacts.write_positions(positions)
        artifacts.write_metrics(metrics)

        logger.info(f"Backtest complete. Run ID: {run_id}")

        return RunResult(
            run_id=run_id,
            run_dir=artifacts.run_dir,
            result=result,
            metrics=metrics,
            days=days,
            positions=positions,
            config=config_dict,
        )

    except Exception as e:
        logger.error(f"Backtest failed: {e}", exc_info=True)
        raise
    finally:
        artifacts.close()
