"""
Single-day long straddle simulator.

Buys the ATM CALL and PUT at entry time, then walks the merged tick clock of both legs:
- combined target / combined stop-loss on the summed premium (checked first)
- per-leg stop-loss
- one re-entry ("adjustment") when both legs were stopped out (individually or by the
  combined stop) before the cutoff
Whatever is still open is closed at each leg's last tick.
"""

from __future__ import annotations

import heapq
import itertools
import logging
from datetime import date, datetime
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from ..config.schemas import RulesConfig
from ..data.calendars import IST, to_date, trading_datetime
from ..data.models import LegType, Tick
from ..portfolio.positions import ExitReason, Position, TradeDay

logger = logging.getLogger(__name__)

TickLike = Union[Tick, Tuple[datetime, float], Sequence]


def _pct_change(current: float, entry: float) -> Optional[float]:
    """(current - entry) / entry * 100, or None for a zero entry"""
    if entry == 0:
        return None
    return (current - entry) / entry * 100.0


def _normalize_ticks(ticks: Optional[Iterable[TickLike]]) -> List[Tick]:
    """Materialize (ts, ltp) pairs as Ticks, stably ordered by timestamp"""
    if ticks is None:
        return []
    return sorted((Tick(t[0], float(t[1])) for t in ticks), key=lambda t: t.ts)


def merge_tick_clock(
    ce_ticks: Sequence[Tick],
    pe_ticks: Sequence[Tick],
) -> Iterator[Tuple[datetime, Optional[float], Optional[float]]]:
    """
    Sorted merge of two ascending tick series into one event clock.

    Yields:
        (timestamp, ce_ltp, pe_ltp) per distinct timestamp; a leg without a tick at that
        timestamp yields None. With duplicate timestamps in one leg the first tick wins.
    """
    tagged = heapq.merge(
        ((t.ts, 0, t.ltp) for t in ce_ticks),
        ((t.ts, 1, t.ltp) for t in pe_ticks),
        key=lambda item: item[0],
    )
    for ts, group in itertools.groupby(tagged, key=lambda item: item[0]):
        prices: List[Optional[float]] = [None, None]
        for _, leg, ltp in group:
            if prices[leg] is None:
                prices[leg] = ltp
        yield ts, prices[0], prices[1]


def _is_before(ts: datetime, cutoff: datetime) -> bool:
    # Naive tick timestamps are taken as IST wall-clock
    if ts.tzinfo is None:
        return ts < cutoff.astimezone(IST).replace(tzinfo=None)
    return ts < cutoff


class TradeDaySimulator:
    """
    Event-driven simulator for one trading day.

    Holds only the rule set; every call to simulate() builds and owns its own TradeDay,
    so one simulator can serve several days concurrently.
    """

    def __init__(self, rules: Optional[RulesConfig] = None):
        self.rules = rules or RulesConfig()

    def simulate(
        self,
        day: Union[date, str],
        atm_strike: Optional[int],
        entry_price_ce: float,
        entry_price_pe: float,
        entry_time: Union[datetime, str, None],
        ce_ticks: Optional[Iterable[TickLike]],
        pe_ticks: Optional[Iterable[TickLike]],
    ) -> TradeDay:
        """
        Simulate one day and return its TradeDay (P&L fields are filled by settle_day).

        Args:
            day: Trading date
            atm_strike: ATM strike, None when no trade was possible
            entry_price_ce: CALL premium at entry time
            entry_price_pe: PUT premium at entry time
            entry_time: Entry timestamp (or "HH:MM" IST)
            ce_ticks: Ascending (timestamp, ltp) ticks of the CALL after entry
            pe_ticks: Ascending (timestamp, ltp) ticks of the PUT after entry
        """
        day = to_date(day)
        trade_day = TradeDay(date=day, atm_strike=atm_strike)

        if atm_strike is None:
            logger.info(f"{day}: no ATM strike, skipping day")
            return trade_day

        ce = _normalize_ticks(ce_ticks)
        pe = _normalize_ticks(pe_ticks)
        if not ce and not pe:
            trade_day.warnings.append(f"No option ticks for strike {atm_strike} on {day}")
            logger.warning(trade_day.warnings[-1])
            return trade_day

        if entry_time is None or isinstance(entry_time, str):
            entry_time = trading_datetime(day, entry_time or self.rules.entry_time)
        if entry_price_ce == 0 or entry_price_pe == 0:
            logger.warning(f"{day}: zero entry price (CE={entry_price_ce}, PE={entry_price_pe}), percentage exits disabled for that leg")

        slots: Dict[LegType, Optional[Position]] = {LegType.CALL: None, LegType.PUT: None}
        self._open(trade_day, slots, LegType.CALL, atm_strike, entry_price_ce, entry_time)
        self._open(trade_day, slots, LegType.PUT, atm_strike, entry_price_pe, entry_time)

        self._run_event_loop(trade_day, slots, ce, pe)
        self._close_end_of_day(trade_day, ce, pe)
        return trade_day

    def _open(
        self,
        trade_day: TradeDay,
        slots: Dict[LegType, Optional[Position]],
        leg_type: LegType,
        strike: int,
        price: float,
        ts: datetime,
        is_adjustment: bool = False,
    ) -> None:
        current = slots[leg_type]
        assert current is None or not current.is_active, f"{leg_type.value} slot already holds an active leg"
        position = Position(
            leg_type=leg_type,
            strike_price=strike,
            entry_price=float(price),
            entry_time=ts,
            is_adjustment=is_adjustment,
        )
        slots[leg_type] = position
        trade_day.positions.append(position)

    def _run_event_loop(
        self,
        trade_day: TradeDay,
        slots: Dict[LegType, Optional[Position]],
        ce: List[Tick],
        pe: List[Tick],
    ) -> None:
        rules = self.rules
        cutoff = trading_datetime(trade_day.date, rules.adjustment_time)
        adjustment_done = False

        for ts, ce_ltp, pe_ltp in merge_tick_clock(ce, pe):
            ticks = {LegType.CALL: ce_ltp, LegType.PUT: pe_ltp}
            active = {
                leg: p
                for leg, p in slots.items()
                if p is not None and p.is_active and not (p.is_adjustment and rules.hold_adjustment_to_eod)
            }
            if not active:
                break

            # Ticks of both legs count toward the current total, closed or not
            total_entry = sum(p.entry_price for p in active.values())
            total_current = (ce_ltp or 0.0) + (pe_ltp or 0.0)
            total_change = _pct_change(total_current, total_entry)

            combined: Optional[ExitReason] = None
            if total_change is not None:
                if total_change >= rules.combined_target_pct:
                    combined = ExitReason.COMBINED_TARGET
                elif total_change <= -rules.combined_stop_loss_pct:
                    combined = ExitReason.COMBINED_STOP_LOSS
            if combined is not None:
                for leg, position in active.items():
                    if ticks[leg] is not None:
                        position.close(ticks[leg], ts, combined)
                        logger.debug(f"{ts} {leg.value} {combined.value} at {ticks[leg]} (total {total_change:.2f}%)")

            for leg, position in active.items():
                ltp = ticks[leg]
                if not position.is_active or ltp is None:
                    continue
                change = _pct_change(ltp, position.entry_price)
                if change is not None and change <= -rules.stop_loss_pct:
                    position.close(ltp, ts, ExitReason.STOP_LOSS)
                    logger.debug(f"{ts} {leg.value} STOP_LOSS at {ltp} ({change:.2f}%)")

            if adjustment_done or not _is_before(ts, cutoff):
                continue
            if any(p.is_active for p in trade_day.positions):
                continue
            # Booked profit ends the day; only stop-outs qualify for re-entry
            if not rules.adjust_after_target and any(p.exit_reason == ExitReason.COMBINED_TARGET for p in trade_day.positions):
                continue

            adjustment_done = True
            trade_day.made_adjustment = True
            if ce_ltp is None or pe_ltp is None:
                trade_day.warnings.append(f"Skipping adjustment at {ts}: missing CE/PE tick")
                logger.warning(f"{trade_day.date}: {trade_day.warnings[-1]}")
                continue

            logger.info(f"{trade_day.date}: adjustment at {ts}, re-entering CE {ce_ltp} / PE {pe_ltp}")
            self._open(trade_day, slots, LegType.CALL, trade_day.atm_strike, ce_ltp, ts, is_adjustment=True)
            self._open(trade_day, slots, LegType.PUT, trade_day.atm_strike, pe_ltp, ts, is_adjustment=True)

    def _close_end_of_day(self, trade_day: TradeDay, ce: List[Tick], pe: List[Tick]) -> None:
        series = {LegType.CALL: ce, LegType.PUT: pe}
        for position in trade_day.positions:
            if not position.is_active:
                continue
            ticks = series[position.leg_type]
            if not ticks:
                trade_day.warnings.append(f"No time series found for {position.leg_type.value} on {trade_day.date}, position left open")
                logger.warning(trade_day.warnings[-1])
                continue
            final = ticks[-1]
            position.close(final.ltp, final.ts, ExitReason.END_OF_DAY)
