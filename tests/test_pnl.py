"""
Tests for position / day P&L and result accumulation.
"""

from datetime import date, datetime, timezone

import pytest

from straddle_bt.data.models import LegType
from straddle_bt.portfolio import (
    BacktestResult,
    ExitReason,
    Position,
    TradeDay,
    compute_day_pnl,
    position_pnl,
    settle_day,
)

TS = datetime(2025, 10, 1, 4, 0, tzinfo=timezone.utc)


def _leg(leg_type, entry, exit_=None, adjustment=False):
    p = Position(leg_type=leg_type, strike_price=25000, entry_price=entry, entry_time=TS, is_adjustment=adjustment)
    if exit_ is not None:
        p.close(exit_, TS, ExitReason.END_OF_DAY)
    return p


def test_position_pnl_long_premium():
    assert position_pnl(_leg(LegType.CALL, 100.0, 130.0), 75) == pytest.approx(2250.0)
    assert position_pnl(_leg(LegType.PUT, 100.0, 70.0), 75) == pytest.approx(-2250.0)
    assert position_pnl(_leg(LegType.PUT, 100.0), 75) is None


def test_close_twice_raises():
    p = _leg(LegType.CALL, 100.0, 90.0)
    with pytest.raises(RuntimeError):
        p.close(80.0, TS, ExitReason.STOP_LOSS)
    assert p.exit_price == 90.0


def test_day_percent_uses_original_pair_only():
    day = TradeDay(date=date(2025, 10, 1), atm_strike=25000, positions=[
        _leg(LegType.CALL, 100.0, 70.0),
        _leg(LegType.PUT, 100.0, 70.0),
        _leg(LegType.CALL, 70.0, 80.0, adjustment=True),
        _leg(LegType.PUT, 70.0, 50.0, adjustment=True),
    ])
    total, pct = compute_day_pnl(day, 30)
    assert total == pytest.approx((-30 - 30 + 10 - 20) * 30)
    assert pct == pytest.approx(total / (200 * 30) * 100)


def test_unresolved_leg_excluded_from_total():
    day = TradeDay(date=date(2025, 10, 1), atm_strike=25000, positions=[
        _leg(LegType.CALL, 100.0, 110.0),
        _leg(LegType.PUT, 100.0),
    ])
    settle_day(day, 30)
    assert day.total_pnl == pytest.approx(300.0)
    assert day.positions[0].realized_pnl == pytest.approx(300.0)
    assert day.positions[1].realized_pnl is None


def test_zero_basis_gives_zero_percent():
    day = TradeDay(date=date(2025, 10, 1), atm_strike=25000, positions=[
        _leg(LegType.CALL, 0.0, 5.0),
        _leg(LegType.PUT, 0.0, 5.0),
    ])
    total, pct = compute_day_pnl(day, 30)
    assert total == pytest.approx(300.0)
    assert pct == 0.0


def test_empty_day():
    assert compute_day_pnl(TradeDay(date=date(2025, 10, 1)), 30) == (0.0, 0.0)


def test_backtest_result_statistics():
    result = BacktestResult()
    for pnl in [100.0, -50.0, 0.0, -10.0]:
        result.add_day(TradeDay(date=date(2025, 10, 1), total_pnl=pnl))
    result.finalize()

    assert result.total_pnl == pytest.approx(40.0)
    assert result.winning_days == 2
    assert result.losing_days == 2
    assert result.win_rate == pytest.approx(50.0)
    assert result.average_daily_pnl == pytest.approx(10.0)


def test_backtest_result_empty():
    result = BacktestResult().finalize()
    assert result.win_rate == 0.0
    assert result.average_daily_pnl == 0.0
