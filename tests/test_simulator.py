"""
Tests for the trade day simulator.
"""

from datetime import date, datetime

import pytest

from straddle_bt.config.schemas import RulesConfig
from straddle_bt.data.calendars import trading_datetime
from straddle_bt.data.models import LegType, Tick
from straddle_bt.portfolio import ExitReason, settle_day
from straddle_bt.strategy import TradeDaySimulator, merge_tick_clock

DAY = date(2025, 10, 1)
LOT = 30


def at(clock: str) -> datetime:
    return trading_datetime(DAY, clock)


ENTRY = at("09:20")


def simulate(ce_ticks, pe_ticks, ce_entry=100.0, pe_entry=100.0, rules=None, strike=25000):
    sim = TradeDaySimulator(rules)
    return sim.simulate(DAY, strike, ce_entry, pe_entry, ENTRY, ce_ticks, pe_ticks)


def test_combined_stop_loss_closes_both_legs():
    """CE=70, PE=70 from 100/100 is a -30% total move -> combined stop"""
    day = simulate([(at("09:30"), 70.0)], [(at("09:30"), 70.0)])
    settle_day(day, LOT)

    originals = [p for p in day.positions if not p.is_adjustment]
    assert len(originals) == 2
    for p in originals:
        assert not p.is_active
        assert p.exit_reason == ExitReason.COMBINED_STOP_LOSS
        assert p.exit_price == 70.0
        assert p.exit_time == at("09:30")
    assert day.total_pnl == pytest.approx(-1800.0)
    assert day.day_pnl_percent == pytest.approx(-30.0)


def test_combined_target_closes_both_without_adjustment():
    day = simulate(
        [(at("09:30"), 130.0), (at("10:00"), 90.0)],
        [(at("09:30"), 130.0), (at("10:00"), 90.0)],
    )
    settle_day(day, LOT)

    assert len(day.positions) == 2
    assert all(p.exit_reason == ExitReason.COMBINED_TARGET for p in day.positions)
    assert all(p.exit_time == at("09:30") for p in day.positions)
    assert day.made_adjustment is False
    assert day.total_pnl == pytest.approx(30 * LOT * 2)


def test_combined_target_beats_individual_stop():
    """CE -40% but the pair is +30%: the losing leg exits on the target, not its stop"""
    day = simulate([(at("09:30"), 60.0)], [(at("09:30"), 200.0)])
    settle_day(day, LOT)

    assert len(day.positions) == 2
    assert all(p.exit_reason == ExitReason.COMBINED_TARGET for p in day.positions)
    assert [p.exit_price for p in day.positions] == [60.0, 200.0]
    assert day.made_adjustment is False
    assert day.total_pnl == pytest.approx((60 - 100 + 200 - 100) * LOT)


def test_adjust_after_target_flag_allows_reentry():
    rules = RulesConfig(adjust_after_target=True)
    day = simulate([(at("09:30"), 130.0)], [(at("09:30"), 130.0)], rules=rules)

    assert day.made_adjustment is True
    assert len(day.positions) == 4


def test_double_stop_out_opens_single_adjustment():
    """Both legs -40% before the cutoff: re-enter once at the same tick prices"""
    ce = [(at("10:00"), 60.0), (at("11:00"), 40.0), (at("11:30"), 30.0)]
    pe = [(at("10:00"), 60.0), (at("11:00"), 40.0), (at("11:30"), 30.0)]
    day = simulate(ce, pe)
    settle_day(day, LOT)

    assert day.made_adjustment is True
    assert len(day.positions) == 4
    adjustment = [p for p in day.positions if p.is_adjustment]
    assert [p.leg_type for p in adjustment] == [LegType.CALL, LegType.PUT]
    for p in adjustment:
        assert p.entry_price == 60.0
        assert p.entry_time == at("10:00")
        assert p.strike_price == 25000
        # The new pair also stops out; no third pair is opened
        assert p.exit_time == at("11:00")
        assert p.exit_price == 40.0

    assert day.total_pnl == pytest.approx((60 - 100) * LOT * 2 + (40 - 60) * LOT * 2)
    # Denominator is the original pair's premium
    assert day.day_pnl_percent == pytest.approx(day.total_pnl / (200 * LOT) * 100)


def test_individual_stop_losses_trigger_adjustment():
    rules = RulesConfig(combined_stop_loss_pct=90)
    day = simulate([(at("10:00"), 60.0)], [(at("10:00"), 60.0)], rules=rules)

    originals = [p for p in day.positions if not p.is_adjustment]
    assert all(p.exit_reason == ExitReason.STOP_LOSS for p in originals)
    assert day.made_adjustment is True
    assert len(day.positions) == 4


def test_individual_stop_loss_closes_only_that_leg():
    """CE -30%, PE +15%: total -7.5% so only the CE stop fires"""
    ce = [(at("09:30"), 70.0)]
    pe = [(at("09:30"), 115.0), (at("15:15"), 120.0)]
    day = simulate(ce, pe)
    settle_day(day, LOT)

    call, put = day.positions
    assert call.exit_reason == ExitReason.STOP_LOSS
    assert call.exit_price == 70.0
    assert put.exit_reason == ExitReason.END_OF_DAY
    assert put.exit_price == 120.0
    assert put.exit_time == at("15:15")
    assert day.made_adjustment is False
    assert day.total_pnl == pytest.approx((70 - 100) * LOT + (120 - 100) * LOT)


def test_no_adjustment_at_or_after_cutoff():
    ce = [(at("14:00"), 60.0)]
    pe = [(at("14:00"), 60.0)]
    day = simulate(ce, pe)
    assert day.made_adjustment is False
    assert len(day.positions) == 2

    day = simulate([(at("13:59:59"), 60.0)], [(at("13:59:59"), 60.0)])
    assert day.made_adjustment is True
    assert len(day.positions) == 4


def test_adjustment_slot_consumed_when_tick_missing():
    """PE closes at an event with no CE tick: adjustment is used up but not opened"""
    ce = [(at("09:30"), 70.0), (at("11:00"), 50.0)]
    pe = [(at("09:30"), 115.0), (at("10:00"), 80.0), (at("11:00"), 50.0)]
    day = simulate(ce, pe)

    call, put = day.positions
    assert call.exit_reason == ExitReason.STOP_LOSS
    assert put.exit_reason == ExitReason.COMBINED_STOP_LOSS
    assert put.exit_time == at("10:00")
    assert day.made_adjustment is True
    assert len(day.positions) == 2
    assert any("Skipping adjustment" in w for w in day.warnings)


def test_combined_exit_only_closes_legs_with_a_tick():
    ce = [(at("09:30"), 20.0)]
    pe = [(at("10:00"), 100.0), (at("15:00"), 105.0)]
    day = simulate(ce, pe)

    call, put = day.positions
    assert call.exit_reason == ExitReason.COMBINED_STOP_LOSS
    assert put.exit_reason == ExitReason.END_OF_DAY
    assert put.exit_price == 105.0
    assert day.made_adjustment is False


def test_end_of_day_closes_at_last_tick_of_each_leg():
    rules = RulesConfig(combined_stop_loss_pct=60)
    ce = [(at("09:30"), 101.0), (at("15:10"), 102.0)]
    pe = [(at("09:35"), 99.0), (at("15:14"), 98.0)]
    day = simulate(ce, pe, rules=rules)

    call, put = day.positions
    assert (call.exit_reason, call.exit_price, call.exit_time) == (ExitReason.END_OF_DAY, 102.0, at("15:10"))
    assert (put.exit_reason, put.exit_price, put.exit_time) == (ExitReason.END_OF_DAY, 98.0, at("15:14"))


def test_every_position_closed_with_reason():
    ce = [(at(f"{h:02d}:00"), 100.0 - h) for h in range(10, 16)]
    pe = [(at(f"{h:02d}:30"), 100.0 + h) for h in range(9, 15)]
    day = simulate(ce, pe)
    for p in day.positions:
        assert p.is_active is False
        assert p.exit_reason is not None
    assert day.unresolved_positions == []


def test_empty_leg_series_is_flagged_unresolved():
    # A lone CE tick reads as a -49.5% total move; keep the combined stop out of reach
    rules = RulesConfig(combined_stop_loss_pct=60)
    day = simulate([(at("09:30"), 101.0)], [], rules=rules)
    settle_day(day, LOT)

    call, put = day.positions
    assert call.exit_reason == ExitReason.END_OF_DAY
    assert put.is_active is True
    assert put.exit_reason is None
    assert day.unresolved_positions == [put]
    assert any("PE" in w for w in day.warnings)
    assert day.total_pnl == pytest.approx(1.0 * LOT)


def test_no_atm_strike_is_zero_trade_day():
    day = TradeDaySimulator().simulate(DAY, None, 0.0, 0.0, None, [], [])
    settle_day(day, LOT)
    assert day.positions == []
    assert day.total_pnl == 0
    assert day.made_adjustment is False


def test_zero_ticks_is_zero_trade_day():
    day = simulate([], [])
    settle_day(day, LOT)
    assert day.positions == []
    assert day.total_pnl == 0
    assert day.warnings


def test_zero_entry_prices_skip_percentage_checks():
    day = simulate([(at("09:30"), 10.0)], [(at("09:30"), 10.0)], ce_entry=0.0, pe_entry=0.0)
    settle_day(day, LOT)
    assert all(p.exit_reason == ExitReason.END_OF_DAY for p in day.positions)
    assert day.day_pnl_percent == 0.0
    assert day.total_pnl == pytest.approx(20.0 * LOT)


def test_hold_adjustment_to_eod():
    rules = RulesConfig(hold_adjustment_to_eod=True)
    ce = [(at("10:00"), 60.0), (at("11:00"), 20.0), (at("15:15"), 25.0)]
    pe = [(at("10:00"), 60.0), (at("11:00"), 20.0), (at("15:15"), 25.0)]
    day = simulate(ce, pe, rules=rules)

    adjustment = [p for p in day.positions if p.is_adjustment]
    assert len(adjustment) == 2
    assert all(p.exit_reason == ExitReason.END_OF_DAY for p in adjustment)
    assert all(p.exit_price == 25.0 for p in adjustment)


def test_simulate_is_idempotent():
    ce = [(at("10:00"), 60.0), (at("12:00"), 80.0), (at("15:15"), 75.0)]
    pe = [(at("10:00"), 60.0), (at("12:30"), 50.0)]
    sim = TradeDaySimulator()
    first = sim.simulate(DAY, 25000, 100.0, 100.0, ENTRY, ce, pe)
    second = sim.simulate(DAY, 25000, 100.0, 100.0, ENTRY, ce, pe)
    assert first == second


def test_accepts_lazy_tick_iterables():
    ce = ((at(f"10:{m:02d}"), 100.0 + m) for m in range(5))
    pe = iter([Tick(at("10:02"), 99.0)])
    day = simulate(ce, pe, rules=RulesConfig(combined_stop_loss_pct=60))
    assert len(day.positions) == 2
    assert day.positions[0].exit_price == 104.0
    assert day.positions[1].exit_price == 99.0


def test_merge_tick_clock_aligns_misaligned_series():
    ce = [Tick(at("09:30"), 1.0), Tick(at("09:31"), 2.0), Tick(at("09:31"), 2.5)]
    pe = [Tick(at("09:30:30"), 10.0), Tick(at("09:31"), 20.0)]

    events = list(merge_tick_clock(ce, pe))
    assert events == [
        (at("09:30"), 1.0, None),
        (at("09:30:30"), None, 10.0),
        (at("09:31"), 2.0, 20.0),
    ]


def test_naive_timestamps_use_ist_wall_clock_for_cutoff():
    ce = [(datetime(2025, 10, 1, 13, 0), 60.0)]
    pe = [(datetime(2025, 10, 1, 13, 0), 60.0)]
    day = TradeDaySimulator().simulate(DAY, 25000, 100.0, 100.0, datetime(2025, 10, 1, 9, 20), ce, pe)
    assert day.made_adjustment is True
