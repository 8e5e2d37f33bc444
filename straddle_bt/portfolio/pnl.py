"""
Realized P&L for positions and trade days.
"""

import logging
from typing import Optional, Tuple

from .positions import Position, TradeDay

logger = logging.getLogger(__name__)


def position_pnl(position: Position, lot_size: int) -> Optional[float]:
    """(exit - entry) * lot_size, or None while the position has no exit price."""
    if position.exit_price is None:
        return None
    return (position.exit_price - position.entry_price) * lot_size


def compute_day_pnl(trade_day: TradeDay, lot_size: int) -> Tuple[float, float]:
    """
    Total realized P&L of a day and its return on the initial premium.

    The percentage denominator is (CE entry + PE entry) * lot_size of the original pair,
    never the adjustment pair. A zero denominator gives 0.0%.

    Returns:
        (total_pnl, pnl_percent)
    """
    total = 0.0
    for position in trade_day.positions:
        pnl = position_pnl(position, lot_size)
        if pnl is not None:
            total += pnl

    ce_entry, pe_entry = trade_day.original_pair()
    basis = (ce_entry + pe_entry) * lot_size
    if basis == 0:
        if trade_day.positions:
            logger.warning(f"{trade_day.date}: zero entry premium, day P&L % reported as 0")
        return total, 0.0
    return total, total / basis * 100.0


def settle_day(trade_day: TradeDay, lot_size: int) -> TradeDay:
    """Write realized P&L onto each resolved position and the day totals."""
    for position in trade_day.positions:
        position.realized_pnl = position_pnl(position, lot_size)
    trade_day.total_pnl, trade_day.day_pnl_percent = compute_day_pnl(trade_day, lot_size)
    return trade_day
