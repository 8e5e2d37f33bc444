"""
Portfolio layer: positions, trade days, P&L.
"""

from .positions import BacktestResult, ExitReason, Position, TradeDay
from .pnl import compute_day_pnl, position_pnl, settle_day

__all__ = [
    "BacktestResult",
    "ExitReason",
    "Position",
    "TradeDay",
    "compute_day_pnl",
    "position_pnl",
    "settle_day",
]
