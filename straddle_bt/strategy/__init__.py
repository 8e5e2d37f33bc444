"""
Strategy: the fixed long straddle with stop-loss, combined exits and one adjustment.
"""

from .simulator import TradeDaySimulator, merge_tick_clock

__all__ = ["TradeDaySimulator", "merge_tick_clock"]
