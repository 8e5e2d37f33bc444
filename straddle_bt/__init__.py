"""
Intraday Straddle Backtester

Replays historical option ticks for an ATM CALL + PUT pair bought at a fixed entry time,
applies stop-loss / combined target / combined stop-loss exits with a single re-entry
("adjustment"), and reports per-day and aggregate P&L.
"""

__version__ = "0.1.0"
