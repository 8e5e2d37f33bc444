"""
Position and day records for the straddle backtest:
- one Position per option leg held during the day
- TradeDay groups the initial pair and the optional adjustment pair
- BacktestResult accumulates days into win/loss statistics
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

from ..data.models import LegType


class ExitReason(str, Enum):
    STOP_LOSS = "STOP_LOSS"
    COMBINED_TARGET = "COMBINED_TARGET"
    COMBINED_STOP_LOSS = "COMBINED_STOP_LOSS"
    END_OF_DAY = "END_OF_DAY"


@dataclass
class Position:
    leg_type: LegType
    strike_price: int
    entry_price: float
    entry_time: datetime
    exit_price: Optional[float] = None
    exit_time: Optional[datetime] = None
    is_active: bool = True
    exit_reason: Optional[ExitReason] = None
    realized_pnl: Optional[float] = None
    is_adjustment: bool = False

    def close(self, price: float, ts: datetime, reason: ExitReason) -> None:
        """Close the leg. A position is closed exactly once and never reopened."""
        if not self.is_active:
            raise RuntimeError(f"{self.leg_type.value} {self.strike_price} is already closed ({self.exit_reason})")
        self.exit_price = float(price)
        self.exit_time = ts
        self.is_active = False
        self.exit_reason = ExitReason(reason)

    @property
    def is_resolved(self) -> bool:
        return self.exit_price is not None

    def to_row(self) -> Dict[str, object]:
        return {
            "leg_type": self.leg_type.value,
            "strike": self.strike_price,
            "entry_time": self.entry_time,
            "entry_price": self.entry_price,
            "exit_time": self.exit_time,
            "exit_price": self.exit_price,
            "exit_reason": self.exit_reason.value if self.exit_reason else None,
            "realized_pnl": self.realized_pnl,
            "is_adjustment": self.is_adjustment,
        }


@dataclass
class TradeDay:
    date: date
    atm_strike: Optional[int] = None
    positions: List[Position] = field(default_factory=list)
    total_pnl: float = 0.0
    day_pnl_percent: float = 0.0
    made_adjustment: bool = False
    warnings: List[str] = field(default_factory=list)

    @property
    def is_trade_day(self) -> bool:
        return bool(self.positions)

    @property
    def unresolved_positions(self) -> List[Position]:
        """Positions the end-of-day pass could not close (empty tick series)"""
        return [p for p in self.positions if p.is_active]

    def original_pair(self) -> Tuple[float, float]:
        """Entry prices (CE, PE) of the initial pair; adjustment legs are excluded"""
        ce = next((p.entry_price for p in self.positions if p.leg_type == LegType.CALL and not p.is_adjustment), 0.0)
        pe = next((p.entry_price for p in self.positions if p.leg_type == LegType.PUT and not p.is_adjustment), 0.0)
        return ce, pe

    def to_row(self) -> Dict[str, object]:
        ce, pe = self.original_pair()
        return {
            "date": self.date,
            "atm_strike": self.atm_strike,
            "entry_price_ce": ce,
            "entry_price_pe": pe,
            "positions": len(self.positions),
            "made_adjustment": self.made_adjustment,
            "total_pnl": self.total_pnl,
            "day_pnl_percent": self.day_pnl_percent,
            "unresolved": len(self.unresolved_positions),
            "warnings": "; ".join(self.warnings),
        }


@dataclass
class BacktestResult:
    days: List[TradeDay] = field(default_factory=list)
    total_pnl: float = 0.0
    winning_days: int = 0
    losing_days: int = 0
    win_rate: float = 0.0
    average_daily_pnl: float = 0.0
    warnings: List[str] = field(default_factory=list)

    def add_day(self, day: TradeDay) -> None:
        self.days.append(day)
        self.total_pnl += day.total_pnl
        # Flat day counts as a win
        if day.total_pnl >= 0:
            self.winning_days += 1
        else:
            self.losing_days += 1

    def finalize(self) -> "BacktestResult":
        n = len(self.days)
        if n == 0:
            self.win_rate = 0.0
            self.average_daily_pnl = 0.0
            return self
        self.win_rate = self.winning_days / n * 100.0
        self.average_daily_pnl = self.total_pnl / n
        return self
