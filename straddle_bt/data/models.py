"""
Data models for option ticks and the price series provider interface.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import List, NamedTuple, Optional, Protocol


class LegType(str, Enum):
    """Option leg: CALL (CE) or PUT (PE)"""
    CALL = "CE"
    PUT = "PE"


class Tick(NamedTuple):
    """One last-traded-price observation"""
    ts: datetime
    ltp: float


@dataclass
class DayData:
    """
    Everything the simulator needs for one trading day.

    atm_strike is None when the provider found no underlying tick near entry time.
    """
    date: date
    atm_strike: Optional[int]
    entry_time: Optional[datetime] = None
    entry_price_ce: float = 0.0
    entry_price_pe: float = 0.0
    ce_ticks: List[Tick] = field(default_factory=list)
    pe_ticks: List[Tick] = field(default_factory=list)

    @classmethod
    def no_data(cls, day: date) -> "DayData":
        return cls(date=day, atm_strike=None)


class PriceSeriesProvider(Protocol):
    """
    Protocol for price series providers.

    Times are "HH:MM" strings in the trading-day timezone (IST). Data gaps are
    signalled by None / 0.0 / empty lists, not by exceptions.
    """

    def resolve_atm_strike(self, day: date, time: str) -> Optional[int]:
        """
        Nearest strike to the underlying price at/after `time`.

        Returns:
            Strike, or None when no underlying tick exists in the lookahead window
        """
        ...

    def entry_price(self, day: date, time: str, strike: int, leg_type: LegType) -> float:
        """First option LTP at/after `time` (0.0 when unavailable)"""
        ...

    def tick_series(
        self,
        day: date,
        start_time: str,
        end_time: str,
        strike: int,
        leg_type: LegType,
    ) -> List[Tick]:
        """Ascending (timestamp, ltp) ticks between start and end, possibly empty"""
        ...

    def lot_size(self, instrument: str) -> int:
        ...

    def strike_rounding_unit(self, instrument: str) -> int:
        ...
