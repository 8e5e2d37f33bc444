"""
Data layer: tick models, provider interface, SQLite provider, instruments, calendars
"""

from .models import DayData, LegType, PriceSeriesProvider, Tick
from .providers_sqlite import SQLitePriceSeriesProvider
from .instruments import InstrumentTable, build_instrument_table
from .symbols import InstrumentId, parse_symbol, is_option_symbol
from .calendars import IST, UTC, parse_hhmm, trading_datetime, to_ist, weekdays_between, last_n_weekdays

__all__ = [
    "DayData",
    "LegType",
    "PriceSeriesProvider",
    "Tick",
    "SQLitePriceSeriesProvider",
    "InstrumentTable",
    "build_instrument_table",
    "InstrumentId",
    "parse_symbol",
    "is_option_symbol",
    "IST",
    "UTC",
    "parse_hhmm",
    "trading_datetime",
    "to_ist",
    "weekdays_between",
    "last_n_weekdays",
]
