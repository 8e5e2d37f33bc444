"""
SQLite price series provider for the ltp_ticks table.

Resolves the ATM strike from index ticks, maps (strike, leg) to the nearest-expiry option
symbol traded that day, and serves entry prices and intraday tick series.
"""

import logging
import sqlite3
import threading
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Tuple

import pandas as pd

from ..errors import MissingDataError
from .calendars import to_date, trading_datetime
from .instruments import InstrumentTable
from .models import LegType, Tick
from .symbols import is_option_symbol, parse_symbol

logger = logging.getLogger(__name__)

# Cache key: (trade date, strike, leg)
_ContractKey = Tuple[date, int, LegType]


class SQLitePriceSeriesProvider:
    """
    Price series provider backed by an ltp_ticks SQLite table.

    Expected columns: id, symbol, ts (ISO-8601 UTC text), ltp. Other columns
    (bid, ask, volume, greeks) are ignored.
    """

    def __init__(
        self,
        sqlite_path: str,
        instrument: str = "NIFTY",
        instruments: Optional[InstrumentTable] = None,
        table: str = "ltp_ticks",
        atm_window_minutes: int = 5,
        day_end_time: str = "23:59",
    ):
        """
        Initialize SQLite price series provider.

        Args:
            sqlite_path: Path to SQLite database file
            instrument: Underlying name (NIFTY, BANKNIFTY, ...)
            instruments: Lot size / strike rounding / index symbol table
            table: Table name (default "ltp_ticks")
            atm_window_minutes: Lookahead window for the underlying tick used for ATM
            day_end_time: IST clock time bounding entry-price lookups to the same day
        """
        self.sqlite_path = sqlite_path
        self.instrument = instrument.upper()
        self.instruments = instruments or InstrumentTable()
        self.table = table
        self.atm_window_minutes = int(atm_window_minutes)
        self.day_end_time = day_end_time

        self._contract_cache: Dict[_ContractKey, Optional[str]] = {}
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._closed = False

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create SQLite connection (caller holds self._lock)"""
        if self._closed:
            raise MissingDataError(f"Provider for {self.sqlite_path} is closed")
        if self._conn is None:
            self._conn = sqlite3.connect(self.sqlite_path, check_same_thread=False)
            self._conn.execute("PRAGMA busy_timeout=5000;")
        return self._conn

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self):
        """
        Close database connection.

        A query still running on another thread (a fetch abandoned after a timeout) is
        interrupted; the connection is closed once that thread releases the lock, and no
        new connection is opened afterwards.
        """
        self._closed = True
        conn = self._conn
        if conn is not None:
            conn.interrupt()
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _query(self, sql: str, params: tuple) -> pd.DataFrame:
        # One shared connection; serialize access for the threaded runner
        with self._lock:
            return pd.read_sql_query(sql, self._get_connection(), params=params)

    def lot_size(self, instrument: str) -> int:
        return self.instruments.lot_size(instrument)

    def strike_rounding_unit(self, instrument: str) -> int:
        return self.instruments.strike_rounding_unit(instrument)

    def resolve_atm_strike(self, day: date, time: str) -> Optional[int]:
        """
        Round the first index tick in [time, time + window] to the nearest strike.

        Returns:
            ATM strike, or None when the index has no tick in the window
        """
        index_symbol = self.instruments.index_symbol(self.instrument)
        from_ts = trading_datetime(day, time)
        to_ts = from_ts + timedelta(minutes=self.atm_window_minutes)

        df = self._query(
            f"""
            SELECT ltp, ts FROM {self.table}
            WHERE symbol = ? AND ts >= ? AND ts <= ?
            ORDER BY ts ASC, id ASC
            LIMIT 1
            """,
            (index_symbol, from_ts.isoformat(), to_ts.isoformat()),
        )
        if df.empty:
            logger.warning(f"No index LTP found for {index_symbol} on {day} around {time}")
            return None

        ltp = float(df["ltp"].iloc[0])
        strike = self.instruments.round_to_strike(ltp, self.instrument)
        logger.info(f"ATM strike on {day} at {df['ts'].iloc[0]}: {strike} (index {ltp})")
        return strike

    def resolve_option_symbol(self, day: date, strike: int, leg_type: LegType) -> Optional[str]:
        """
        Nearest-expiry option symbol (expiry >= day) for the strike/leg that traded on `day`.
        """
        day = to_date(day)
        key = (day, int(strike), LegType(leg_type))
        if key in self._contract_cache:
            return self._contract_cache[key]

        start_ts = trading_datetime(day, "00:00")
        end_ts = trading_datetime(day, "23:59:59")
        pattern = f"{self.instrument}%{int(strike)}{LegType(leg_type).value}"
        df = self._query(
            f"""
            SELECT DISTINCT symbol FROM {self.table}
            WHERE symbol LIKE ? AND ts >= ? AND ts <= ?
            """,
            (pattern, start_ts.isoformat(), end_ts.isoformat()),
        )

        candidates = []
        for symbol in df["symbol"].tolist():
            if not is_option_symbol(symbol):
                continue
            parsed = parse_symbol(symbol)
            if (
                parsed.underlying == self.instrument
                and parsed.strike == int(strike)
                and parsed.leg_type == key[2]
                and parsed.expiry is not None
                and parsed.expiry >= day
            ):
                candidates.append((parsed.expiry, symbol))

        symbol = min(candidates)[1] if candidates else None
        if symbol is None:
            logger.warning(f"No option contract found for {self.instrument} {strike} {key[2].value} on {day}")
        self._contract_cache[key] = symbol
        return symbol

    def entry_price(self, day: date, time: str, strike: int, leg_type: LegType) -> float:
        """
        First option LTP at/after `time` on the same day.

        Returns:
            Price, or 0.0 when no tick exists
        """
        symbol = self.resolve_option_symbol(day, strike, leg_type)
        if symbol is None:
            return 0.0

        df = self._query(
            f"""
            SELECT ltp FROM {self.table}
            WHERE symbol = ? AND ts >= ? AND ts <= ?
            ORDER BY ts ASC, id ASC
            LIMIT 1
            """,
            (
                symbol,
                trading_datetime(day, time).isoformat(),
                trading_datetime(day, self.day_end_time).isoformat(),
            ),
        )
        if df.empty:
            logger.warning(f"No option LTP found for {symbol} at {day} {time}")
            return 0.0
        return float(df["ltp"].iloc[0])

    def tick_series(
        self,
        day: date,
        start_time: str,
        end_time: str,
        strike: int,
        leg_type: LegType,
    ) -> List[Tick]:
        """
        All option ticks in [start_time, end_time], ascending by timestamp.
        """
        symbol = self.resolve_option_symbol(day, strike, leg_type)
        if symbol is None:
            return []

        df = self._query(
            f"""
            SELECT id, ts, ltp FROM {self.table}
            WHERE symbol = ? AND ts >= ? AND ts <= ?
            ORDER BY ts ASC, id ASC
            """,
            (
                symbol,
                trading_datetime(day, start_time).isoformat(),
                trading_datetime(day, end_time).isoformat(),
            ),
        )
        if df.empty:
            return []

        df = df.dropna(subset=["ltp"])
        timestamps = pd.to_datetime(df["ts"], utc=True)
        return [
            Tick(ts.to_pydatetime(), float(ltp))
            for ts, ltp in zip(timestamps, df["ltp"].astype(float))
        ]

    def available_dates(self) -> List[date]:
        """Distinct trading dates (IST) present in the table, most recent first"""
        df = self._query(f"SELECT DISTINCT substr(ts, 1, 10) AS utc_day FROM {self.table}", ())
        if df.empty:
            return []
        # IST sessions never cross UTC midnight, so the UTC date is the trade date
        days = sorted({to_date(d) for d in df["utc_day"].dropna()}, reverse=True)
        return days

    def last_n_trading_days(self, n: int = 3) -> List[date]:
        """Most recent n dates with data, most recent first"""
        return self.available_dates()[: max(0, int(n))]
