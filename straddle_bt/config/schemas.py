"""
Configuration schemas using Pydantic for validation and type safety.
"""

from datetime import date
from typing import Dict, List, Literal, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator, model_validator

from ..data.calendars import parse_hhmm, to_date
from ..data.instruments import (
    DEFAULT_INDEX_SYMBOLS,
    DEFAULT_LOT_SIZES,
    DEFAULT_STRIKE_ROUNDING,
    InstrumentTable,
    build_instrument_table,
)


class DataConfig(BaseModel):
    """Data source configuration"""
    provider: Literal["sqlite"] = Field(default="sqlite", description="Data provider type")
    sqlite_path: Optional[str] = Field(default=None, description="Path to SQLite database")
    table: str = Field(default="ltp_ticks", description="Table name in database")
    atm_window_minutes: int = Field(default=5, ge=0, description="Lookahead for the index tick used to pick the ATM strike")

    @model_validator(mode="after")
    def validate_sqlite_path(self):
        """sqlite_path is required when provider is sqlite"""
        if self.provider == "sqlite" and not self.sqlite_path:
            raise ValueError("sqlite_path is required when provider='sqlite'")
        return self


class InstrumentConfig(BaseModel):
    """Traded index and its static lookups"""
    name: str = Field(default="NIFTY", description="Underlying index (NIFTY, BANKNIFTY, FINNIFTY, MIDCPNIFTY)")
    lot_size: Optional[int] = Field(default=None, gt=0, description="Explicit lot size; falls back to lot_sizes[name]")
    lot_sizes: Dict[str, int] = Field(default_factory=lambda: dict(DEFAULT_LOT_SIZES))
    strike_rounding: Dict[str, int] = Field(default_factory=lambda: dict(DEFAULT_STRIKE_ROUNDING))
    index_symbols: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_INDEX_SYMBOLS))

    @field_validator("name", mode="before")
    @classmethod
    def upper_name(cls, v):
        return str(v).strip().upper()

    def table(self) -> InstrumentTable:
        return build_instrument_table(self.lot_sizes, self.strike_rounding, self.index_symbols)

    def resolved_lot_size(self) -> int:
        if self.lot_size is not None:
            return int(self.lot_size)
        return self.table().lot_size(self.name)


class RulesConfig(BaseModel):
    """Exit / adjustment thresholds of the straddle (percentages are positive magnitudes)"""
    stop_loss_pct: float = Field(default=25.0, gt=0, description="Per-leg stop loss (% drop from entry)")
    combined_target_pct: float = Field(default=25.0, gt=0, description="Combined premium target (% gain)")
    combined_stop_loss_pct: float = Field(default=10.0, gt=0, description="Combined premium stop (% drop)")
    entry_time: str = Field(default="09:20", description="Entry time in IST (HH:MM)")
    adjustment_time: str = Field(default="14:00", description="Re-entry allowed strictly before this IST time")
    exit_time: str = Field(default="15:15", description="End of the tick window in IST (HH:MM)")
    hold_adjustment_to_eod: bool = Field(default=False, description="Exempt the adjustment pair from intraday exits")
    adjust_after_target: bool = Field(
        default=False,
        description="Also re-enter when the combined target closed the pair (default: only after stop-outs)",
    )

    @field_validator("entry_time", "adjustment_time", "exit_time", mode="before")
    @classmethod
    def validate_clock(cls, v):
        parse_hhmm(v)
        return str(v)

    @model_validator(mode="after")
    def validate_order(self):
        entry = parse_hhmm(self.entry_time)
        adjustment = parse_hhmm(self.adjustment_time)
        exit_ = parse_hhmm(self.exit_time)
        if not (entry < adjustment <= exit_):
            raise ValueError(
                f"Expected entry_time < adjustment_time <= exit_time, got "
                f"{self.entry_time} / {self.adjustment_time} / {self.exit_time}"
            )
        return self


class EngineConfig(BaseModel):
    """Which days to run and how"""
    dates: Optional[List[str]] = Field(default=None, description="Explicit trading days (YYYY-MM-DD)")
    start: Optional[str] = Field(default=None, description="Start date; weekdays through `end` are run")
    end: Optional[str] = Field(default=None, description="End date (inclusive)")
    last_n_days: Optional[int] = Field(default=None, gt=0, description="Run the last N dates present in the data")
    tz_display: str = Field(default="Asia/Kolkata", description="Display timezone")
    provider_timeout_s: Optional[float] = Field(default=None, gt=0, description="Per-day data fetch timeout")
    max_workers: int = Field(default=1, ge=1, description="Days simulated in parallel")

    @field_validator("dates", mode="before")
    @classmethod
    def validate_dates(cls, v):
        if v is None:
            return v
        if isinstance(v, str):
            v = [s for s in v.replace(",", " ").split() if s]
        return [to_date(d).isoformat() for d in v]

    @field_validator("tz_display")
    @classmethod
    def validate_tz(cls, v):
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @field_validator("start", "end", mode="before")
    @classmethod
    def validate_date_string(cls, v):
        """Keep as ISO string"""
        if v is None:
            return v
        return to_date(v).isoformat()

    def explicit_dates(self) -> Optional[List[date]]:
        if self.dates is None:
            return None
        return [to_date(d) for d in self.dates]


class ReportingConfig(BaseModel):
    """Reporting configuration"""
    run_dir_root: str = Field(default="runs", description="Root directory for run outputs")
    save_csv: bool = Field(default=True, description="Save days.csv / positions.csv")
    save_log: bool = Field(default=True, description="Save run log")


class RunConfig(BaseModel):
    """Complete run configuration"""
    data: DataConfig
    instrument: InstrumentConfig = Field(default_factory=InstrumentConfig)
    rules: RulesConfig = Field(default_factory=RulesConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    reporting: ReportingConfig = Field(default_factory=ReportingConfig)
