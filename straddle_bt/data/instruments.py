"""
Static per-index lookups: lot size, strike rounding unit and index tick symbol.

InstrumentTable is a plain value built from configuration; nothing here is global state.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, Optional

DEFAULT_LOT_SIZES: Dict[str, int] = {
    "NIFTY": 75,
    "BANKNIFTY": 30,
    "MIDCPNIFTY": 120,
    "FINNIFTY": 65,
}

DEFAULT_STRIKE_ROUNDING: Dict[str, int] = {
    "BANKNIFTY": 100,
    "NIFTY": 50,
    "FINNIFTY": 50,
    "MIDCPNIFTY": 25,
}

# Index ticks are stored under the exchange index name
DEFAULT_INDEX_SYMBOLS: Dict[str, str] = {
    "NIFTY": "NIFTY 50",
    "BANKNIFTY": "NIFTY BANK",
    "FINNIFTY": "NIFTY FIN SERVICE",
    "MIDCPNIFTY": "NIFTY MID SELECT",
}

FALLBACK_LOT_SIZE = 30
FALLBACK_STRIKE_ROUNDING = 100


@dataclass(frozen=True)
class InstrumentTable:
    lot_sizes: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_LOT_SIZES))
    strike_rounding: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_STRIKE_ROUNDING))
    index_symbols: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_INDEX_SYMBOLS))

    def lot_size(self, instrument: str) -> int:
        return int(self.lot_sizes.get(instrument.upper(), FALLBACK_LOT_SIZE))

    def strike_rounding_unit(self, instrument: str) -> int:
        return int(self.strike_rounding.get(instrument.upper(), FALLBACK_STRIKE_ROUNDING))

    def index_symbol(self, instrument: str) -> str:
        name = instrument.upper()
        return self.index_symbols.get(name, name)

    def round_to_strike(self, price: float, instrument: str) -> int:
        """Round an underlying price to the nearest strike (halves round up)"""
        unit = self.strike_rounding_unit(instrument)
        return int(math.floor(float(price) / unit + 0.5) * unit)


def build_instrument_table(
    lot_sizes: Optional[Dict[str, int]] = None,
    strike_rounding: Optional[Dict[str, int]] = None,
    index_symbols: Optional[Dict[str, str]] = None,
) -> InstrumentTable:
    """Defaults overlaid with (upper-cased) overrides"""
    def _merge(base, extra):
        merged = dict(base)
        merged.update({k.upper(): v for k, v in (extra or {}).items()})
        return merged

    return InstrumentTable(
        lot_sizes=_merge(DEFAULT_LOT_SIZES, lot_sizes),
        strike_rounding=_merge(DEFAULT_STRIKE_ROUNDING, strike_rounding),
        index_symbols=_merge(DEFAULT_INDEX_SYMBOLS, index_symbols),
    )
