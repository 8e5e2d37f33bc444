"""
Symbol parsing utilities for index option contracts.

Supports:
- INDEX: exchange index names ("NIFTY 50", "NIFTY BANK", ...)
- OPT: {UNDERLYING}{DDMMMYY}{STRIKE}CE/PE (e.g., NIFTY25NOV2526000CE, BANKNIFTY30DEC2552000PE)
"""

import re
from dataclasses import dataclass
from datetime import date
from typing import Literal, Optional

from .instruments import DEFAULT_INDEX_SYMBOLS
from .models import LegType

_MONTH_MAP = {
    "JAN": 1, "FEB": 2, "MAR": 3, "APR": 4, "MAY": 5, "JUN": 6,
    "JUL": 7, "AUG": 8, "SEP": 9, "OCT": 10, "NOV": 11, "DEC": 12,
}

_OPTION_RE = re.compile(r"^([A-Z]+?)(\d{2})([A-Z]{3})(\d{2})(\d+)(CE|PE)$")

_INDEX_UNDERLYING = {v: k for k, v in DEFAULT_INDEX_SYMBOLS.items()}


@dataclass
class InstrumentId:
    """Parsed instrument identifier"""
    kind: Literal["INDEX", "OPT"]
    underlying: str
    expiry: Optional[date] = None
    strike: Optional[int] = None
    leg_type: Optional[LegType] = None
    original_symbol: str = ""


def parse_symbol(symbol: str) -> InstrumentId:
    """
    Parse an index or option symbol into its components.

    Examples:
        >>> parse_symbol("NIFTY 50").underlying
        'NIFTY'
        >>> parse_symbol("NIFTY25NOV2526000CE").strike
        26000

    Raises:
        ValueError: If the symbol is not recognised
    """
    original = symbol
    symbol = symbol.strip().upper()

    if symbol in _INDEX_UNDERLYING:
        return InstrumentId(kind="INDEX", underlying=_INDEX_UNDERLYING[symbol], original_symbol=original)

    match = _OPTION_RE.match(symbol)
    if not match:
        raise ValueError(f"Unrecognized symbol format: {original}")

    underlying, day_str, month_str, year_str, strike_str, cp = match.groups()
    month = _MONTH_MAP.get(month_str)
    if month is None:
        raise ValueError(f"Invalid month in option symbol: {original}")
    try:
        expiry = date(2000 + int(year_str), month, int(day_str))
    except ValueError as e:
        raise ValueError(f"Invalid expiry date in option symbol: {original}") from e

    return InstrumentId(
        kind="OPT",
        underlying=underlying,
        expiry=expiry,
        strike=int(strike_str),
        leg_type=LegType(cp),
        original_symbol=original,
    )


def is_option_symbol(symbol: str) -> bool:
    """Check if symbol is an option"""
    try:
        return parse_symbol(symbol).kind == "OPT"
    except ValueError:
        return False
