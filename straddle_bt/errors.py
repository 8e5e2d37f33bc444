"""
Error taxonomy for the backtester.

Missing data degrades a single day to a no-trade day and is reported as a warning.
Invalid input (no dates to run) and configuration problems abort the run.
"""


class BacktestError(Exception):
    """Base class for backtester errors"""


class MissingDataError(BacktestError):
    """Provider has no data for the requested day/contract"""


class InvalidInputError(BacktestError, ValueError):
    """Input that makes a computation meaningless (e.g. empty date list)"""


class ConfigError(BacktestError, ValueError):
    """Configuration cannot be loaded or resolved"""
