"""
Run module: backtest runner, CLI, and artifacts.
"""

from .runner import BacktestRunner, RunResult, run_backtest, summarize
from .artifacts import RunArtifacts, generate_run_id

__all__ = ["BacktestRunner", "RunResult", "run_backtest", "summarize", "RunArtifacts", "generate_run_id"]
