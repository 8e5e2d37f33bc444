"""
Run artifacts: standardized output files for each backtest run.
"""

import hashlib
import json
import logging
import random
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Literal

import pandas as pd

logger = logging.getLogger(__name__)

DAY_COLUMNS = [
    "date",
    "atm_strike",
    "entry_price_ce",
    "entry_price_pe",
    "positions",
    "made_adjustment",
    "total_pnl",
    "day_pnl_percent",
    "unresolved",
    "warnings",
]

POSITION_COLUMNS = [
    "date",
    "leg_type",
    "strike",
    "entry_time",
    "entry_price",
    "exit_time",
    "exit_price",
    "exit_reason",
    "realized_pnl",
    "is_adjustment",
]


class RunArtifacts:
    """
    Manages run artifacts (output files) for a backtest run.

    Each run writes to: runs/<run_id>/
    - config_resolved.json
    - manifest.json
    - days.csv
    - positions.csv
    - metrics.json
    - run.log
    """

    def __init__(
        self,
        run_dir: Path,
        run_id: str,
        config: Dict[str, Any],
        save_log: bool = True,
    ):
        """
        Args:
            run_dir: Root directory for runs (e.g., Path("runs"))
            run_id: Unique run ID (deterministic hash or timestamp-based)
            config: Resolved RunConfig as dictionary
            save_log: Mirror package logging into run.log
        """
        self.run_dir = Path(run_dir) / run_id
        self.run_id = run_id
        self.config = config

        self.run_dir.mkdir(parents=True, exist_ok=True)

        self.log_file = self.run_dir / "run.log"
        self._file_handler = None
        if save_log:
            self._setup_logging()

    def _setup_logging(self):
        """Attach a file handler to the package logger for this run"""
        file_handler = logging.FileHandler(self.log_file, encoding="utf-8")
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
        logging.getLogger("straddle_bt").addHandler(file_handler)
        self._file_handler = file_handler

    def close(self):
        """Close file handlers"""
        if self._file_handler is not None:
            logging.getLogger("straddle_bt").removeHandler(self._file_handler)
            self._file_handler.close()
            self._file_handler = None

    def write_config_resolved(self):
        """Write config_resolved.json"""
        with open(self.run_dir / "config_resolved.json", "w", encoding="utf-8") as f:
            json.dump(self.config, f, indent=2, default=str)

    def write_manifest(self, metadata: Dict[str, Any]):
        """Write manifest.json with run metadata"""
        manifest = {
            "run_id": self.run_id,
            "created_at": datetime.now(timezone.utc).isoformat(),
            "config": self.config,
            **metadata,
        }

        with open(self.run_dir / "manifest.json", "w", encoding="utf-8") as f:
            json.dump(manifest, f, indent=2, default=str)

    def write_days(self, days: pd.DataFrame):
        """Write days.csv (one row per simulated trading day)"""
        if days.empty:
            days = pd.DataFrame(columns=DAY_COLUMNS)
        days.to_csv(self.run_dir / "days.csv", index=False)

    def write_positions(self, positions: pd.DataFrame):
        """Write positions.csv (one row per leg, adjustment legs included)"""
        if positions.empty:
            positions = pd.DataFrame(columns=POSITION_COLUMNS)
        positions.to_csv(self.run_dir / "positions.csv", index=False)

    def write_metrics(self, metrics: Dict[str, Any]):
        """Write metrics.json"""
        with open(self.run_dir / "metrics.json", "w", encoding="utf-8") as f:
            json.dump(metrics, f, indent=2, default=str)


def generate_run_id(
    config: Dict[str, Any],
    mode: Literal["deterministic", "timestamp"] = "timestamp",
) -> str:
    """
    Generate run ID.

    Args:
        config: Resolved RunConfig as dictionary
        mode: "deterministic" (hash of config) or "timestamp" (YYYYMMDD-HHMMSS-<suffix>)
    """
    if mode == "deterministic":
        config_json = json.dumps(config, sort_keys=True, default=str)
        hash_hex = hashlib.sha256(config_json.encode("utf-8")).hexdigest()[:12]
        return f"run-{hash_hex}"

    if mode == "timestamp":
        timestamp_str = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        # Short random suffix avoids collisions within the same second
        suffix = random.randint(100, 999)
        return f"run-{timestamp_str}-{suffix}"

    raise ValueError(f"Invalid run_id_mode: {mode}")
