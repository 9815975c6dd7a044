"""
Configuration — JSON file merged over built-in defaults.

The file lives at ``config/commitledger.json``. Missing keys fall back to
DEFAULT_CONFIG; an unreadable file falls back entirely with a warning.
"""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "commitledger.json"

DEFAULT_CONFIG: Dict[str, Any] = {
    "db_path": None,                    # None -> data.database.DEFAULT_DB_PATH
    "log_file": "commitledger.log",
    "remote_dir": None,                 # shared folder for JsonFileRemoteStore
    "sync": {
        "max_attempts": 3,
        "base_delay_s": 1.0,
        "max_delay_s": 10.0,
    },
    "metrics": {
        "ser_min_duration_s": 300,
        "global_ser_min_duration_s": 3600,
        "lookback_days": 7,
    },
    "daily_limit_hours": 6,
    "penalty_per_minute": 1.0,          # display only
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: Optional[Path] = None) -> Dict[str, Any]:
    path = path or CONFIG_PATH
    if not path.exists():
        return copy.deepcopy(DEFAULT_CONFIG)
    try:
        with open(path, encoding="utf-8") as f:
            cfg = json.load(f)
        if not isinstance(cfg, dict):
            raise ValueError("top-level value must be an object")
    except (json.JSONDecodeError, ValueError) as e:
        logger.warning("Bad config at %s (%s), using defaults.", path, e)
        return copy.deepcopy(DEFAULT_CONFIG)
    return _merge(DEFAULT_CONFIG, cfg)


def save_config(config: Dict[str, Any], path: Optional[Path] = None) -> None:
    path = path or CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(config, f, indent=2)
