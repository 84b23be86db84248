"""
Centralized configuration loader.

Loads non-sensitive config from bqcost.toml (path overridable with
BQCOST_CONFIG_PATH). Environment variables, including that
one and APP_ENV, may be set in a .env file.

The TOML file is read on first use, so importing library modules never
requires it.
"""

import os
import tomllib
from dataclasses import dataclass, fields
from functools import lru_cache
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

load_dotenv()

_MISSING = object()


def _config_path() -> Path:
    return Path(
        os.environ.get(
            "BQCOST_CONFIG_PATH", Path(__file__).parent.parent / "bqcost.toml"
        )
    )


@lru_cache(maxsize=1)
def _load() -> dict:
    path = _config_path()
    if not path.exists():
        raise RuntimeError(f"Configuration file not found: {path}")
    with open(path, "rb") as f:
        return tomllib.load(f)


def reload() -> None:
    """Drop the cached TOML so the next get() re-reads it."""
    _load.cache_clear()


def get(*keys: str, fallback: Any = _MISSING) -> Any:
    """Traverse nested TOML config by keys.

    Example: get("bigquery", "max_tables") -> 20000
    Raises RuntimeError if any key is missing and no fallback was given.
    """
    current = _load()
    path = ".".join(keys)
    for key in keys:
        if not isinstance(current, dict) or key not in current:
            if fallback is not _MISSING:
                return fallback
            raise RuntimeError(
                f"Missing required config key '{path}' in bqcost.toml"
            )
        current = current[key]
    return current


@dataclass(frozen=True)
class IngestConfig:
    """Tunables for one ingestion pipeline, passed explicitly at construction."""
    api_url: str = "https://bigquery.googleapis.com/bigquery/v2"
    request_timeout_seconds: float = 30.0
    requests_per_second: float = 50.0
    burst: int = 50
    max_datasets: int = 500
    max_tables: int = 20000
    max_results_per_page: int = 1000

    initial_interval_seconds: float = 0.1
    max_interval_seconds: float = 1.0
    multiplier: float = 2.0
    max_retries: int = 4
    randomization_factor: float = 0.5

    progress_report_interval: int = 100
    max_workers: int = 4
    run_timeout_seconds: float = 1800.0

    max_top_results: int = 20

    @classmethod
    def from_config(cls) -> "IngestConfig":
        """Build from the [bigquery], [retry], [loading] and [reports] sections.

        Keys absent from the file keep their defaults.
        """
        values = {}
        for section in ("bigquery", "retry", "loading", "reports"):
            table = get(section, fallback={})
            for f in fields(cls):
                if f.name in table:
                    values[f.name] = table[f.name]
        return cls(**values)
