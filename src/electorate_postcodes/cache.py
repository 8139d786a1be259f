"""Parquet cache for geocode assignments between report runs."""

import hashlib
import json
from pathlib import Path

import pandas as pd
import pyarrow as pa

from electorate_postcodes.config import CorrespondenceConfig

# Settings that change which district a geocode gets
_ASSIGNMENT_FIELDS = (
    "crs",
    "state",
    "overlap_policy",
    "missing_policy",
    "conflict_policy",
    "coordinate_precision",
    "district_name_column",
)


def cache_key(inputs: list[Path], config: CorrespondenceConfig) -> str:
    """Hash input file identity (name, size, mtime) and assignment settings."""
    settings = config.to_dict()
    payload = {
        "inputs": [
            [str(p.resolve()), p.stat().st_size, p.stat().st_mtime_ns] for p in inputs
        ],
        "config": {k: settings[k] for k in _ASSIGNMENT_FIELDS},
    }
    raw = json.dumps(payload, sort_keys=True).encode("utf-8")
    return hashlib.sha256(raw).hexdigest()[:16]


def cache_path(cache_dir: Path, key: str) -> Path:
    return cache_dir / f"assignments_{key}.parquet"


def load_assignments(cache_dir: Path, key: str) -> pd.DataFrame | None:
    """Return cached assignments, or None if absent or unreadable."""
    path = cache_path(cache_dir, key)
    if not path.exists():
        return None
    try:
        df = pd.read_parquet(path)
    except (OSError, pa.ArrowException) as e:
        print(f"  WARNING: Discarding unreadable cache {path.name}: {e}")
        path.unlink(missing_ok=True)
        return None
    print(f"  Loaded {len(df):,} cached assignments from {path.name}")
    return df


def save_assignments(assignments: pd.DataFrame, cache_dir: Path, key: str) -> Path:
    cache_dir.mkdir(parents=True, exist_ok=True)
    path = cache_path(cache_dir, key)
    assignments.to_parquet(path, index=False)
    print(f"  Cached assignments to {path.name}")
    return path
