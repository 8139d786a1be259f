"""
Load the G-NAF address extract and reduce it to distinct geocodes.

A geocode is a distinct (postcode, longitude, latitude) triple. Many
addresses share one geocode (apartment buildings, rural lots), so the
spatial assignment only has to run once per geocode.
"""

from pathlib import Path

import numpy as np
import pandas as pd

from electorate_postcodes.config import CorrespondenceConfig
from electorate_postcodes.errors import InputError

REQUIRED_COLUMNS = ["state", "postcode", "longitude", "latitude"]
GEOCODE_COLUMNS = ["postcode", "longitude", "latitude"]
KEY_COLUMNS = ["postcode", "lon_key", "lat_key"]

# G-NAF exports use several spellings for the same fields
_COLUMN_ALIASES = {
    "state_abbreviation": "state",
    "state_abbrev": "state",
    "post_code": "postcode",
    "lon": "longitude",
    "lng": "longitude",
    "lat": "latitude",
}


def load_addresses(path: Path, state: str | None = "NSW") -> pd.DataFrame:
    """
    Load the pipe-separated address table and filter it to one state.

    Parameters
    ----------
    path : Path
        Path to the ``|``-delimited address extract.
    state : str or None
        State abbreviation to keep. ``None`` keeps every row.

    Returns
    -------
    pd.DataFrame
        Addresses with at least ``state``, ``postcode``, ``longitude`` and
        ``latitude`` columns. Postcodes are kept as strings.

    Raises
    ------
    FileNotFoundError
        If the input file does not exist.
    InputError
        If the file cannot be parsed or required columns are missing.
    """
    if not path.exists():
        raise FileNotFoundError(f"Address extract not found: {path}")

    print(f"Loading addresses from {path}")
    try:
        df = pd.read_csv(
            path,
            sep="|",
            dtype=str,
        )
    except (pd.errors.ParserError, UnicodeDecodeError) as e:
        raise InputError(f"Could not parse address extract {path}: {e}") from e

    df = standardise_address_columns(df, source=str(path))
    print(f"  Loaded {len(df):,} addresses")

    if state is not None:
        n_before = len(df)
        df = df[df["state"].astype("string").str.strip().str.upper() == state.upper()]
        df = df.reset_index(drop=True)
        print(f"  Filtered to {state}: {n_before:,} -> {len(df):,}")

    return df


def standardise_address_columns(df: pd.DataFrame, source: str = "addresses") -> pd.DataFrame:
    """Lower-case headers, apply known aliases and coerce column types."""
    df = df.copy()
    df.columns = df.columns.str.strip().str.lower()
    df = df.rename(columns={k: v for k, v in _COLUMN_ALIASES.items() if v not in df.columns})

    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise InputError(
            f"Required columns not found in {source}: {missing}\n"
            f"Available columns: {list(df.columns)}"
        )

    df["postcode"] = df["postcode"].astype("string").str.strip()
    df["postcode"] = df["postcode"].mask(df["postcode"] == "")
    for col in ("longitude", "latitude"):
        df[col] = pd.to_numeric(df[col], errors="coerce")
    return df


def coordinate_key(values: pd.Series, precision: int) -> pd.Series:
    """
    Quantise coordinates to integers for use as join keys.

    Exact float equality is not reliable once values have passed through
    parquet or CSV, so keys are ``round(value * 10**precision)``.
    """
    scaled = np.round(values.to_numpy(dtype="float64") * 10**precision)
    return pd.Series(scaled.astype("int64"), index=values.index)


def add_join_keys(df: pd.DataFrame, precision: int) -> pd.DataFrame:
    """Return a copy of ``df`` with ``lon_key`` and ``lat_key`` columns."""
    df = df.copy()
    df["lon_key"] = coordinate_key(df["longitude"], precision)
    df["lat_key"] = coordinate_key(df["latitude"], precision)
    return df


def incomplete_mask(addresses: pd.DataFrame) -> pd.Series:
    """True for addresses lacking a postcode or either coordinate."""
    return addresses[GEOCODE_COLUMNS].isna().any(axis=1)


def find_postcode_conflicts(addresses: pd.DataFrame, precision: int) -> pd.DataFrame:
    """
    Find coordinates that carry more than one postcode.

    Returns
    -------
    pd.DataFrame
        One row per conflicting coordinate with ``lon_key``, ``lat_key`` and
        ``n_postcodes``.
    """
    complete = add_join_keys(addresses[~incomplete_mask(addresses)], precision)
    n_postcodes = (
        complete.groupby(["lon_key", "lat_key"])["postcode"]
        .nunique()
        .rename("n_postcodes")
        .reset_index()
    )
    return n_postcodes[n_postcodes["n_postcodes"] > 1].reset_index(drop=True)


def clean_addresses(
    addresses: pd.DataFrame, config: CorrespondenceConfig, verbose: bool = True
) -> tuple[pd.DataFrame, dict[str, int]]:
    """
    Apply the missing-value and postcode-conflict policies.

    Returns
    -------
    tuple[pd.DataFrame, dict]
        Cleaned addresses with join keys, and counts of what was removed
        (``n_incomplete``, ``n_conflicting``, ``n_conflict_coordinates``).
    """
    missing = incomplete_mask(addresses)
    n_incomplete = int(missing.sum())
    if n_incomplete and config.missing_policy == "raise":
        raise InputError(
            f"{n_incomplete:,} addresses have no postcode or coordinates "
            f"(missing_policy='raise')"
        )
    if n_incomplete and verbose:
        print(f"  Dropping {n_incomplete:,} addresses without postcode/coordinates")

    cleaned = add_join_keys(addresses[~missing], config.coordinate_precision)

    conflicts = find_postcode_conflicts(addresses, config.coordinate_precision)
    n_conflicting = 0
    if len(conflicts):
        if verbose:
            print(f"  {len(conflicts):,} coordinates carry more than one postcode")
        if config.conflict_policy == "drop":
            flagged = cleaned.merge(
                conflicts[["lon_key", "lat_key"]], on=["lon_key", "lat_key"], how="left", indicator=True
            )["_merge"].eq("both").to_numpy()
            n_conflicting = int(flagged.sum())
            cleaned = cleaned[~flagged]
            if verbose:
                print(f"    Dropped {n_conflicting:,} addresses at conflicting coordinates")

    stats = {
        "n_incomplete": n_incomplete,
        "n_conflicting": n_conflicting,
        "n_conflict_coordinates": len(conflicts),
    }
    return cleaned.reset_index(drop=True), stats


def extract_geocodes(
    addresses: pd.DataFrame, config: CorrespondenceConfig, verbose: bool = True
) -> pd.DataFrame:
    """
    Reduce addresses to distinct (postcode, longitude, latitude) geocodes.

    Parameters
    ----------
    addresses : pd.DataFrame
        Address table with ``postcode``, ``longitude`` and ``latitude``.
    config : CorrespondenceConfig
        Supplies the missing-value policy, conflict policy and key precision.

    Returns
    -------
    pd.DataFrame
        Geocodes sorted by postcode then coordinates, with the original
        coordinates and the quantised ``lon_key``/``lat_key`` join keys.
    """
    cleaned, _ = clean_addresses(addresses, config, verbose=verbose)
    geocodes = (
        cleaned.drop_duplicates(subset=KEY_COLUMNS, keep="first")[GEOCODE_COLUMNS + ["lon_key", "lat_key"]]
        .sort_values(KEY_COLUMNS, kind="mergesort")
        .reset_index(drop=True)
    )
    return geocodes
