"""
Run the three correspondence stages on in-memory tables.

    1. extract distinct geocodes from the address table
    2. assign each geocode to a district
    3. aggregate address counts by (district, postcode)

File I/O, caching and rendering live in the processing scripts and
``electorate_postcodes.report``.
"""

from dataclasses import dataclass

import geopandas as gpd
import pandas as pd

from electorate_postcodes.aggregate import AggregateResult, aggregate_counts
from electorate_postcodes.assign import assign_districts
from electorate_postcodes.boundaries import DISTRICT_COLUMN, validate_geometries
from electorate_postcodes.config import CorrespondenceConfig
from electorate_postcodes.geocodes import extract_geocodes


@dataclass
class CorrespondenceResult:
    assignments: pd.DataFrame
    aggregate: AggregateResult
    districts: gpd.GeoDataFrame
    excluded_districts: list[str]

    @property
    def table(self) -> pd.DataFrame:
        return self.aggregate.table

    @property
    def n_geocodes(self) -> int:
        return len(self.assignments)


def compute_correspondence(
    addresses: pd.DataFrame,
    districts: gpd.GeoDataFrame,
    config: CorrespondenceConfig | None = None,
    assignments: pd.DataFrame | None = None,
    verbose: bool = True,
) -> CorrespondenceResult:
    """
    Compute the district/postcode correspondence for an address table.

    Parameters
    ----------
    addresses : pd.DataFrame
        Addresses with ``postcode``, ``longitude`` and ``latitude``.
    districts : gpd.GeoDataFrame
        Districts with ``district`` and ``geometry`` in ``config.crs``.
    config : CorrespondenceConfig, optional
        Run settings; defaults to ``CorrespondenceConfig()``.
    assignments : pd.DataFrame, optional
        Previously computed geocode assignments (e.g. from cache). When
        given, stages 1 and 2 are skipped.
    verbose : bool
        Print progress.

    Returns
    -------
    CorrespondenceResult
    """
    config = config or CorrespondenceConfig()

    valid = validate_geometries(districts)
    excluded = sorted(set(districts[DISTRICT_COLUMN]) - set(valid[DISTRICT_COLUMN]))

    if assignments is None:
        if verbose:
            print("\n[1/3] Extracting geocodes...")
        geocodes = extract_geocodes(addresses, config, verbose=verbose)
        if verbose:
            print(f"  {len(addresses):,} addresses -> {len(geocodes):,} distinct geocodes")
            print("\n[2/3] Assigning geocodes to districts...")
        assignments = assign_districts(geocodes, valid, config, verbose=verbose)
    elif verbose:
        print(f"\n[1-2/3] Using {len(assignments):,} precomputed geocode assignments")

    if verbose:
        print("\n[3/3] Aggregating by district and postcode...")
    aggregate = aggregate_counts(addresses, assignments, config, verbose=verbose)

    return CorrespondenceResult(
        assignments=assignments,
        aggregate=aggregate,
        districts=valid,
        excluded_districts=excluded,
    )
