"""
Cross-tabulate address counts by (district, postcode).

Each row carries the address count ``n`` and two percentages:
    - per_of_district: share of the district's addresses in this postcode
    - per_of_postcode: share of the postcode's addresses in this district
"""

from dataclasses import dataclass, field

import pandas as pd

from electorate_postcodes.config import CorrespondenceConfig
from electorate_postcodes.geocodes import KEY_COLUMNS, clean_addresses

DISTRICT_COLUMN = "district"
OUTPUT_COLUMNS = ["district", "postcode", "n", "per_of_district", "per_of_postcode"]


@dataclass
class AggregateResult:
    """Aggregate table plus the counts needed for data-quality auditing."""

    table: pd.DataFrame
    n_addresses: int
    n_assigned: int
    n_unassigned: int
    n_incomplete: int = 0
    n_conflicting: int = 0
    n_conflict_coordinates: int = 0
    unassigned_by_postcode: pd.Series = field(default_factory=lambda: pd.Series(dtype="int64"))

    @property
    def n_excluded(self) -> int:
        """Addresses removed before the join (incomplete or conflicting)."""
        return self.n_incomplete + self.n_conflicting


def crosstab(assigned_addresses: pd.DataFrame) -> pd.DataFrame:
    """
    Count addresses per (district, postcode) and compute both percentages.

    Parameters
    ----------
    assigned_addresses : pd.DataFrame
        One row per address with non-null ``district`` and ``postcode``.

    Returns
    -------
    pd.DataFrame
        Columns ``district, postcode, n, per_of_district, per_of_postcode``,
        sorted by district then ``per_of_district`` descending. Only pairs
        with at least one address appear.
    """
    counts = (
        assigned_addresses.groupby([DISTRICT_COLUMN, "postcode"], observed=True)
        .size()
        .rename("n")
        .reset_index()
    )
    counts["n"] = counts["n"].astype("int64")
    district_total = counts.groupby(DISTRICT_COLUMN)["n"].transform("sum")
    postcode_total = counts.groupby("postcode")["n"].transform("sum")
    counts["per_of_district"] = counts["n"] / district_total * 100
    counts["per_of_postcode"] = counts["n"] / postcode_total * 100

    counts = counts.sort_values(
        [DISTRICT_COLUMN, "per_of_district", "postcode"],
        ascending=[True, False, True],
        kind="mergesort",
    )
    return counts[OUTPUT_COLUMNS].reset_index(drop=True)


def aggregate_counts(
    addresses: pd.DataFrame,
    assignments: pd.DataFrame,
    config: CorrespondenceConfig,
    verbose: bool = True,
) -> AggregateResult:
    """
    Join assignments back to every address and build the aggregate table.

    Parameters
    ----------
    addresses : pd.DataFrame
        Full address table (one row per address).
    assignments : pd.DataFrame
        Output of ``assign_districts``: geocodes with ``district``.
    config : CorrespondenceConfig
        Supplies key precision and the missing/conflict/unassigned policies.
    verbose : bool
        Print join diagnostics.

    Returns
    -------
    AggregateResult
        The table and the address counts behind it. ``n_assigned`` always
        equals the sum of ``n`` in the table.
    """
    cleaned, stats = clean_addresses(addresses, config, verbose=False)

    keys = assignments[KEY_COLUMNS + [DISTRICT_COLUMN]]
    if keys.duplicated(subset=KEY_COLUMNS).any():
        raise ValueError("Assignments contain duplicate geocode keys")

    joined = cleaned.merge(keys, on=KEY_COLUMNS, how="left", validate="many_to_one")
    unassigned = joined[DISTRICT_COLUMN].isna()
    n_unassigned = int(unassigned.sum())
    unassigned_by_postcode = (
        joined.loc[unassigned, "postcode"].value_counts().sort_index().astype("int64")
    )

    if config.unassigned_policy == "sentinel":
        joined[DISTRICT_COLUMN] = joined[DISTRICT_COLUMN].fillna(config.unassigned_label)
        in_table = joined
    else:
        in_table = joined[~unassigned]

    table = crosstab(in_table)
    result = AggregateResult(
        table=table,
        n_addresses=len(addresses),
        n_assigned=int(table["n"].sum()),
        n_unassigned=n_unassigned,
        n_incomplete=stats["n_incomplete"],
        n_conflicting=stats["n_conflicting"],
        n_conflict_coordinates=stats["n_conflict_coordinates"],
        unassigned_by_postcode=unassigned_by_postcode,
    )

    if verbose:
        if result.n_excluded:
            print(f"    {result.n_excluded:,} addresses excluded before the join")
        print(f"    {len(cleaned):,} addresses joined to {len(keys):,} geocodes")
        if n_unassigned:
            action = (
                f"kept as {config.unassigned_label!r}"
                if config.unassigned_policy == "sentinel"
                else "dropped"
            )
            print(f"    {n_unassigned:,} addresses outside every district ({action})")
        print(
            f"    {len(table):,} (district, postcode) rows, "
            f"{table[DISTRICT_COLUMN].nunique():,} districts, "
            f"{table['postcode'].nunique():,} postcodes"
        )

    return result
