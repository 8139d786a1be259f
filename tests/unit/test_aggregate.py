from dataclasses import replace

import pandas as pd
import pytest

from electorate_postcodes.aggregate import OUTPUT_COLUMNS, aggregate_counts, crosstab
from electorate_postcodes.assign import assign_districts
from electorate_postcodes.geocodes import extract_geocodes


def _assign(addresses, districts, config):
    geocodes = extract_geocodes(addresses, config)
    return assign_districts(geocodes, districts, config, verbose=False)


def test_two_square_scenario(two_squares, scenario_addresses, config):
    assignments = _assign(scenario_addresses, two_squares, config)

    result = aggregate_counts(scenario_addresses, assignments, config, verbose=False)

    rows = [tuple(r) for r in result.table.itertuples(index=False)]
    assert rows == [
        ("A", "P1", 1, 50.0, 50.0),
        ("A", "P2", 1, 50.0, 100.0),
        ("B", "P1", 1, 100.0, 50.0),
    ]
    assert list(result.table.columns) == OUTPUT_COLUMNS


def test_unassigned_address_is_dropped_and_counted(two_squares, scenario_addresses, config, make_addresses):
    addresses = pd.concat(
        [scenario_addresses, make_addresses([("P3", 5.0, 5.0)])], ignore_index=True
    )
    assignments = _assign(addresses, two_squares, config)

    result = aggregate_counts(addresses, assignments, config, verbose=False)

    assert result.n_unassigned == 1
    assert "P3" not in set(result.table["postcode"])
    assert result.unassigned_by_postcode.to_dict() == {"P3": 1}
    assert result.n_assigned == 3


def test_unassigned_sentinel_policy(two_squares, scenario_addresses, config, make_addresses):
    addresses = pd.concat(
        [scenario_addresses, make_addresses([("P1", 5.0, 5.0)])], ignore_index=True
    )
    sentinel = replace(config, unassigned_policy="sentinel")
    assignments = _assign(addresses, two_squares, sentinel)

    result = aggregate_counts(addresses, assignments, sentinel, verbose=False)

    unassigned = result.table[result.table["district"] == "Unassigned"]
    assert unassigned[["postcode", "n"]].values.tolist() == [["P1", 1]]
    assert result.n_unassigned == 1
    assert result.n_assigned == 4


def test_multiple_addresses_per_geocode_are_all_counted(two_squares, config, make_addresses):
    addresses = make_addresses([("P1", 0.5, 0.5)] * 4 + [("P2", 0.25, 0.75)])
    assignments = _assign(addresses, two_squares, config)

    result = aggregate_counts(addresses, assignments, config, verbose=False)

    assert len(assignments) == 2
    assert result.table[["postcode", "n"]].values.tolist() == [["P1", 4], ["P2", 1]]
    assert result.table["per_of_district"].tolist() == pytest.approx([80.0, 20.0])


def test_join_tolerates_coordinate_noise(two_squares, config, make_addresses):
    addresses = make_addresses([("P1", 0.5, 0.5), ("P1", 0.5 + 1e-12, 0.5)])
    assignments = _assign(addresses, two_squares, config)

    result = aggregate_counts(addresses, assignments, config, verbose=False)

    assert len(assignments) == 1
    assert result.table["n"].tolist() == [2]


def test_percentages_sum_to_100(make_addresses):
    assigned = make_addresses(
        [("P1", 0, 0)] * 3 + [("P2", 0, 0)] * 5 + [("P1", 0, 0)] * 7 + [("P3", 0, 0)] * 11
    )
    assigned["district"] = ["A"] * 8 + ["B"] * 18

    table = crosstab(assigned)

    by_district = table.groupby("district")["per_of_district"].sum()
    by_postcode = table.groupby("postcode")["per_of_postcode"].sum()
    assert by_district.tolist() == pytest.approx([100.0] * 2, abs=1e-6)
    assert by_postcode.tolist() == pytest.approx([100.0] * 3, abs=1e-6)


def test_crosstab_sort_order(make_addresses):
    assigned = make_addresses([("P1", 0, 0)] + [("P2", 0, 0)] * 3 + [("P3", 0, 0)] * 2)
    assigned["district"] = ["Z", "A", "A", "A", "A", "A"]

    table = crosstab(assigned)

    assert table[["district", "postcode"]].values.tolist() == [["A", "P2"], ["A", "P3"], ["Z", "P1"]]


def test_count_conservation(two_squares, config, make_addresses):
    addresses = make_addresses(
        [("P1", 0.1 * i, 0.5) for i in range(1, 20)] + [("P9", 7.0, 7.0), (None, 0.5, 0.5)]
    )
    assignments = _assign(addresses, two_squares, config)

    result = aggregate_counts(addresses, assignments, config, verbose=False)

    assert result.table["n"].sum() == result.n_assigned
    assert (
        result.n_assigned + result.n_unassigned + result.n_excluded == result.n_addresses
    )
