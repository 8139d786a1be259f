from dataclasses import replace

import pandas as pd
import pytest

from electorate_postcodes.cache import cache_key, load_assignments, save_assignments
from electorate_postcodes.correspondence import compute_correspondence
from electorate_postcodes.errors import CRSMismatchError, DistrictExcludedWarning
from electorate_postcodes.geocodes import load_addresses
from electorate_postcodes.report import (
    generate_summary,
    read_counts_csv,
    render_map,
    write_counts_csv,
)

ADDRESS_LINES = [
    "state|postcode|longitude|latitude",
    "NSW|2000|0.5|0.5",
    "NSW|2000|0.5|0.5",
    "NSW|2000|1.5|0.5",
    "NSW|2010|0.2|0.2",
    "NSW|2010|1.0|0.3",
    "NSW|2999|5.0|5.0",
    "VIC|3000|0.5|0.5",
]


@pytest.fixture
def address_file(tmp_path):
    path = tmp_path / "addresses.psv"
    path.write_text("\n".join(ADDRESS_LINES) + "\n", encoding="utf-8")
    return path


def test_end_to_end_from_file(address_file, two_squares, config, tmp_path):
    addresses = load_addresses(address_file, config.state)

    result = compute_correspondence(addresses, two_squares, config)

    table = result.table
    assert table[["district", "postcode", "n"]].values.tolist() == [
        ["A", "2000", 2],
        ["A", "2010", 2],
        ["B", "2000", 1],
    ]
    assert result.aggregate.n_addresses == 6
    assert result.aggregate.n_unassigned == 1
    assert result.n_geocodes == 5
    assert result.table["n"].sum() == result.aggregate.n_assigned == 5

    out = write_counts_csv(table, tmp_path / "out" / "counts.csv")
    reread = read_counts_csv(out)
    assert list(reread.columns) == ["district", "postcode", "n", "per_of_district", "per_of_postcode"]
    pd.testing.assert_frame_equal(reread, table, check_dtype=False)


def test_pipeline_is_idempotent(address_file, two_squares, config, tmp_path):
    addresses = load_addresses(address_file, config.state)

    first = compute_correspondence(addresses, two_squares, config, verbose=False)
    second = compute_correspondence(addresses, two_squares, config, verbose=False)

    a = write_counts_csv(first.table, tmp_path / "a.csv")
    b = write_counts_csv(second.table, tmp_path / "b.csv")
    assert a.read_bytes() == b.read_bytes()


def test_reference_frame_mismatch_aborts(address_file, two_squares, config):
    addresses = load_addresses(address_file, config.state)

    with pytest.raises(CRSMismatchError):
        compute_correspondence(addresses, two_squares.to_crs("EPSG:3857"), config, verbose=False)


def test_irreparable_district_excluded_run_continues(scenario_addresses, two_squares, config):
    from shapely.geometry import Polygon

    broken = two_squares.copy()
    broken.loc[1, "geometry"] = Polygon()

    with pytest.warns(DistrictExcludedWarning):
        result = compute_correspondence(scenario_addresses, broken, config, verbose=False)

    assert result.excluded_districts == ["B"]
    assert set(result.table["district"]) == {"A"}
    assert result.aggregate.n_unassigned == 1


def test_cached_assignments_reused(address_file, two_squares, config, tmp_path):
    addresses = load_addresses(address_file, config.state)
    fresh = compute_correspondence(addresses, two_squares, config, verbose=False)

    key = cache_key([address_file], config)
    save_assignments(fresh.assignments, tmp_path / "cache", key)
    cached = load_assignments(tmp_path / "cache", key)
    reused = compute_correspondence(addresses, two_squares, config, assignments=cached, verbose=False)

    pd.testing.assert_frame_equal(fresh.table, reused.table, check_dtype=False)


def test_cache_key_depends_on_assignment_settings(address_file, config):
    base = cache_key([address_file], config)

    assert cache_key([address_file], replace(config, workers=4)) == base
    assert cache_key([address_file], replace(config, overlap_policy="smallest")) != base


def test_corrupt_cache_discarded(tmp_path):
    cache_dir = tmp_path / "cache"
    cache_dir.mkdir()
    (cache_dir / "assignments_deadbeef.parquet").write_bytes(b"not parquet")

    assert load_assignments(cache_dir, "deadbeef") is None
    assert not (cache_dir / "assignments_deadbeef.parquet").exists()


def test_map_and_summary_rendered(scenario_addresses, two_squares, config, tmp_path):
    result = compute_correspondence(scenario_addresses, two_squares, config, verbose=False)
    postal = two_squares.rename(columns={"district": "postcode"}).assign(postcode=["P1", "P2"])

    path = render_map(result.table, result.districts, postal, tmp_path / "map.html")
    html = path.read_text(encoding="utf-8")
    assert "% of district" in html
    assert "leaflet" in html.lower()

    summary = generate_summary(result, config.to_dict())
    assert "| Addresses | 3 |" in summary
    assert "| A | P1 | 1 | 50.0 | 50.0 |" in summary
    assert "`overlap_policy`: first" in summary
