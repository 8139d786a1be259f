from dataclasses import replace

import pandas as pd
import pytest

from electorate_postcodes.errors import InputError
from electorate_postcodes.geocodes import (
    clean_addresses,
    coordinate_key,
    extract_geocodes,
    find_postcode_conflicts,
    load_addresses,
)


def test_extract_geocodes_deduplicates_shared_coordinates(make_addresses, config):
    addresses = make_addresses(
        [
            ("2000", 151.2, -33.8),
            ("2000", 151.2, -33.8),
            ("2000", 151.2, -33.8),
            ("2010", 151.21, -33.88),
        ]
    )

    geocodes = extract_geocodes(addresses, config)

    assert len(geocodes) == 2
    assert list(geocodes["postcode"]) == ["2000", "2010"]
    assert list(geocodes.columns[:3]) == ["postcode", "longitude", "latitude"]


def test_extract_geocodes_keeps_same_point_with_different_postcodes(make_addresses, config):
    addresses = make_addresses([("2000", 151.2, -33.8), ("2001", 151.2, -33.8)])

    geocodes = extract_geocodes(addresses, config)

    assert len(geocodes) == 2


def test_extract_geocodes_order_is_stable(make_addresses, config):
    rows = [("2010", 151.3, -33.9), ("2000", 151.2, -33.8), ("2000", 151.1, -33.7)]
    forward = extract_geocodes(make_addresses(rows), config)
    backward = extract_geocodes(make_addresses(rows[::-1]), config)

    pd.testing.assert_frame_equal(forward, backward)
    assert list(forward["longitude"]) == [151.1, 151.2, 151.3]


def test_coordinate_key_absorbs_float_noise():
    values = pd.Series([151.2093456, 151.2093456 + 1e-12, 151.2093457])

    keys = coordinate_key(values, precision=7)

    assert keys.iloc[0] == keys.iloc[1]
    assert keys.iloc[0] != keys.iloc[2]


def test_missing_values_dropped_and_counted(make_addresses, config):
    addresses = make_addresses([("2000", 151.2, -33.8), (None, 151.2, -33.8), ("2000", None, -33.8)])

    cleaned, stats = clean_addresses(addresses, config)

    assert len(cleaned) == 1
    assert stats["n_incomplete"] == 2


def test_missing_values_raise_under_raise_policy(make_addresses, config):
    addresses = make_addresses([("2000", 151.2, float("nan"))])

    with pytest.raises(InputError, match="1 addresses"):
        extract_geocodes(addresses, replace(config, missing_policy="raise"))


def test_postcode_conflicts_reported_and_dropped(make_addresses, config):
    addresses = make_addresses(
        [
            ("2000", 151.2, -33.8),
            ("2001", 151.2, -33.8),
            ("2010", 151.3, -33.9),
        ]
    )

    conflicts = find_postcode_conflicts(addresses, config.coordinate_precision)
    assert len(conflicts) == 1
    assert conflicts.loc[0, "n_postcodes"] == 2

    cleaned, stats = clean_addresses(addresses, replace(config, conflict_policy="drop"))
    assert list(cleaned["postcode"]) == ["2010"]
    assert stats["n_conflicting"] == 2
    assert stats["n_conflict_coordinates"] == 1


def test_load_addresses_filters_state_and_normalises_headers(tmp_path):
    path = tmp_path / "addresses.psv"
    path.write_text(
        "STATE|POSTCODE|LONGITUDE|LATITUDE\n"
        "NSW|2000|151.2|-33.8\n"
        "VIC|3000|144.9|-37.8\n"
        "NSW|0872|151.3|-33.9\n",
        encoding="utf-8",
    )

    addresses = load_addresses(path, state="NSW")

    assert len(addresses) == 2
    assert list(addresses["postcode"]) == ["2000", "0872"]
    assert addresses["longitude"].dtype == "float64"


def test_load_addresses_missing_column(tmp_path):
    path = tmp_path / "addresses.psv"
    path.write_text("state|postcode|longitude\nNSW|2000|151.2\n", encoding="utf-8")

    with pytest.raises(InputError, match="latitude"):
        load_addresses(path)


def test_load_addresses_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_addresses(tmp_path / "absent.psv")
