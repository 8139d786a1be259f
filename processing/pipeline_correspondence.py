"""
Postcode to state electoral district correspondence pipeline.

Runs the three stages on the NSW address extract:
  Stage 1: Extract distinct (postcode, longitude, latitude) geocodes
  Stage 2: Assign each geocode to its enclosing district (parallel)
  Stage 3: Aggregate address counts by (district, postcode)

Then writes the counts table, the district/postal area GeoJSON, the
interactive map and a Markdown summary. Geocode assignments are cached as
parquet and reused unless --force is given.

Usage:
    uv run python processing/pipeline_correspondence.py
    uv run python processing/pipeline_correspondence.py --force
    uv run python processing/pipeline_correspondence.py --workers 4
"""

import sys
from dataclasses import replace

from electorate_postcodes.boundaries import (
    DISTRICT_COLUMN,
    POSTCODE_COLUMN,
    filter_postal_areas,
    load_districts,
    load_postal_areas,
    write_geojson,
)
from electorate_postcodes.cache import cache_key, load_assignments, save_assignments
from electorate_postcodes.config import CorrespondenceConfig
from electorate_postcodes.correspondence import compute_correspondence
from electorate_postcodes.errors import CorrespondenceError
from electorate_postcodes.geocodes import load_addresses
from electorate_postcodes.paths import (
    ADDRESSES_PATH,
    CACHE_DIR,
    DISTRICTS_PATH,
    OUTPUT_DIR,
    POSTAL_AREAS_PATH,
)
from electorate_postcodes.report import render_map, write_counts_csv, write_summary

PATHS = {
    "addresses": ADDRESSES_PATH,
    "districts": DISTRICTS_PATH,
    "postal_areas": POSTAL_AREAS_PATH,
}

OUTPUTS = {
    "counts": OUTPUT_DIR / "district_postcode_counts.csv",
    "districts": OUTPUT_DIR / "districts.geojson",
    "postal_areas": OUTPUT_DIR / "postal_areas.geojson",
    "map": OUTPUT_DIR / "district_postcode_map.html",
    "summary": OUTPUT_DIR / "district_postcode_summary.md",
}


def check_inputs() -> dict[str, bool]:
    """Check that all required input files exist."""
    print("=" * 60)
    print("CHECKING INPUTS")
    print("=" * 60)

    status = {}
    for name, path in PATHS.items():
        exists = path.exists()
        status[name] = exists
        icon = "✓" if exists else "✗"
        print(f"  {icon} {name}: {path}")

    print()
    return status


def parse_args(argv: list[str]) -> tuple[bool, int | None]:
    """Return (force, workers) from ``--force`` and ``--workers N``."""
    force = "--force" in argv
    workers = None
    if "--workers" in argv:
        idx = argv.index("--workers")
        try:
            workers = int(argv[idx + 1])
        except (IndexError, ValueError):
            print("--workers needs an integer argument")
            sys.exit(1)
    unknown = [
        a for i, a in enumerate(argv)
        if a not in ("--force", "--workers") and not (i > 0 and argv[i - 1] == "--workers")
    ]
    if unknown:
        print(f"Unknown arguments: {unknown}")
        sys.exit(1)
    return force, workers


def run(force: bool = False, workers: int | None = None) -> None:
    config = CorrespondenceConfig()
    if workers is not None:
        config = replace(config, workers=workers)

    print()
    print("=" * 60)
    print("DISTRICT / POSTCODE CORRESPONDENCE")
    print("=" * 60)
    print(f"State:   {config.state}")
    print(f"CRS:     {config.crs}")
    print(f"Workers: {config.workers}")
    print(f"Output:  {OUTPUT_DIR}")
    print()

    status = check_inputs()
    missing = [k for k, v in status.items() if not v]
    if missing:
        raise FileNotFoundError(f"Missing inputs: {missing}")

    addresses = load_addresses(ADDRESSES_PATH, config.state)
    districts = load_districts(DISTRICTS_PATH, config.district_name_column)

    key = cache_key([ADDRESSES_PATH, DISTRICTS_PATH], config)
    assignments = None if force else load_assignments(CACHE_DIR, key)

    result = compute_correspondence(addresses, districts, config, assignments=assignments)
    if assignments is None:
        save_assignments(result.assignments, CACHE_DIR, key)

    print()
    print("=" * 60)
    print("WRITING OUTPUTS")
    print("=" * 60)
    write_counts_csv(result.table, OUTPUTS["counts"])

    valid_districts = result.districts
    postal = load_postal_areas(POSTAL_AREAS_PATH, config.postcode_column)
    postal = filter_postal_areas(postal, valid_districts, config.simplify_tolerance)
    write_geojson(valid_districts, DISTRICT_COLUMN, OUTPUTS["districts"])
    write_geojson(postal, POSTCODE_COLUMN, OUTPUTS["postal_areas"])

    render_map(result.table, valid_districts, postal, OUTPUTS["map"])
    write_summary(result, OUTPUTS["summary"], config.to_dict())

    agg = result.aggregate
    print()
    print("=" * 60)
    print("SUMMARY")
    print("=" * 60)
    print(f"  Addresses:          {agg.n_addresses:,}")
    print(f"  Distinct geocodes:  {result.n_geocodes:,}")
    print(f"  In table:           {agg.n_assigned:,}")
    print(f"  Unassigned:         {agg.n_unassigned:,}")
    print(f"  Incomplete:         {agg.n_incomplete:,}")
    if result.excluded_districts:
        print(f"  Excluded districts: {', '.join(result.excluded_districts)}")
    print(f"  Rows:               {len(result.table):,}")


def main() -> None:
    """Run the correspondence pipeline."""
    force, workers = parse_args(sys.argv[1:])
    try:
        run(force=force, workers=workers)
    except (CorrespondenceError, FileNotFoundError) as e:
        print(f"\nERROR: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
