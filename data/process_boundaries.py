"""
Process district and postal area boundaries into web-ready GeoJSON.

Reads the raw electoral district and ABS postal area downloads and produces:
- District boundaries keyed by district name
- Postal areas intersecting the districts, simplified

Input:
    raw/electoral_districts/StateElectoralDistricts.TAB
    raw/poa_2021/POA_2021_AUST_GDA2020.shp
Output:
    output/districts.geojson
    output/postal_areas.geojson

Usage:
    uv run python data/process_boundaries.py
"""

from electorate_postcodes.boundaries import (
    DISTRICT_COLUMN,
    POSTCODE_COLUMN,
    filter_postal_areas,
    load_districts,
    load_postal_areas,
    validate_geometries,
    write_geojson,
)
from electorate_postcodes.config import CorrespondenceConfig
from electorate_postcodes.paths import DISTRICTS_PATH, OUTPUT_DIR, POSTAL_AREAS_PATH

DISTRICTS_OUTPUT = OUTPUT_DIR / "districts.geojson"
POSTAL_AREAS_OUTPUT = OUTPUT_DIR / "postal_areas.geojson"


def main() -> None:
    """Main processing pipeline."""
    config = CorrespondenceConfig()

    print("=" * 60)
    print("District and Postal Area Boundary Processing")
    print("=" * 60)

    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)

    print("\n[1/4] Loading districts...")
    districts = load_districts(DISTRICTS_PATH, config.district_name_column)

    print("\n[2/4] Validating geometries...")
    districts = validate_geometries(districts)

    print("\n[3/4] Loading and filtering postal areas...")
    postal = load_postal_areas(POSTAL_AREAS_PATH, config.postcode_column)
    postal = filter_postal_areas(postal, districts, config.simplify_tolerance)

    print("\n[4/4] Saving GeoJSON...")
    write_geojson(districts, DISTRICT_COLUMN, DISTRICTS_OUTPUT)
    write_geojson(postal, POSTCODE_COLUMN, POSTAL_AREAS_OUTPUT)

    print("\n" + "=" * 60)
    print("Processing complete!")
    print("=" * 60)
    print(f"\nDistricts:    {len(districts):,}")
    print(f"Postal areas: {len(postal):,}")


if __name__ == "__main__":
    main()
