"""Centralized path configuration for the electorate-postcodes project."""

import os
from pathlib import Path

# Project root (source code repository)
PROJECT_DIR = Path(__file__).resolve().parent.parent.parent

# External storage for the large address extract, boundaries and caches
STORAGE_DIR = Path(
    os.environ.get("ELECTORATE_POSTCODES_STORAGE", PROJECT_DIR / "temp")
)

# Raw inputs as downloaded
TEMP_DIR = STORAGE_DIR / "raw"

# Intermediate caches (safe to delete)
CACHE_DIR = STORAGE_DIR / "cache"

# Final outputs consumed by the map and report
OUTPUT_DIR = STORAGE_DIR / "output"

# G-NAF extract, pipe separated
ADDRESSES_PATH = TEMP_DIR / "gnaf" / "nsw_address_geocodes.psv"

# NSW state electoral districts (MapInfo TAB + attribute files)
DISTRICTS_PATH = TEMP_DIR / "electoral_districts" / "StateElectoralDistricts.TAB"

# ABS postal areas (POA 2021)
POSTAL_AREAS_PATH = TEMP_DIR / "poa_2021" / "POA_2021_AUST_GDA2020.shp"
