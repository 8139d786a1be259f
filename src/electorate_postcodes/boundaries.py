"""
Load, repair and export the district and postal area boundaries.

Districts are read from the electoral commission's MapInfo TAB files and
postal areas from the ABS POA shapefile. Both are only read; the exports
are WGS84 GeoJSON for the web map.
"""

import warnings
from pathlib import Path

import geopandas as gpd
from shapely import MultiPolygon, Polygon
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union
from shapely.validation import make_valid

from electorate_postcodes.errors import DistrictExcludedWarning, InputError

DISTRICT_COLUMN = "district"
POSTCODE_COLUMN = "postcode"

# Web maps expect WGS84
EXPORT_CRS = "EPSG:4326"


def _read_boundaries(path: Path, label: str) -> gpd.GeoDataFrame:
    if not path.exists():
        raise FileNotFoundError(f"{label} boundaries not found: {path}")
    try:
        gdf = gpd.read_file(path)
    except Exception as e:
        raise InputError(f"Could not read {label} boundaries {path}: {e}") from e
    if gdf.crs is None:
        raise InputError(f"{label} boundaries {path} have no coordinate reference system")
    return gdf


def _find_column(gdf: gpd.GeoDataFrame, wanted: str, source: str) -> str:
    """Match an attribute name case-insensitively."""
    for col in gdf.columns:
        if col.lower() == wanted.lower():
            return col
    raise InputError(
        f"Required column {wanted!r} not found in {source}\n"
        f"Available columns: {list(gdf.columns)}"
    )


def load_districts(path: Path, name_column: str = "district") -> gpd.GeoDataFrame:
    """
    Load district polygons with a standardised ``district`` name column.

    Parameters
    ----------
    path : Path
        Path to the district boundary file (any OGR format).
    name_column : str
        Attribute holding the district name, matched case-insensitively.

    Returns
    -------
    gpd.GeoDataFrame
        Columns ``district`` and ``geometry``, sorted by district name.
    """
    print(f"Loading districts from {path}")
    gdf = _read_boundaries(path, "District")
    col = _find_column(gdf, name_column, str(path))
    districts = prepare_districts(gdf.rename(columns={col: DISTRICT_COLUMN}))
    print(f"  Loaded {len(districts):,} districts ({districts.crs})")
    return districts


def prepare_districts(gdf: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """
    Keep the name and geometry, and sort by name.

    The sorted order is the order used to break ties between districts.
    """
    if DISTRICT_COLUMN not in gdf.columns:
        raise InputError(f"District table needs a {DISTRICT_COLUMN!r} column")
    names = gdf[DISTRICT_COLUMN]
    if names.isna().any():
        raise InputError(f"{int(names.isna().sum())} districts have no name")
    duplicated = sorted(set(names[names.duplicated()]))
    if duplicated:
        raise InputError(f"Duplicate district names: {duplicated}")

    districts = gdf[[DISTRICT_COLUMN, "geometry"]].copy()
    districts[DISTRICT_COLUMN] = districts[DISTRICT_COLUMN].astype(str)
    return districts.sort_values(DISTRICT_COLUMN, kind="mergesort").reset_index(drop=True)


def _polygonal_part(geom: BaseGeometry) -> Polygon | MultiPolygon | None:
    """Drop points and lines that ``make_valid`` can leave behind."""
    if geom.geom_type in ("Polygon", "MultiPolygon"):
        return geom
    if geom.geom_type == "GeometryCollection":
        parts = [g for g in geom.geoms if g.geom_type in ("Polygon", "MultiPolygon")]
        if parts:
            return unary_union(parts)
    return None


def repair_geometry(geom: BaseGeometry | None) -> Polygon | MultiPolygon | None:
    """
    Return a valid polygonal version of ``geom``, or None if impossible.
    """
    if geom is None or geom.is_empty:
        return None
    if not geom.is_valid:
        geom = make_valid(geom)
    repaired = _polygonal_part(geom)
    if repaired is None or repaired.is_empty or not repaired.is_valid:
        return None
    return repaired


def validate_geometries(districts: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """
    Repair invalid district geometries and drop those that cannot be fixed.

    Each dropped district is reported with a ``DistrictExcludedWarning``.

    Parameters
    ----------
    districts : gpd.GeoDataFrame
        Districts with ``district`` and ``geometry`` columns.

    Returns
    -------
    gpd.GeoDataFrame
        Districts whose geometries are all valid polygons or multipolygons.
    """
    districts = districts.copy()
    polygonal = districts.geometry.geom_type.isin(["Polygon", "MultiPolygon"])
    invalid = ~districts.geometry.is_valid | districts.geometry.is_empty | ~polygonal
    invalid_count = int(invalid.sum())
    if invalid_count == 0:
        return districts

    print(f"  Fixing {invalid_count} invalid geometries")
    repaired = districts.geometry.apply(repair_geometry)
    failed = repaired.isna()
    for name in districts.loc[failed, DISTRICT_COLUMN]:
        warnings.warn(
            f"District {name!r} has an irreparable geometry and is excluded",
            DistrictExcludedWarning,
            stacklevel=2,
        )
    districts["geometry"] = repaired
    districts = districts[~failed].reset_index(drop=True)
    if failed.any():
        print(f"  Excluded {int(failed.sum())} districts with irreparable geometry")
    return districts


def load_postal_areas(path: Path, postcode_column: str = "POA_CODE21") -> gpd.GeoDataFrame:
    """Load postal areas with a standardised ``postcode`` column."""
    print(f"Loading postal areas from {path}")
    gdf = _read_boundaries(path, "Postal area")
    col = _find_column(gdf, postcode_column, str(path))
    postal = gdf.rename(columns={col: POSTCODE_COLUMN})[[POSTCODE_COLUMN, "geometry"]]
    postal = postal[postal.geometry.notna() & ~postal.geometry.is_empty].copy()
    postal[POSTCODE_COLUMN] = postal[POSTCODE_COLUMN].astype(str).str.strip()
    print(f"  Loaded {len(postal):,} postal areas")
    return postal.reset_index(drop=True)


def filter_postal_areas(
    postal_areas: gpd.GeoDataFrame,
    districts: gpd.GeoDataFrame,
    tolerance: float,
) -> gpd.GeoDataFrame:
    """
    Keep postal areas intersecting the districts, then simplify them.

    Parameters
    ----------
    postal_areas : gpd.GeoDataFrame
        Postal areas with ``postcode`` and ``geometry``.
    districts : gpd.GeoDataFrame
        The studied districts; only their union is used.
    tolerance : float
        Simplification tolerance in CRS units (degrees for GDA2020).

    Returns
    -------
    gpd.GeoDataFrame
        Simplified postal areas in the districts' CRS.
    """
    postal = postal_areas.to_crs(districts.crs)
    region = districts.union_all()
    candidates = postal.iloc[postal.sindex.query(region, predicate="intersects")]
    n_before = len(postal)
    postal = candidates.sort_values(POSTCODE_COLUMN, kind="mergesort").copy()
    print(f"  Postal areas intersecting districts: {n_before:,} -> {len(postal):,}")

    postal["geometry"] = postal.geometry.simplify(tolerance=tolerance, preserve_topology=True)
    print(f"  Simplified (tolerance={tolerance})")
    return postal.reset_index(drop=True)


def to_geojson(gdf: gpd.GeoDataFrame, key_column: str) -> str:
    """
    Serialise boundaries as a WGS84 FeatureCollection keyed by ``key_column``.

    The key becomes each feature's ``id`` and is also kept as a property.
    """
    export = gdf[[key_column, "geometry"]].to_crs(EXPORT_CRS)
    export.index = export[key_column].to_numpy()
    return export.to_json(drop_id=False)


def write_geojson(gdf: gpd.GeoDataFrame, key_column: str, path: Path) -> Path:
    """Write ``to_geojson`` output to ``path``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(to_geojson(gdf, key_column), encoding="utf-8")
    print(f"  Saved to {path}")
    return path
