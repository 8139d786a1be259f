"""
Write the correspondence outputs: counts CSV, interactive map and summary.

The map has one selectable layer per district. Postal areas in the
selected district are shaded by the share of the district's addresses they
hold, with per-postcode tooltips.
"""

from datetime import datetime
from pathlib import Path

import branca.colormap as cm
import folium
import geopandas as gpd
import pandas as pd

from electorate_postcodes.aggregate import OUTPUT_COLUMNS
from electorate_postcodes.boundaries import DISTRICT_COLUMN, EXPORT_CRS, POSTCODE_COLUMN
from electorate_postcodes.correspondence import CorrespondenceResult

# Map styling
MAP_TILES = "cartodbpositron"
SHADE_COLOURS = ["#ffffcc", "#fd8d3c", "#800026"]
OUTLINE_STYLE = {"fillColor": "transparent", "color": "#08306b", "weight": 2, "fillOpacity": 0.0}

# Rows listed per district in the Markdown summary
TOP_POSTCODES = 3


def write_counts_csv(table: pd.DataFrame, path: Path) -> Path:
    """Write the aggregate table; percentages are not rounded."""
    path.parent.mkdir(parents=True, exist_ok=True)
    table[OUTPUT_COLUMNS].to_csv(path, index=False)
    print(f"  Saved to {path}")
    return path


def read_counts_csv(path: Path) -> pd.DataFrame:
    """Read a table written by ``write_counts_csv`` with postcodes as strings."""
    return pd.read_csv(path, dtype={"district": str, "postcode": str})


def build_map(
    counts: pd.DataFrame,
    districts: gpd.GeoDataFrame,
    postal_areas: gpd.GeoDataFrame,
) -> folium.Map:
    """
    Build the district-selectable choropleth.

    Parameters
    ----------
    counts : pd.DataFrame
        Aggregate table (``district, postcode, n, per_of_district,
        per_of_postcode``).
    districts : gpd.GeoDataFrame
        District boundaries with a ``district`` column.
    postal_areas : gpd.GeoDataFrame
        Postal areas with a ``postcode`` column.

    Returns
    -------
    folium.Map
    """
    districts = districts.to_crs(EXPORT_CRS)
    postal_areas = postal_areas.to_crs(EXPORT_CRS)

    minx, miny, maxx, maxy = districts.total_bounds
    m = folium.Map(location=[(miny + maxy) / 2, (minx + maxx) / 2], zoom_start=7, tiles=None)
    folium.TileLayer(MAP_TILES, control=False).add_to(m)
    m.fit_bounds([[miny, minx], [maxy, maxx]])

    colormap = cm.LinearColormap(
        SHADE_COLOURS, vmin=0, vmax=100, caption="% of district addresses in postcode"
    )

    for i, (name, rows) in enumerate(counts.groupby(DISTRICT_COLUMN, sort=True)):
        layer = folium.FeatureGroup(name=name, overlay=False, show=(i == 0))

        shaded = postal_areas.merge(
            rows[[POSTCODE_COLUMN, "n", "per_of_district", "per_of_postcode"]],
            on=POSTCODE_COLUMN,
            how="inner",
        )
        if len(shaded):
            shaded["per_of_district"] = shaded["per_of_district"].round(1)
            shaded["per_of_postcode"] = shaded["per_of_postcode"].round(1)
            folium.GeoJson(
                shaded,
                style_function=lambda f, cmap=colormap: {
                    "fillColor": cmap(f["properties"]["per_of_district"]),
                    "color": "#636363",
                    "weight": 0.5,
                    "fillOpacity": 0.6,
                },
                highlight_function=lambda f: {"weight": 2, "color": "blue"},
                tooltip=folium.GeoJsonTooltip(
                    fields=[POSTCODE_COLUMN, "n", "per_of_district", "per_of_postcode"],
                    aliases=["Postcode", "Addresses", "% of district", "% of postcode"],
                ),
            ).add_to(layer)

        outline = districts[districts[DISTRICT_COLUMN] == name]
        if len(outline):
            folium.GeoJson(
                outline,
                style_function=lambda f: OUTLINE_STYLE,
                tooltip=folium.GeoJsonTooltip(fields=[DISTRICT_COLUMN], aliases=["District"]),
            ).add_to(layer)

        layer.add_to(m)

    colormap.add_to(m)
    folium.LayerControl(collapsed=True).add_to(m)
    return m


def render_map(
    counts: pd.DataFrame,
    districts: gpd.GeoDataFrame,
    postal_areas: gpd.GeoDataFrame,
    path: Path,
) -> Path:
    """Build the map and save it as a standalone HTML file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    build_map(counts, districts, postal_areas).save(str(path))
    print(f"  Saved to {path}")
    return path


def generate_summary(result: CorrespondenceResult, config: dict | None = None) -> str:
    """Generate a Markdown summary of a correspondence run."""
    agg = result.aggregate
    table = agg.table
    generated_date = datetime.now().strftime("%Y-%m-%d")

    lines = [
        "# District / Postcode Correspondence",
        "",
        f"**Generated:** {generated_date}",
        "",
        "## Inputs",
        "",
        "| Measure | Count |",
        "| --- | ---: |",
        f"| Addresses | {agg.n_addresses:,} |",
        f"| Distinct geocodes | {result.n_geocodes:,} |",
        f"| Addresses without postcode/coordinates | {agg.n_incomplete:,} |",
        f"| Coordinates with several postcodes | {agg.n_conflict_coordinates:,} |",
        f"| Addresses dropped at those coordinates | {agg.n_conflicting:,} |",
        f"| Addresses outside every district | {agg.n_unassigned:,} |",
        f"| Addresses in table | {agg.n_assigned:,} |",
        "",
    ]

    if result.excluded_districts:
        lines += [
            "**Excluded districts (irreparable geometry):** "
            + ", ".join(result.excluded_districts),
            "",
        ]

    if "match_type" in result.assignments.columns:
        kinds = result.assignments["match_type"].value_counts()
        if kinds.get("boundary", 0) or kinds.get("overlap", 0):
            lines += [
                f"Geocodes on a district boundary: {kinds.get('boundary', 0):,}; "
                f"inside overlapping districts: {kinds.get('overlap', 0):,}.",
                "",
            ]

    if len(agg.unassigned_by_postcode):
        worst = agg.unassigned_by_postcode.sort_values(ascending=False).head(10)
        lines += ["## Unassigned addresses by postcode", ""]
        lines += [f"- {pc}: {n:,}" for pc, n in worst.items()]
        lines.append("")

    lines += [
        "## Largest postcodes per district",
        "",
        "| District | Postcode | Addresses | % of district | % of postcode |",
        "| --- | --- | ---: | ---: | ---: |",
    ]
    for _, rows in table.groupby(DISTRICT_COLUMN, sort=True):
        for _, row in rows.head(TOP_POSTCODES).iterrows():
            lines.append(
                f"| {row['district']} | {row['postcode']} | {row['n']:,} | "
                f"{row['per_of_district']:.1f} | {row['per_of_postcode']:.1f} |"
            )
    lines.append("")

    if config:
        lines += ["## Settings", ""]
        lines += [f"- `{key}`: {value}" for key, value in config.items()]
        lines.append("")

    return "\n".join(lines)


def write_summary(result: CorrespondenceResult, path: Path, config: dict | None = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(generate_summary(result, config), encoding="utf-8")
    print(f"  Saved to {path}")
    return path
