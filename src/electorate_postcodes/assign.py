"""
Assign each distinct geocode to the district polygon that contains it.

Points are matched with ``gpd.sjoin`` (STR-tree prefilter, then exact
containment). Partitions of the geocode table are independent, so they are
spread across a process pool; every district table is shipped to each
worker once through the pool initializer.

Match types recorded per geocode:
    - interior: inside exactly one district
    - overlap: inside several districts, resolved by the overlap policy
    - boundary: on a district edge but inside none; first touching
      district in table order wins
    - None: outside every district (unassigned)
"""

from concurrent.futures import ProcessPoolExecutor, as_completed

import geopandas as gpd
import numpy as np
import pandas as pd
import shapely
from pyproj import CRS
from pyproj.exceptions import CRSError
from tqdm import tqdm

from electorate_postcodes.config import CorrespondenceConfig
from electorate_postcodes.errors import CRSMismatchError, OverlapError, PartitionError

DISTRICT_COLUMN = "district"
MATCH_COLUMN = "match_type"

# Worker globals, set once per process by _init_worker
_WORKER_DISTRICTS: gpd.GeoDataFrame | None = None
_WORKER_OVERLAP_POLICY: str = "first"


def _same_frame(a: CRS, b: CRS) -> bool:
    """Compare horizontal frames, so GDA2020 3D (7843) matches 2D (7844)."""
    if a.equals(b, ignore_axis_order=True):
        return True
    try:
        return a.to_2d().equals(b.to_2d(), ignore_axis_order=True)
    except CRSError:
        return False


def check_reference_frames(
    geocodes: pd.DataFrame, districts: gpd.GeoDataFrame, crs: str
) -> None:
    """
    Fail loudly if geocodes and districts are not in the same frame.

    Parameters
    ----------
    geocodes : pd.DataFrame
        Geocodes with ``longitude`` and ``latitude``.
    districts : gpd.GeoDataFrame
        District polygons; must carry a CRS.
    crs : str
        Frame the geocode coordinates are declared in.

    Raises
    ------
    CRSMismatchError
        If the CRSs differ, coordinates are out of range for a geographic
        CRS, or the geocode extent does not touch the district extent.
    """
    if districts.crs is None:
        raise CRSMismatchError("District polygons have no coordinate reference system")
    declared = CRS.from_user_input(crs)
    if not _same_frame(declared, districts.crs):
        raise CRSMismatchError(
            f"Geocodes are in {declared.to_string()} but districts are in "
            f"{districts.crs.to_string()}; reproject before assignment"
        )
    if len(geocodes) == 0 or len(districts) == 0:
        return

    lon = geocodes["longitude"].to_numpy(dtype="float64")
    lat = geocodes["latitude"].to_numpy(dtype="float64")
    if declared.is_geographic and (np.abs(lon).max() > 180 or np.abs(lat).max() > 90):
        raise CRSMismatchError(
            f"Geocode coordinates exceed degree ranges for geographic CRS "
            f"{declared.to_string()} (projected coordinates?)"
        )

    gminx, gminy, gmaxx, gmaxy = lon.min(), lat.min(), lon.max(), lat.max()
    dminx, dminy, dmaxx, dmaxy = districts.total_bounds
    if gmaxx < dminx or dmaxx < gminx or gmaxy < dminy or dmaxy < gminy:
        raise CRSMismatchError(
            f"Geocode extent ({gminx:.4f}, {gminy:.4f}, {gmaxx:.4f}, {gmaxy:.4f}) "
            f"does not overlap district extent "
            f"({dminx:.4f}, {dminy:.4f}, {dmaxx:.4f}, {dmaxy:.4f})"
        )


def partition_geocodes(
    geocodes: pd.DataFrame, partition_by: str = "postcode", chunk_size: int = 50_000
) -> list[tuple[str, pd.DataFrame]]:
    """Split geocodes into (key, frame) partitions by postcode or fixed-size chunk."""
    if partition_by == "postcode":
        return [(str(key), part) for key, part in geocodes.groupby("postcode", sort=True)]
    return [
        (f"chunk-{start // chunk_size}", geocodes.iloc[start : start + chunk_size])
        for start in range(0, len(geocodes), chunk_size)
    ]


def _first_hit(hits: pd.Series, rank: np.ndarray | None = None) -> pd.Series:
    """
    Reduce (point -> district position) hits to one district per point.

    Lowest ``rank`` wins, then lowest district position.
    """
    if len(hits) == 0:
        return pd.Series(dtype="int64", index=pd.Index([], dtype="int64"))
    frame = pd.DataFrame({"_pt": hits.index.to_numpy(), "_d": hits.to_numpy()})
    frame["_rank"] = frame["_d"] if rank is None else rank[frame["_d"].to_numpy()]
    frame = frame.sort_values(["_pt", "_rank", "_d"], kind="mergesort")
    frame = frame.drop_duplicates("_pt", keep="first")
    return pd.Series(frame["_d"].to_numpy(), index=frame["_pt"].to_numpy())


def assign_partition(
    geocodes: pd.DataFrame,
    districts: gpd.GeoDataFrame,
    overlap_policy: str = "first",
) -> pd.DataFrame:
    """
    Assign one partition of geocodes to districts.

    Parameters
    ----------
    geocodes : pd.DataFrame
        Geocodes with ``longitude`` and ``latitude``.
    districts : gpd.GeoDataFrame
        Districts with ``district`` and valid polygonal geometries, in
        tie-break order.
    overlap_policy : str
        ``"first"``, ``"reject"`` or ``"smallest"``.

    Returns
    -------
    pd.DataFrame
        Copy of ``geocodes`` with ``district`` (None when unassigned) and
        ``match_type`` columns.
    """
    districts = districts[[DISTRICT_COLUMN, "geometry"]].reset_index(drop=True)
    result = geocodes.copy()
    points = gpd.GeoDataFrame(
        geometry=gpd.points_from_xy(result["longitude"], result["latitude"]),
        crs=districts.crs,
    )

    interior = gpd.sjoin(points, districts, how="inner", predicate="within")["index_right"]
    n_hits = interior.groupby(level=0).size()
    overlapping = n_hits.index[n_hits > 1]

    if len(overlapping) and overlap_policy == "reject":
        names = districts[DISTRICT_COLUMN].to_numpy()
        examples = []
        for pt in overlapping[:5]:
            row = result.iloc[pt]
            inside = sorted(names[interior.loc[[pt]].to_numpy()])
            examples.append(f"({row['longitude']}, {row['latitude']}) in {inside}")
        raise OverlapError(
            f"{len(overlapping)} geocodes fall inside more than one district: "
            + "; ".join(examples)
        )

    rank = None
    if overlap_policy == "smallest":
        rank = shapely.area(districts.geometry.to_numpy())
    chosen = _first_hit(interior, rank)

    # Point positions are 0..n-1, so plain arrays index them directly
    match = np.full(len(points), None, dtype=object)
    match[chosen.index.to_numpy(dtype=np.intp)] = "interior"
    match[overlapping.to_numpy(dtype=np.intp)] = "overlap"

    outside = points.index.difference(chosen.index)
    if len(outside):
        touching = gpd.sjoin(
            points.loc[outside], districts, how="inner", predicate="intersects"
        )["index_right"]
        if len(touching):
            edge = _first_hit(touching)
            chosen = pd.concat([chosen, edge])
            match[edge.index.to_numpy(dtype=np.intp)] = "boundary"

    district = np.full(len(points), None, dtype=object)
    names = districts[DISTRICT_COLUMN].to_numpy()
    district[chosen.index.to_numpy(dtype=np.intp)] = names[chosen.to_numpy(dtype=np.intp)]
    result[DISTRICT_COLUMN] = district
    result[MATCH_COLUMN] = match
    return result


def _init_worker(districts: gpd.GeoDataFrame, overlap_policy: str) -> None:
    global _WORKER_DISTRICTS, _WORKER_OVERLAP_POLICY

    _WORKER_DISTRICTS = districts
    _WORKER_OVERLAP_POLICY = overlap_policy


def _assign_with_globals(geocodes: pd.DataFrame) -> pd.DataFrame:
    return assign_partition(geocodes, _WORKER_DISTRICTS, _WORKER_OVERLAP_POLICY)


def _run_partitions(
    partitions: list[tuple[str, pd.DataFrame]],
    districts: gpd.GeoDataFrame,
    config: CorrespondenceConfig,
) -> list[pd.DataFrame]:
    results = []
    if config.workers == 1 or len(partitions) <= 1:
        for key, part in tqdm(partitions, desc="  Partitions", disable=len(partitions) < 2):
            try:
                results.append(assign_partition(part, districts, config.overlap_policy))
            except Exception as e:
                raise PartitionError(key, e) from e
        return results

    executor = ProcessPoolExecutor(
        max_workers=config.workers,
        initializer=_init_worker,
        initargs=(districts, config.overlap_policy),
    )
    try:
        future_to_key = {
            executor.submit(_assign_with_globals, part): key for key, part in partitions
        }
        for future in tqdm(
            as_completed(future_to_key), total=len(future_to_key), desc="  Partitions"
        ):
            key = future_to_key[future]
            try:
                results.append(future.result())
            except Exception as e:
                executor.shutdown(wait=False, cancel_futures=True)
                raise PartitionError(key, e) from e
    finally:
        executor.shutdown(wait=True)
    return results


def assign_districts(
    geocodes: pd.DataFrame,
    districts: gpd.GeoDataFrame,
    config: CorrespondenceConfig,
    verbose: bool = True,
) -> pd.DataFrame:
    """
    Assign every geocode to at most one district.

    Parameters
    ----------
    geocodes : pd.DataFrame
        Distinct geocodes from ``extract_geocodes``.
    districts : gpd.GeoDataFrame
        Validated districts (see ``boundaries.validate_geometries``).
    config : CorrespondenceConfig
        Supplies the CRS, worker count, partitioning and overlap policy.
    verbose : bool
        Print a match summary.

    Returns
    -------
    pd.DataFrame
        Geocodes with ``district`` and ``match_type``, sorted by postcode
        then coordinates regardless of partitioning or worker count.

    Raises
    ------
    CRSMismatchError
        If geocodes and districts are in different frames.
    PartitionError
        If any partition fails; no partial result is returned.
    """
    check_reference_frames(geocodes, districts, config.crs)

    if len(geocodes) == 0:
        result = geocodes.copy()
        result[DISTRICT_COLUMN] = pd.Series(dtype="object")
        result[MATCH_COLUMN] = pd.Series(dtype="object")
        return result

    partitions = partition_geocodes(geocodes, config.partition_by, config.chunk_size)
    if verbose:
        print(
            f"  Assigning {len(geocodes):,} geocodes to {len(districts):,} districts "
            f"({len(partitions):,} partitions, {config.workers} workers)"
        )

    results = _run_partitions(partitions, districts, config)
    assigned = pd.concat(results, ignore_index=True)
    assigned = assigned.sort_values(
        ["postcode", "longitude", "latitude"], kind="mergesort"
    ).reset_index(drop=True)

    if verbose:
        counts = assigned[MATCH_COLUMN].value_counts()
        n_unassigned = int(assigned[DISTRICT_COLUMN].isna().sum())
        print(f"    {len(assigned) - n_unassigned:,}/{len(assigned):,} geocodes matched")
        for kind in ("boundary", "overlap"):
            if counts.get(kind, 0):
                print(f"    {counts[kind]:,} resolved by {kind} tie-break")
        if n_unassigned:
            print(f"    {n_unassigned:,} geocodes outside every district")

    return assigned
