import geopandas as gpd
import pandas as pd
import pytest
from shapely.geometry import box

from electorate_postcodes.config import DEFAULT_CRS, CorrespondenceConfig


def _make_addresses(rows: list[tuple[str, float, float]], state: str = "NSW") -> pd.DataFrame:
    return pd.DataFrame(
        {
            "state": [state] * len(rows),
            "postcode": [r[0] for r in rows],
            "longitude": [r[1] for r in rows],
            "latitude": [r[2] for r in rows],
        }
    )


@pytest.fixture
def make_addresses():
    return _make_addresses


@pytest.fixture
def config():
    return CorrespondenceConfig(workers=1)


@pytest.fixture
def two_squares():
    """District A = [0,1]x[0,1], district B = [1,2]x[0,1]."""
    return gpd.GeoDataFrame(
        {"district": ["A", "B"]},
        geometry=[box(0, 0, 1, 1), box(1, 0, 2, 1)],
        crs=DEFAULT_CRS,
    )


@pytest.fixture
def scenario_addresses():
    return _make_addresses(
        [
            ("P1", 0.5, 0.5),
            ("P1", 1.5, 0.5),
            ("P2", 0.2, 0.2),
        ]
    )
