"""
Shared fixtures for the GloMap test suite.

Nothing here touches the network: countries come from a small synthetic
GeoJSON instead of the Natural Earth download.
"""

import sys
from pathlib import Path

import matplotlib
import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

matplotlib.use("Agg")

import geopandas as gpd
from shapely.geometry import Polygon

from glomap.config import PipelineConfig, get_default_config


class ScaledProjector:
    """Planar stand-in for a projection: multiplies degrees by a constant."""

    projection_spec = "scaled"

    def __init__(self, scale=1000.0):
        self.scale = scale
        self.calls = []

    def forward(self, lons, lats):
        lons = np.asarray(lons, dtype=float)
        lats = np.asarray(lats, dtype=float)
        self.calls.append((lons.copy(), lats.copy()))
        return lons * self.scale, lats * self.scale

    def inverse(self, xs, ys):
        return np.asarray(xs, dtype=float) / self.scale, np.asarray(ys, dtype=float) / self.scale


@pytest.fixture
def scaled_projector():
    return ScaledProjector()


@pytest.fixture
def observations_csv(tmp_path):
    """Observation table with the column layout of the pollen data export."""
    path = tmp_path / "sites.csv"
    path.write_text(
        "unique_number,Species,Longitude,Latitude,Country\n"
        "1,Silene latifolia,10.5,45.2,Italy\n"
        "2,Primula veris,-70.1,-33.4,Chile\n"
        "3,Ophrys apifera,NA,51.0,UK\n"
        "4,Viola odorata,151.2,-33.9,Australia\n"
        "5,Erica arborea,,28.1,Spain\n"
        "6,Clarkia unguiculata,-120.0,37.0,USA\n"
    )
    return path


@pytest.fixture
def countries_geojson(tmp_path):
    """Two rectangular 'countries' in WGS84."""
    gdf = gpd.GeoDataFrame(
        {"name": ["Westland", "Eastland"]},
        geometry=[
            Polygon([(-100, 10), (-60, 10), (-60, 50), (-100, 50)]),
            Polygon([(20, -30), (50, -30), (50, 10), (20, 10)]),
        ],
        crs="EPSG:4326",
    )
    path = tmp_path / "countries.geojson"
    gdf.to_file(path, driver="GeoJSON")
    return path


@pytest.fixture
def offline_config(countries_geojson, tmp_path) -> PipelineConfig:
    """Default configuration with local countries and a low raster resolution."""
    return get_default_config().update(
        output_dir=tmp_path / "Output",
        basemap__countries_path=countries_geojson,
        visualization__dpi=100,
    )
