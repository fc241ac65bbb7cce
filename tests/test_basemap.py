"""
Tests for the basemap module, using local or generated layers only.

The Natural Earth download path is exercised with cartopy's reader mocked
out, so no network access is needed.
"""

from unittest.mock import patch

import geopandas as gpd
import numpy as np
import pandas as pd
import pytest
from shapely.geometry import Point, Polygon

from glomap import basemap
from glomap.basemap import (
    Basemap,
    BasemapDataError,
    load_basemap,
    load_countries,
    load_labels,
    make_bounding_box,
    make_graticule_lines,
    project_layer,
    read_layer,
)
from glomap.graticule import AlignmentError
from glomap.models import LabelAxis
from glomap.projection import Projector, ProjectionError


@pytest.fixture(scope="module")
def robinson():
    return Projector("+proj=robin")


class TestReadLayer:

    def test_reads_geojson(self, countries_geojson):
        gdf = read_layer(countries_geojson, "countries")
        assert len(gdf) == 2
        assert gdf.crs.to_epsg() == 4326

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="countries"):
            read_layer(tmp_path / "none.shp", "countries")

    def test_unreadable_file(self, tmp_path):
        path = tmp_path / "broken.geojson"
        path.write_text("not a vector file")
        with pytest.raises(BasemapDataError):
            read_layer(path, "countries")

    def test_reprojects_to_wgs84(self, tmp_path):
        gdf = gpd.GeoDataFrame(
            {"name": ["x"]}, geometry=[Point(0, 0).buffer(100000)], crs="EPSG:3857"
        )
        path = tmp_path / "mercator.gpkg"
        gdf.to_file(path, driver="GPKG")

        loaded = read_layer(path, "test")
        assert loaded.crs.to_epsg() == 4326
        assert abs(loaded.total_bounds[0]) < 1.0


class TestLoadCountries:

    def test_local_path_skips_download(self, countries_geojson):
        with patch.object(basemap.shapereader, "natural_earth") as mock_ne:
            gdf = load_countries(countries_geojson)
        mock_ne.assert_not_called()
        assert set(gdf["name"]) == {"Westland", "Eastland"}

    def test_natural_earth_fallback(self, countries_geojson):
        with patch.object(basemap.shapereader, "natural_earth",
                          return_value=str(countries_geojson)) as mock_ne:
            gdf = load_countries(None, resolution="50m")

        mock_ne.assert_called_once_with(
            resolution="50m", category="cultural", name="admin_0_countries"
        )
        assert len(gdf) == 2

    def test_download_failure(self):
        with patch.object(basemap.shapereader, "natural_earth",
                          side_effect=OSError("offline")):
            with pytest.raises(BasemapDataError, match="offline"):
                load_countries(None)


class TestGeneratedLayers:

    def test_graticule_lines(self):
        gdf = make_graticule_lines()
        meridians = gdf[gdf["kind"] == "meridian"]
        parallels = gdf[gdf["kind"] == "parallel"]

        assert len(meridians) == 19
        assert sorted(meridians["degree"]) == [float(v) for v in range(-180, 181, 20)]
        assert sorted(parallels["degree"]) == [float(v) for v in range(-80, 81, 10)]
        assert gdf.crs.to_epsg() == 4326

    def test_lines_are_densified(self):
        gdf = make_graticule_lines(densify=1.0)
        meridian = gdf[gdf["kind"] == "meridian"].geometry.iloc[0]
        assert len(meridian.coords) == 181

    def test_bounding_box(self):
        box = make_bounding_box()
        outline = box.geometry.iloc[0]
        assert isinstance(outline, Polygon)
        assert outline.is_valid
        assert tuple(outline.bounds) == (-180.0, -90.0, 180.0, 90.0)


class TestProjectLayer:

    def test_projected_box_has_robinson_extent(self, robinson):
        projected = project_layer(make_bounding_box(), robinson)
        xmin, ymin, xmax, ymax = projected.total_bounds
        edge_x, _ = robinson.forward([180.0], [0.0])
        _, edge_y = robinson.forward([0.0], [90.0])

        assert xmax == pytest.approx(edge_x[0], rel=1e-6)
        assert ymax == pytest.approx(edge_y[0], rel=1e-6)
        assert xmin == pytest.approx(-xmax)
        assert ymin == pytest.approx(-ymax)

    def test_accepts_projection_string(self):
        projected = project_layer(make_bounding_box(), "+proj=robin")
        assert np.all(np.isfinite(projected.total_bounds))

    def test_bad_projection(self):
        with pytest.raises(ProjectionError):
            project_layer(make_bounding_box(), "+proj=notaprojection")


class TestLoadLabels:

    def test_label_csv(self, tmp_path):
        path = tmp_path / "lbl_x.csv"
        pd.DataFrame({
            "lon": [160, 140, -160],
            "lat": [90, 90, -90],
            "lbl": ["160°E", "140°E", "160°W"],
        }).to_csv(path, index=False)

        labels = load_labels(path, LabelAxis.LONGITUDE)
        assert [lab.value for lab in labels] == [160.0, 140.0, -160.0]
        assert all(lab.axis == LabelAxis.LONGITUDE for lab in labels)

    def test_label_csv_missing_columns(self, tmp_path):
        path = tmp_path / "bad.csv"
        pd.DataFrame({"lon": [0], "lat": [0]}).to_csv(path, index=False)
        with pytest.raises(BasemapDataError):
            load_labels(path, LabelAxis.LATITUDE)


class TestLoadBasemap:

    def test_generated_basemap(self, offline_config, robinson):
        result = load_basemap(offline_config, robinson)

        assert isinstance(result, Basemap)
        assert len(result.lon_labels) == 34
        assert len(result.lat_labels) == 34
        assert all(lab.is_projected for lab in result.labels)
        assert result.countries.crs.equals(robinson.crs)
        assert result.box.crs.equals(robinson.crs)

    def test_meridian_labels_shifted(self, offline_config, robinson):
        result = load_basemap(offline_config, robinson)
        by_value = {lab.value: lab for lab in result.lon_labels if lab.lat > 0}

        assert by_value[160.0].lon == 150.0
        assert by_value[-160.0].lon == -150.0
        assert by_value[0.0].lon == 0.0

    def test_label_csv_outside_shift_table(self, offline_config, tmp_path, robinson):
        path = tmp_path / "lbl_x.csv"
        pd.DataFrame({"lon": [170], "lat": [90], "lbl": ["170°E"]}).to_csv(path, index=False)
        cfg = offline_config.update(basemap__lon_labels_path=path)

        with pytest.raises(AlignmentError):
            load_basemap(cfg, robinson)
