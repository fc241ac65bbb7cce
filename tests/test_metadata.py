"""
Unit tests for glomap.metadata

Tests cover:
1. Reading observation tables (column selection, delimiters, encodings)
2. Missing-value tokens and malformed numbers
3. Coordinate range validation
4. Missing coordinate policy (drop vs reject)
5. Conversion to GeoPoints
"""

import logging

import numpy as np
import pandas as pd
import pytest

from glomap.metadata import (
    ValidationError,
    drop_missing_coordinates,
    load_geo_points,
    parse_coordinates,
    read_observations,
    to_geo_points,
    validate_coordinate_ranges,
)
from glomap.models import GeoPoint


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def coords_df():
    return pd.DataFrame({
        "unique_number": ["1", "2", "3", "4"],
        "Longitude": ["10.5", "N/A", "abc", "-70"],
        "Latitude": ["45", "12", "3", "null"],
    })


def write_table(tmp_path, text, name="table.csv", encoding="utf-8"):
    path = tmp_path / name
    path.write_bytes(text.encode(encoding))
    return path


# ============================================================================
# Reading
# ============================================================================

class TestReadObservations:

    def test_keeps_only_required_columns(self, observations_csv):
        df = read_observations(observations_csv)
        assert list(df.columns) == ["unique_number", "Longitude", "Latitude"]
        assert len(df) == 6

    def test_values_read_as_text(self, observations_csv):
        df = read_observations(observations_csv)
        assert df.loc[0, "Longitude"] == "10.5"
        assert df.loc[0, "unique_number"] == "1"

    def test_na_tokens_are_missing(self, tmp_path):
        path = write_table(
            tmp_path,
            "id,lon,lat\n1,NA,1\n2,N/A,2\n3,null,3\n4,,4\n5,5,5\n",
        )
        df = read_observations(path, id_col="id", lon_col="lon", lat_col="lat")
        assert df["lon"].isna().tolist() == [True, True, True, True, False]

    def test_custom_delimiter(self, tmp_path):
        path = write_table(tmp_path, "id;lon;lat\na;1.5;2.5\n", name="t.tsv")
        df = read_observations(path, id_col="id", lon_col="lon", lat_col="lat", sep=";")
        assert df.loc[0, "lat"] == "2.5"

    def test_latin1_fallback(self, tmp_path):
        path = write_table(
            tmp_path,
            "unique_number,Site,Longitude,Latitude\n1,Montaña,-3.7,40.4\n",
            encoding="latin-1",
        )
        df = read_observations(path)
        assert df.loc[0, "Longitude"] == "-3.7"

    def test_missing_column_raises(self, tmp_path):
        path = write_table(tmp_path, "unique_number,Longitude\n1,10\n")
        with pytest.raises(ValueError, match="Latitude"):
            read_observations(path)

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_observations(tmp_path / "nope.csv")

    def test_header_only_raises(self, tmp_path):
        path = write_table(tmp_path, "unique_number,Longitude,Latitude\n")
        with pytest.raises(pd.errors.EmptyDataError):
            read_observations(path)


# ============================================================================
# Parsing and validation
# ============================================================================

class TestParseCoordinates:

    def test_malformed_becomes_missing(self, coords_df, caplog):
        with caplog.at_level(logging.WARNING, logger="glomap"):
            df = parse_coordinates(coords_df)

        assert df.loc[0, "lon"] == 10.5
        assert np.isnan(df.loc[2, "lon"])
        assert "malformed" in caplog.text
        # Never coerced to zero
        assert (df["lon"].dropna() != 0).all()

    def test_original_columns_untouched(self, coords_df):
        df = parse_coordinates(coords_df)
        assert df.loc[0, "Longitude"] == "10.5"
        assert "lon" not in coords_df.columns

    def test_malformed_warned_when_columns_share_output_names(self, caplog):
        df = pd.DataFrame({"unique_number": ["1", "2"], "lon": ["abc", "1"], "lat": ["5", "6"]})
        with caplog.at_level(logging.WARNING, logger="glomap"):
            parsed = parse_coordinates(df, lon_col="lon", lat_col="lat")

        assert "1 malformed value(s) in 'lon'" in caplog.text
        assert "'abc'" in caplog.text
        assert np.isnan(parsed.loc[0, "lon"])
        assert parsed.loc[1, "lon"] == 1.0


class TestMissingCoordinates:

    def test_drop_with_warning(self, coords_df, caplog):
        df = parse_coordinates(coords_df)
        with caplog.at_level(logging.WARNING, logger="glomap"):
            kept = drop_missing_coordinates(df)

        assert kept["unique_number"].tolist() == ["1"]
        assert "Dropping 3" in caplog.text

    def test_reject_when_drop_disabled(self, coords_df):
        df = parse_coordinates(coords_df)
        with pytest.raises(ValidationError, match="3 observation"):
            drop_missing_coordinates(df, drop=False)

    def test_complete_table_passes(self):
        df = pd.DataFrame({"unique_number": [1], "lon": [1.0], "lat": [2.0]})
        assert len(drop_missing_coordinates(df, drop=False)) == 1


class TestValidateCoordinateRanges:

    def test_bounds_are_inclusive(self):
        df = pd.DataFrame({
            "unique_number": [1, 2, 3, 4],
            "lon": [-180.0, 180.0, 0.0, 0.0],
            "lat": [0.0, 0.0, -90.0, 90.0],
        })
        assert validate_coordinate_ranges(df)

    def test_longitude_out_of_range(self):
        df = pd.DataFrame({"unique_number": ["a", "b"], "lon": [200.0, 10.0], "lat": [0.0, 0.0]})
        with pytest.raises(ValidationError, match="longitude") as exc:
            validate_coordinate_ranges(df)
        assert "'a'" in str(exc.value)

    def test_latitude_out_of_range(self):
        df = pd.DataFrame({"unique_number": [1], "lon": [0.0], "lat": [-91.0]})
        with pytest.raises(ValidationError, match="latitude"):
            validate_coordinate_ranges(df)

    def test_swapped_columns_detected(self):
        # Longitudes beyond 90 read as latitudes
        df = pd.DataFrame({"unique_number": [1], "lon": [45.0], "lat": [151.2]})
        with pytest.raises(ValidationError):
            validate_coordinate_ranges(df)


# ============================================================================
# End to end
# ============================================================================

class TestLoadGeoPoints:

    def test_drops_missing_and_keeps_order(self, observations_csv):
        points, df = load_geo_points(observations_csv)

        assert [p.id for p in points] == ["1", "2", "4", "6"]
        assert points[0] == GeoPoint(id="1", lon=10.5, lat=45.2)
        assert list(df.index) == [0, 1, 2, 3]
        assert len(df) == len(points)

    def test_reject_missing(self, observations_csv):
        with pytest.raises(ValidationError):
            load_geo_points(observations_csv, drop_missing=False)

    def test_out_of_range_rejected(self, tmp_path):
        path = write_table(
            tmp_path,
            "unique_number,Longitude,Latitude\n1,200,10\n2,10,10\n",
        )
        with pytest.raises(ValidationError):
            load_geo_points(path)

    def test_to_geo_points(self):
        df = pd.DataFrame({"unique_number": [3, 1], "lon": [1.0, 2.0], "lat": [3.0, 4.0]})
        assert to_geo_points(df) == [GeoPoint(3, 1.0, 3.0), GeoPoint(1, 2.0, 4.0)]
