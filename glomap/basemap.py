"""
Basemap Reference Geometries

This module loads the reference layers drawn under the study sites and
projects them to the map projection:

- Countries: Natural Earth admin-0 polygons, from a local file or downloaded
  through cartopy's Natural Earth reader
- Graticule: meridians every 20° and parallels every 10°, from a local file
  or generated
- Bounding box: the outline of the world, from a local file or generated
- Graticule labels: label tables from CSV (columns lon, lat, lbl) or
  generated, then corrected (see ``glomap.graticule``)

Generated lines are densified so they bend with the projection instead of
being drawn as straight chords between their end points.

Spatial Operations:
- Source Coordinate Reference System (CRS): WGS84 (EPSG:4326)
- Layers without a CRS are assumed to be WGS84; others are reprojected to it
- Projection to the map CRS with ``GeoDataFrame.to_crs``

Example Usage:
    >>> from glomap.config import get_default_config
    >>> from glomap.basemap import load_basemap
    >>> basemap = load_basemap(get_default_config())
    >>> len(basemap.lon_labels), len(basemap.lat_labels)
    (34, 34)
"""

from dataclasses import dataclass, field
from typing import List, Optional, Union
from pathlib import Path
import logging
import math
import warnings

import numpy as np
import pandas as pd
import geopandas as gpd
from shapely.geometry import LineString, Polygon
from cartopy.io import shapereader, DownloadWarning
from pyproj.exceptions import CRSError

from .config import PipelineConfig
from .graticule import (
    build_shift_table,
    labels_from_dataframe,
    make_graticule_labels,
    prepare_graticule_labels,
)
from .models import GraticuleLabel, LabelAxis
from .projection import ROBINSON, WGS84, ProjectionError, ProjectionLike

logger = logging.getLogger(__name__)


class BasemapDataError(Exception):
    """Raised when a basemap layer cannot be loaded or is invalid."""
    pass


@dataclass
class Basemap:
    """Projected reference layers and corrected graticule labels."""

    countries: gpd.GeoDataFrame
    graticules: gpd.GeoDataFrame
    box: gpd.GeoDataFrame
    labels: List[GraticuleLabel] = field(default_factory=list)

    @property
    def lon_labels(self) -> List[GraticuleLabel]:
        return [lab for lab in self.labels if lab.axis == LabelAxis.LONGITUDE]

    @property
    def lat_labels(self) -> List[GraticuleLabel]:
        return [lab for lab in self.labels if lab.axis == LabelAxis.LATITUDE]


# ============================================================================
# Layer Loading
# ============================================================================

def read_layer(path: Union[str, Path], name: str = "layer") -> gpd.GeoDataFrame:
    """
    Read a vector layer and standardise it to WGS84.

    Raises
    ------
    FileNotFoundError
        If the file does not exist
    BasemapDataError
        If the file cannot be read or holds no geometries
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Basemap {name} file not found: {path}")

    logger.info(f"Loading {name} from: {path}")
    try:
        gdf = gpd.read_file(path)
    except Exception as e:
        raise BasemapDataError(f"Failed to read {name} from {path}: {e}") from e

    return _standardise_layer(gdf, name)


def _standardise_layer(gdf: gpd.GeoDataFrame, name: str) -> gpd.GeoDataFrame:
    if len(gdf) == 0:
        raise BasemapDataError(f"Basemap {name} layer is empty")

    if gdf.geometry is None or gdf.geometry.isna().all():
        raise BasemapDataError(f"Basemap {name} layer has no geometry")

    if gdf.crs is None:
        logger.warning(f"{name} layer has no CRS, assuming WGS84 (EPSG:4326)")
        gdf = gdf.set_crs(WGS84)
    elif gdf.crs.to_epsg() != 4326:
        logger.info(f"Reprojecting {name} layer from {gdf.crs} to {WGS84}")
        gdf = gdf.to_crs(WGS84)

    logger.info(f"Loaded {len(gdf)} features for {name}")
    return gdf


def load_countries(
    path: Optional[Union[str, Path]] = None,
    resolution: str = "110m",
) -> gpd.GeoDataFrame:
    """
    Load country polygons.

    Parameters
    ----------
    path : str or Path, optional
        Local countries file. If None, the Natural Earth admin-0 countries
        are fetched through cartopy (cached after the first download).
    resolution : str, default="110m"
        Natural Earth resolution when no path is given: "110m", "50m", "10m"
    """
    if path is not None:
        return read_layer(path, "countries")

    logger.info(f"Loading Natural Earth countries (resolution: {resolution})")
    try:
        with warnings.catch_warnings():
            warnings.filterwarnings('ignore', category=DownloadWarning)
            shapefile = shapereader.natural_earth(
                resolution=resolution,
                category="cultural",
                name="admin_0_countries",
            )
    except Exception as e:
        raise BasemapDataError(
            f"Failed to obtain Natural Earth countries: {e}\n"
            "Download them from https://www.naturalearthdata.com/ and pass "
            "the shapefile path instead."
        ) from e

    return read_layer(shapefile, "countries")


def _densified(start: float, stop: float, spacing: float) -> np.ndarray:
    n = max(2, int(math.ceil(abs(stop - start) / spacing)) + 1)
    return np.linspace(start, stop, n)


def make_graticule_lines(
    lon_step: float = 20.0,
    lat_step: float = 10.0,
    densify: float = 1.0,
) -> gpd.GeoDataFrame:
    """
    Generate meridians and parallels in WGS84.

    Meridians run from -180 to 180 every ``lon_step`` degrees, pole to pole.
    Parallels run every ``lat_step`` degrees, poles excluded (the outline
    already draws them).
    """
    lats_along = _densified(-90, 90, densify)
    lons_along = _densified(-180, 180, densify)

    records = []
    for lon in np.arange(-180, 180 + lon_step / 2, lon_step):
        coords = [(float(lon), float(lat)) for lat in lats_along]
        records.append({"kind": "meridian", "degree": float(lon), "geometry": LineString(coords)})

    for lat in np.arange(-90 + lat_step, 90 - lat_step / 2, lat_step):
        coords = [(float(lon), float(lat)) for lon in lons_along]
        records.append({"kind": "parallel", "degree": float(lat), "geometry": LineString(coords)})

    return gpd.GeoDataFrame(records, geometry="geometry", crs=WGS84)


def make_bounding_box(densify: float = 1.0) -> gpd.GeoDataFrame:
    """Generate the world outline polygon in WGS84."""
    west = [(-180.0, float(lat)) for lat in _densified(-90, 90, densify)]
    north = [(float(lon), 90.0) for lon in _densified(-180, 180, densify)][1:]
    east = [(180.0, float(lat)) for lat in _densified(90, -90, densify)][1:]
    south = [(float(lon), -90.0) for lon in _densified(180, -180, densify)][1:]
    outline = Polygon(west + north + east + south)
    return gpd.GeoDataFrame({"name": ["box"]}, geometry=[outline], crs=WGS84)


def load_graticules(
    path: Optional[Union[str, Path]] = None,
    lon_step: float = 20.0,
    lat_step: float = 10.0,
    densify: float = 1.0,
) -> gpd.GeoDataFrame:
    """Read graticule lines from ``path`` or generate them."""
    if path is not None:
        return read_layer(path, "graticules")
    logger.info(f"Generating graticule lines ({lon_step:g}° x {lat_step:g}°)")
    return make_graticule_lines(lon_step, lat_step, densify)


def load_bounding_box(
    path: Optional[Union[str, Path]] = None,
    densify: float = 1.0,
) -> gpd.GeoDataFrame:
    """Read the world outline from ``path`` or generate it."""
    if path is not None:
        return read_layer(path, "bounding box")
    logger.info("Generating bounding box outline")
    return make_bounding_box(densify)


def load_labels(
    path: Union[str, Path],
    axis: LabelAxis,
) -> List[GraticuleLabel]:
    """
    Read a graticule label table (columns lon, lat, lbl).

    Raises
    ------
    FileNotFoundError
        If the file does not exist
    BasemapDataError
        If required columns are missing or coordinates are not numeric
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Label table not found: {path}")

    df = pd.read_csv(path)
    try:
        labels = labels_from_dataframe(df, axis)
    except ValueError as e:
        raise BasemapDataError(f"Invalid label table {path}: {e}") from e

    logger.info(f"Loaded {len(labels)} {LabelAxis(axis).value} labels from {path}")
    return labels


# ============================================================================
# Projection
# ============================================================================

def project_layer(
    gdf: gpd.GeoDataFrame,
    projection: ProjectionLike = ROBINSON,
) -> gpd.GeoDataFrame:
    """
    Project a WGS84 layer to the map CRS.

    Raises
    ------
    ProjectionError
        If the projection cannot be resolved or produces non-finite bounds
    """
    target = getattr(projection, "crs", projection)
    try:
        projected = gdf.to_crs(target)
    except (CRSError, ValueError) as e:
        raise ProjectionError(f"Cannot project layer to '{projection}': {e}") from e

    bounds = projected.total_bounds
    if not np.all(np.isfinite(bounds)):
        raise ProjectionError(
            f"Projected layer has non-finite bounds {bounds.tolist()}"
        )
    return projected


def load_basemap(
    cfg: PipelineConfig,
    projection: Optional[ProjectionLike] = None,
) -> Basemap:
    """
    Load, project and correct every basemap layer.

    Parameters
    ----------
    cfg : PipelineConfig
        Pipeline configuration (basemap paths and graticule settings)
    projection : str or Projector, optional
        Map projection (default: ``cfg.projection.projection``)

    Returns
    -------
    Basemap
        Projected countries, graticules, outline and corrected labels
    """
    if projection is None:
        projection = cfg.projection.projection

    b = cfg.basemap
    g = cfg.graticule

    countries = load_countries(b.countries_path, b.natural_earth_resolution)
    graticules = load_graticules(b.graticules_path, g.lon_step, g.lat_step, g.densify_degrees)
    box = load_bounding_box(b.box_path, g.densify_degrees)

    generated = make_graticule_labels(
        lon_step=g.lon_step,
        lat_step=g.lat_step,
        lon_max=g.shift_start_lon,
        lat_max=g.lat_label_max,
        label_lat=g.label_lat,
        label_lon=g.label_lon,
    )
    if b.lon_labels_path is not None:
        lon_labels = load_labels(b.lon_labels_path, LabelAxis.LONGITUDE)
    else:
        lon_labels = [lab for lab in generated if lab.axis == LabelAxis.LONGITUDE]
    if b.lat_labels_path is not None:
        lat_labels = load_labels(b.lat_labels_path, LabelAxis.LATITUDE)
    else:
        lat_labels = [lab for lab in generated if lab.axis == LabelAxis.LATITUDE]

    table = build_shift_table(g.longitude_shift, g.shift_start_lon, g.lon_step)
    labels = prepare_graticule_labels(
        lat_labels + lon_labels,
        projection,
        nudge_lon=g.nudge_lon,
        nudge_lat=g.nudge_lat,
        table=table,
    )

    logger.info(f"Projecting basemap layers to {getattr(projection, 'projection_spec', projection)}")
    return Basemap(
        countries=project_layer(countries, projection),
        graticules=project_layer(graticules, projection),
        box=project_layer(box, projection),
        labels=labels,
    )
