"""
Coordinate Projection Pipeline

This module converts geographic (longitude/latitude) coordinates into planar
map coordinates. The cartographic mathematics is delegated to PROJ through
pyproj. This module checks inputs and outputs around the transformation and
keeps point identifiers aligned with their projected positions.

The default target is the Robinson projection ("+proj=robin", identical to
"ESRI:54030"), a compromise projection commonly used for world maps.

Key Features:
- Narrow ``Projector`` interface (forward / inverse) around a cached
  pyproj Transformer
- Order- and identifier-preserving projection of GeoPoint sequences
- Projection of a fixed geographic offset into planar nudge magnitudes
- DataFrame helper used for the observation table handed to rendering

Failure Policy:
An unresolvable projection raises ``ProjectionError``, as does any non-finite
coordinate going in or coming out. Rows are never dropped silently:
every output depends on the same projection, so one failure ends the run.

Any object exposing ``forward(lons, lats) -> (xs, ys)`` can stand in for a
Projector, which lets the label-correction logic be tested without PROJ.

Example Usage:
    >>> from glomap.models import GeoPoint
    >>> from glomap.projection import project_points
    >>> pts = [GeoPoint("a", 0.0, 0.0), GeoPoint("b", 151.2, -33.9)]
    >>> projected = project_points(pts, "+proj=robin")
    >>> [p.id for p in projected]
    ['a', 'b']
"""

from typing import List, Sequence, Tuple, Union
import logging

import numpy as np
import pandas as pd
from pyproj import CRS, Transformer
from pyproj.enums import TransformDirection
from pyproj.exceptions import CRSError, ProjError

from .models import GeoPoint, NudgeOffset, ProjectedPoint

logger = logging.getLogger(__name__)

ROBINSON = "+proj=robin"
WGS84 = "EPSG:4326"


class ProjectionError(Exception):
    """Raised when a projection cannot be resolved or yields invalid output."""
    pass


class Projector:
    """
    Forward/inverse projection between geographic and planar coordinates.

    Parameters
    ----------
    projection_spec : str
        Target CRS as a PROJ string, EPSG/ESRI code or WKT (default: Robinson)
    source_crs : str
        Geographic source CRS (default: WGS84)

    Raises
    ------
    ProjectionError
        If either CRS cannot be resolved by PROJ
    """

    def __init__(self, projection_spec: str = ROBINSON, source_crs: str = WGS84):
        self.projection_spec = projection_spec
        self.source_crs = source_crs
        try:
            self.crs = CRS.from_user_input(projection_spec)
            self._transformer = Transformer.from_crs(
                CRS.from_user_input(source_crs), self.crs, always_xy=True
            )
        except CRSError as e:
            raise ProjectionError(
                f"Cannot resolve projection '{projection_spec}' "
                f"from '{source_crs}': {e}"
            ) from e
        logger.debug(f"Created transformer {source_crs} -> {projection_spec}")

    def __repr__(self) -> str:
        return f"Projector({self.projection_spec!r}, source_crs={self.source_crs!r})"

    def forward(self, lons, lats) -> Tuple[np.ndarray, np.ndarray]:
        """Project longitude/latitude arrays to planar x/y arrays."""
        return self._transform(lons, lats, TransformDirection.FORWARD)

    def inverse(self, xs, ys) -> Tuple[np.ndarray, np.ndarray]:
        """Unproject planar x/y arrays back to longitude/latitude arrays."""
        return self._transform(xs, ys, TransformDirection.INVERSE)

    def _transform(self, a, b, direction) -> Tuple[np.ndarray, np.ndarray]:
        a = np.asarray(a, dtype=float)
        b = np.asarray(b, dtype=float)
        if a.shape != b.shape:
            raise ProjectionError(
                f"Coordinate arrays differ in shape: {a.shape} vs {b.shape}"
            )

        bad_input = ~(np.isfinite(a) & np.isfinite(b))
        if bad_input.any():
            positions = np.flatnonzero(bad_input)[:5].tolist()
            raise ProjectionError(
                f"{int(bad_input.sum())} non-finite input coordinate(s) "
                f"at positions {positions}"
            )

        try:
            out_a, out_b = self._transformer.transform(
                a, b, direction=direction, errcheck=True
            )
        except ProjError as e:
            raise ProjectionError(
                f"Projection '{self.projection_spec}' failed: {e}"
            ) from e

        out_a = np.asarray(out_a, dtype=float)
        out_b = np.asarray(out_b, dtype=float)
        bad_output = ~(np.isfinite(out_a) & np.isfinite(out_b))
        if bad_output.any():
            positions = np.flatnonzero(bad_output)[:5].tolist()
            raise ProjectionError(
                f"Projection '{self.projection_spec}' returned non-finite "
                f"output at positions {positions}"
            )
        return out_a, out_b


ProjectionLike = Union[str, Projector]


def get_projector(projection: ProjectionLike) -> Projector:
    """Return ``projection`` itself if it already projects, else build a Projector."""
    if isinstance(projection, str):
        return Projector(projection)
    if not hasattr(projection, "forward"):
        raise TypeError(
            f"Expected a projection spec or an object with forward(), "
            f"got {type(projection).__name__}"
        )
    return projection


def project_points(
    points: Sequence[GeoPoint],
    projection: ProjectionLike = ROBINSON,
) -> List[ProjectedPoint]:
    """
    Project geographic points, preserving order and identifiers.

    Parameters
    ----------
    points : Sequence[GeoPoint]
        Pre-validated points (lon in [-180, 180], lat in [-90, 90])
    projection : str or Projector
        Projection spec or a projector object

    Returns
    -------
    List[ProjectedPoint]
        One entry per input point, in input order, with the same ids

    Raises
    ------
    ProjectionError
        If the projection fails for any point
    """
    if len(points) == 0:
        return []

    projector = get_projector(projection)
    lons = [p.lon for p in points]
    lats = [p.lat for p in points]
    xs, ys = projector.forward(lons, lats)

    if len(xs) != len(points) or len(ys) != len(points):
        raise ProjectionError(
            f"Projection returned {len(xs)} coordinates for {len(points)} points"
        )

    return [
        ProjectedPoint(id=p.id, x=float(x), y=float(y))
        for p, x, y in zip(points, xs, ys)
    ]


def inverse_project_points(
    points: Sequence[ProjectedPoint],
    projection: ProjectionLike = ROBINSON,
) -> List[GeoPoint]:
    """Unproject planar points back to geographic coordinates."""
    if len(points) == 0:
        return []

    projector = get_projector(projection)
    lons, lats = projector.inverse([p.x for p in points], [p.y for p in points])
    return [
        GeoPoint(id=p.id, lon=float(lon), lat=float(lat))
        for p, lon, lat in zip(points, lons, lats)
    ]


def project_offset(
    lon: float,
    lat: float,
    projection: ProjectionLike = ROBINSON,
) -> NudgeOffset:
    """
    Project a fixed geographic offset into planar magnitudes.

    The result is used as a post-projection displacement (e.g. label nudges),
    not as a geographic shift.
    """
    projector = get_projector(projection)
    xs, ys = projector.forward([lon], [lat])
    offset = NudgeOffset(x=float(xs[0]), y=float(ys[0]))
    logger.debug(f"Offset ({lon}, {lat}) deg -> ({offset.x:.1f}, {offset.y:.1f})")
    return offset


def project_dataframe(
    df: pd.DataFrame,
    projection: ProjectionLike = ROBINSON,
    lon_col: str = "lon",
    lat_col: str = "lat",
    x_col: str = "X_prj",
    y_col: str = "Y_prj",
) -> pd.DataFrame:
    """
    Add projected coordinate columns to a DataFrame.

    Parameters
    ----------
    df : pd.DataFrame
        Table with numeric, validated longitude/latitude columns
    projection : str or Projector
        Projection spec or projector object
    lon_col, lat_col : str
        Input coordinate columns
    x_col, y_col : str
        Output columns (default: X_prj, Y_prj)

    Returns
    -------
    pd.DataFrame
        Copy of ``df`` with the projected columns added
    """
    for col in (lon_col, lat_col):
        if col not in df.columns:
            raise ValueError(f"Column '{col}' not found in DataFrame")

    df_copy = df.copy()
    if df_copy.empty:
        df_copy[x_col] = pd.Series(dtype=float)
        df_copy[y_col] = pd.Series(dtype=float)
        return df_copy

    projector = get_projector(projection)
    xs, ys = projector.forward(df_copy[lon_col].to_numpy(), df_copy[lat_col].to_numpy())
    df_copy[x_col] = xs
    df_copy[y_col] = ys

    logger.info(f"Projected {len(df_copy)} points with {getattr(projector, 'projection_spec', projector)}")
    return df_copy
