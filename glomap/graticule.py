"""
Graticule Label Correction

Graticule labels are placed at the edges of the world outline. Once projected
to Robinson, some of them end up in the wrong place: the meridian labels
near the map edge drift onto the neighbouring meridian (the 160° label lands
on the 180° line) and edge labels overlap the outline. Two corrections keep
them legible:

1. Longitude shift (before projection). Meridian labels are moved toward
   the central meridian by a degree-dependent amount, larger for higher
   absolute longitude. The magnitudes are fixed for the 20° meridian grid:

       lon:    160  140  120  100   80   60   40   20    0
       shift:   10   10    9    8    8    5    2    0    0

   and mirrored with a sign flip for the western hemisphere, so that
   ``corrected_lon = lon - shift(lon)``.

2. Nudge (after projection). Labels are pushed outward by a planar offset
   obtained by projecting a small geographic pair (10° lon, 4° lat):
   parallel labels move along x, meridian labels along y. The direction
   follows the sign of the anchor coordinate; 0 counts as non-negative.

The shift is looked up by grid value, never by row position, so the label
table may come in any order and with any number of rows per meridian. A grid
value missing from the lookup raises ``AlignmentError``; defaulting to no
shift would misplace labels without any sign of it.

Example Usage:
    >>> from glomap.graticule import build_shift_table, compute_longitude_shift
    >>> table = build_shift_table()
    >>> compute_longitude_shift([160, 0, -160], table)
    [10.0, 0.0, -10.0]
"""

from collections import Counter
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence
import logging

import numpy as np
import pandas as pd

from .models import GeoPoint, GraticuleLabel, LabelAxis, NudgeOffset
from .projection import ROBINSON, ProjectionLike, project_offset, project_points

logger = logging.getLogger(__name__)

# Shift magnitudes (degrees) for meridians 160, 140, ..., 0
BASE_LONGITUDE_SHIFT = (10, 10, 9, 8, 8, 5, 2, 0, 0)
SHIFT_START_LON = 160
SHIFT_STEP = 20

DEFAULT_NUDGE_LON = 10.0
DEFAULT_NUDGE_LAT = 4.0


class AlignmentError(Exception):
    """Raised when a graticule grid value has no longitude shift entry."""
    pass


# ============================================================================
# Longitude Shift Table
# ============================================================================

def mirror_shift_sequence(base: Sequence[float] = BASE_LONGITUDE_SHIFT) -> List[float]:
    """
    Build the positional shift sequence for both hemispheres.

    The eastern sequence runs from the outermost meridian down to 0°; the
    western part is the reversed, negated sequence without its first entry,
    which is the shared 0° boundary.

    Examples
    --------
    >>> mirror_shift_sequence()[9:]
    [0.0, -2.0, -5.0, -8.0, -8.0, -9.0, -10.0, -10.0]
    """
    east = [float(v) for v in base]
    west = [-v + 0.0 for v in reversed(east)][1:]
    return east + west


def build_shift_table(
    base: Sequence[float] = BASE_LONGITUDE_SHIFT,
    start: float = SHIFT_START_LON,
    step: float = SHIFT_STEP,
) -> Dict[float, float]:
    """
    Build the keyed longitude shift lookup.

    Parameters
    ----------
    base : Sequence[float]
        Shift magnitudes for meridians ``start, start - step, ..., 0``
    start : float
        Outermost eastern meridian covered by ``base``
    step : float
        Meridian spacing in degrees

    Returns
    -------
    Dict[float, float]
        Meridian value -> signed shift, covering ``-start .. start``

    Raises
    ------
    ValueError
        If ``base`` does not end at the 0° meridian
    """
    if step <= 0:
        raise ValueError("step must be positive")
    expected = int(round(start / step)) + 1
    if len(base) != expected:
        raise ValueError(
            f"Shift sequence has {len(base)} entries but meridians "
            f"{start}..0 by {step} need {expected}"
        )

    grid = [float(start - i * step) for i in range(len(base))]
    values = mirror_shift_sequence(base)
    grid += [-g for g in reversed(grid)][1:]
    # -0.0 and 0.0 hash alike; normalise anyway so the key prints as 0.0
    return {g + 0.0: v for g, v in zip(grid, values)}


def compute_longitude_shift(
    grid_values: Iterable[float],
    table: Optional[Dict[float, float]] = None,
) -> List[float]:
    """
    Look up the longitude shift for each grid value.

    Parameters
    ----------
    grid_values : Iterable[float]
        Meridian values, in any order, possibly repeated
    table : Dict[float, float], optional
        Shift lookup (default: ``build_shift_table()``)

    Returns
    -------
    List[float]
        Shift per input value, aligned to the input order

    Raises
    ------
    AlignmentError
        If any grid value has no entry in the table
    """
    if table is None:
        table = build_shift_table()

    values = [float(v) for v in grid_values]
    missing = sorted({v for v in values if v not in table})
    if missing:
        raise AlignmentError(
            f"No longitude shift defined for grid value(s) {missing}; "
            f"table covers {sorted(table)}"
        )

    counts = Counter(values)
    if len(set(counts.values())) > 1:
        logger.warning(
            "Grid values occur an uneven number of times: "
            f"{dict(sorted(counts.items()))}. Shifts are keyed by value, "
            "but the label table may be incomplete."
        )

    return [table[v] for v in values]


def apply_longitude_shift(
    labels: Sequence[GraticuleLabel],
    table: Optional[Dict[float, float]] = None,
) -> List[GraticuleLabel]:
    """Shift the anchor longitude of meridian labels; other labels pass through."""
    lon_labels = [lab for lab in labels if lab.axis == LabelAxis.LONGITUDE]
    shifts = iter(compute_longitude_shift([lab.lon for lab in lon_labels], table))

    out = []
    for lab in labels:
        if lab.axis == LabelAxis.LONGITUDE:
            out.append(replace(lab, lon=lab.lon - next(shifts)))
        else:
            out.append(lab)
    return out


# ============================================================================
# Projection and Nudging
# ============================================================================

def compute_nudge_offset(
    projection: ProjectionLike = ROBINSON,
    nudge_lon: float = DEFAULT_NUDGE_LON,
    nudge_lat: float = DEFAULT_NUDGE_LAT,
) -> NudgeOffset:
    """Project the geographic nudge pair into planar magnitudes."""
    return project_offset(nudge_lon, nudge_lat, projection)


def _sign(value: float) -> float:
    # 0 counts as non-negative
    return -1.0 if value < 0 else 1.0


def apply_label_nudge(
    labels: Sequence[GraticuleLabel],
    axis: LabelAxis,
    nudge_offset: NudgeOffset,
) -> List[GraticuleLabel]:
    """
    Nudge projected labels of one axis away from the map outline.

    Latitude labels move along x by ``sign(lon) * nudge_offset.x``; longitude
    labels move along y by ``sign(lat) * nudge_offset.y``. Labels of the
    other axis are returned unchanged.

    Raises
    ------
    ValueError
        If a label to be nudged has not been projected yet
    """
    axis = LabelAxis(axis)
    out = []
    for lab in labels:
        if lab.axis != axis:
            out.append(lab)
            continue
        if not lab.is_projected:
            raise ValueError(f"Label '{lab.text}' must be projected before nudging")
        if axis == LabelAxis.LATITUDE:
            out.append(replace(lab, x=lab.x + _sign(lab.lon) * nudge_offset.x))
        else:
            out.append(replace(lab, y=lab.y + _sign(lab.lat) * nudge_offset.y))
    return out


def project_labels(
    labels: Sequence[GraticuleLabel],
    projection: ProjectionLike = ROBINSON,
) -> List[GraticuleLabel]:
    """Fill in the planar position of each label from its anchor."""
    points = [GeoPoint(id=i, lon=lab.lon, lat=lab.lat) for i, lab in enumerate(labels)]
    projected = project_points(points, projection)
    return [replace(lab, x=p.x, y=p.y) for lab, p in zip(labels, projected)]


def prepare_graticule_labels(
    labels: Sequence[GraticuleLabel],
    projection: ProjectionLike = ROBINSON,
    nudge_lon: float = DEFAULT_NUDGE_LON,
    nudge_lat: float = DEFAULT_NUDGE_LAT,
    table: Optional[Dict[float, float]] = None,
) -> List[GraticuleLabel]:
    """
    Run the full label correction: shift, project, nudge.

    The shift lookup is checked against every meridian label before anything
    is projected, so an alignment problem fails the run up front.
    """
    if table is None:
        table = build_shift_table()

    shifted = apply_longitude_shift(labels, table)
    projected = project_labels(shifted, projection)
    nudge = compute_nudge_offset(projection, nudge_lon, nudge_lat)

    nudged = apply_label_nudge(projected, LabelAxis.LATITUDE, nudge)
    nudged = apply_label_nudge(nudged, LabelAxis.LONGITUDE, nudge)

    logger.info(
        f"Prepared {len(nudged)} graticule labels "
        f"(nudge x={nudge.x:.0f}, y={nudge.y:.0f})"
    )
    return nudged


# ============================================================================
# Label Generation and Tables
# ============================================================================

def format_degree_label(value: float, axis: LabelAxis) -> str:
    """
    Format a graticule value as label text.

    Examples
    --------
    >>> format_degree_label(160, LabelAxis.LONGITUDE)
    '160°E'
    >>> format_degree_label(-20, LabelAxis.LONGITUDE)
    '20°W'
    >>> format_degree_label(-10, LabelAxis.LATITUDE)
    '10°S'
    >>> format_degree_label(0, LabelAxis.LATITUDE)
    '0°'
    """
    axis = LabelAxis(axis)
    magnitude = abs(value)
    number = f"{magnitude:g}"
    if value == 0:
        return f"{number}°"
    if axis == LabelAxis.LONGITUDE:
        hemisphere = "E" if value > 0 else "W"
    else:
        hemisphere = "N" if value > 0 else "S"
    return f"{number}°{hemisphere}"


def make_graticule_labels(
    lon_step: float = 20,
    lat_step: float = 10,
    lon_max: float = 160,
    lat_max: float = 80,
    label_lat: float = 90,
    label_lon: float = 180,
) -> List[GraticuleLabel]:
    """
    Generate the default graticule label set.

    Meridian labels run from ``lon_max`` down to ``-lon_max``, first along
    the top edge (``+label_lat``) and then along the bottom edge; parallel
    labels run from ``lat_max`` down to ``-lat_max`` on the left and right
    edges (``-label_lon``/``+label_lon``). Every grid value therefore has two
    labels, one per edge.
    """
    lons = np.arange(lon_max, -lon_max - lon_step / 2, -lon_step)
    lats = np.arange(lat_max, -lat_max - lat_step / 2, -lat_step)

    labels = []
    for edge_lat in (label_lat, -label_lat):
        for lon in lons:
            lon = float(lon) + 0.0
            labels.append(GraticuleLabel(
                axis=LabelAxis.LONGITUDE,
                value=lon,
                lon=lon,
                lat=float(edge_lat),
                text=format_degree_label(lon, LabelAxis.LONGITUDE),
            ))
    for edge_lon in (-label_lon, label_lon):
        for lat in lats:
            lat = float(lat) + 0.0
            labels.append(GraticuleLabel(
                axis=LabelAxis.LATITUDE,
                value=lat,
                lon=float(edge_lon),
                lat=lat,
                text=format_degree_label(lat, LabelAxis.LATITUDE),
            ))
    return labels


def labels_to_dataframe(labels: Sequence[GraticuleLabel]) -> pd.DataFrame:
    """Convert labels to a DataFrame with lon, lat, lbl, X_prj, Y_prj columns."""
    return pd.DataFrame({
        "axis": [lab.axis.value for lab in labels],
        "value": [lab.value for lab in labels],
        "lon": [lab.lon for lab in labels],
        "lat": [lab.lat for lab in labels],
        "lbl": [lab.text for lab in labels],
        "X_prj": [lab.x for lab in labels],
        "Y_prj": [lab.y for lab in labels],
    })


def labels_from_dataframe(df: pd.DataFrame, axis: LabelAxis) -> List[GraticuleLabel]:
    """
    Build labels from a table with ``lon``, ``lat`` and ``lbl`` columns.

    The graticule value is the longitude for meridian labels and the latitude
    for parallel labels, unless a ``value`` column is present.
    """
    axis = LabelAxis(axis)
    missing = [c for c in ("lon", "lat", "lbl") if c not in df.columns]
    if missing:
        raise ValueError(f"Label table is missing columns: {missing}")

    labels = []
    for row in df.itertuples(index=False):
        lon = float(row.lon)
        lat = float(row.lat)
        if "value" in df.columns:
            value = float(row.value)
        else:
            value = lon if axis == LabelAxis.LONGITUDE else lat
        labels.append(GraticuleLabel(
            axis=axis, value=value, lon=lon, lat=lat, text=str(row.lbl)
        ))
    return labels
