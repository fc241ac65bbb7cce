"""
Data Model Definitions

Value types passed between the input, projection, label-correction and
rendering stages. All types are frozen dataclasses; stages return new
instances (``dataclasses.replace``) instead of mutating their inputs.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Hashable, Optional


class LabelAxis(str, Enum):
    """Which coordinate a graticule label displays."""

    LONGITUDE = "longitude"  # meridian labels along the top/bottom edges
    LATITUDE = "latitude"  # parallel labels along the left/right edges


@dataclass(frozen=True)
class GeoPoint:
    """An observation in geographic coordinates (decimal degrees)."""

    id: Hashable
    lon: float
    lat: float


@dataclass(frozen=True)
class ProjectedPoint:
    """A GeoPoint after projection, in planar units (metres for Robinson)."""

    id: Hashable
    x: float
    y: float


@dataclass(frozen=True)
class GraticuleLabel:
    """
    A tick label placed at a graticule line.

    Attributes
    ----------
    axis : LabelAxis
        LONGITUDE for labels showing a meridian value, LATITUDE for labels
        showing a parallel value
    value : float
        Graticule degree value the label shows
    lon, lat : float
        Geographic anchor of the label
    text : str
        Rendered label text
    x, y : float, optional
        Planar position, filled in once the label is projected
    """

    axis: LabelAxis
    value: float
    lon: float
    lat: float
    text: str
    x: Optional[float] = None
    y: Optional[float] = None

    @property
    def is_projected(self) -> bool:
        return self.x is not None and self.y is not None


@dataclass(frozen=True)
class NudgeOffset:
    """Planar label nudge magnitudes (projected units, not degrees)."""

    x: float
    y: float
