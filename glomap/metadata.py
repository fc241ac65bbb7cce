"""
Observation Table Parsing and Coordinate Validation

This module reads the study-site table and turns it into validated
geographic points ready for projection.

Key Responsibilities:
1. Read the tabular source with every column as text, keeping only the
   identifier, longitude and latitude columns
2. Treat the usual missing-value tokens ("NA", "N/A", "null", empty string)
   as missing; malformed numbers also become missing, never 0
3. Validate coordinate ranges (-180 <= lon <= 180, -90 <= lat <= 90) and
   reject the table before any projection is attempted; values are never
   clamped
4. Drop rows without coordinates (with a warning) or reject them, depending
   on configuration

Example Usage:
    >>> from glomap.metadata import load_geo_points
    >>> points, df = load_geo_points(
    ...     "GloPL_with_id_updated_ES.csv",
    ...     id_col="unique_number",
    ...     lon_col="Longitude",
    ...     lat_col="Latitude",
    ... )
    >>> len(points) == len(df)
    True
"""

from typing import List, Optional, Sequence, Tuple, Union
from pathlib import Path
import logging

import pandas as pd

from .models import GeoPoint

logger = logging.getLogger(__name__)

NA_TOKENS = ("NA", "N/A", "null", "")

LON_RANGE = (-180.0, 180.0)
LAT_RANGE = (-90.0, 90.0)


class ValidationError(ValueError):
    """Raised when input coordinates are missing or outside their valid range."""
    pass


def read_observations(
    path: Union[str, Path],
    id_col: str = "unique_number",
    lon_col: str = "Longitude",
    lat_col: str = "Latitude",
    sep: str = ",",
    na_values: Sequence[str] = NA_TOKENS,
    encoding: str = "utf-8",
) -> pd.DataFrame:
    """
    Read the observation table, keeping only identifier and coordinate columns.

    Parameters
    ----------
    path : Union[str, Path]
        Path to the delimited text file
    id_col, lon_col, lat_col : str
        Names of the identifier, longitude and latitude columns
    sep : str
        Field delimiter (default: ",")
    na_values : Sequence[str]
        Tokens read as missing values
    encoding : str
        File encoding (default: 'utf-8', falls back to 'latin-1')

    Returns
    -------
    pd.DataFrame
        Table with the three requested columns, all as strings

    Raises
    ------
    FileNotFoundError
        If the file does not exist
    ValueError
        If any requested column is missing
    pd.errors.EmptyDataError
        If the file has no rows
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Observation table not found: {path}")

    logger.info(f"Reading observation table: {path}")

    columns = [id_col, lon_col, lat_col]
    read_kwargs = dict(
        sep=sep,
        dtype=str,
        na_values=list(na_values),
        keep_default_na=False,
    )
    try:
        df = pd.read_csv(path, encoding=encoding, **read_kwargs)
    except UnicodeDecodeError:
        logger.warning("UTF-8 encoding failed, trying latin-1")
        df = pd.read_csv(path, encoding="latin-1", **read_kwargs)

    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise ValueError(
            f"Observation table is missing required columns: {missing}. "
            f"Available columns: {sorted(df.columns.tolist())[:20]}"
        )

    if df.empty:
        raise pd.errors.EmptyDataError(f"Observation table has no rows: {path}")

    df = df[columns].copy()
    logger.info(f"Read {len(df)} observations")
    return df


def parse_coordinates(
    df: pd.DataFrame,
    lon_col: str = "Longitude",
    lat_col: str = "Latitude",
    out_lon_col: str = "lon",
    out_lat_col: str = "lat",
) -> pd.DataFrame:
    """
    Convert text coordinate columns to numeric ``lon``/``lat`` columns.

    Values that are not numbers become NaN. Returns a copy of ``df``.
    """
    for col in (lon_col, lat_col):
        if col not in df.columns:
            raise ValueError(f"Column '{col}' not found in DataFrame")

    df_copy = df.copy()
    for src, out in ((lon_col, out_lon_col), (lat_col, out_lat_col)):
        raw = df[src]
        parsed = pd.to_numeric(raw, errors="coerce")

        # Values present in the source that failed to parse
        malformed = raw.notna() & parsed.isna()
        if malformed.any():
            examples = raw[malformed].head(5).tolist()
            logger.warning(
                f"{int(malformed.sum())} malformed value(s) in '{src}' treated "
                f"as missing. Examples: {examples}"
            )
        df_copy[out] = parsed

    n_complete = df_copy[[out_lon_col, out_lat_col]].notna().all(axis=1).sum()
    logger.info(f"Parsed coordinates: {n_complete}/{len(df_copy)} rows complete")
    return df_copy


def drop_missing_coordinates(
    df: pd.DataFrame,
    id_col: str = "unique_number",
    lon_col: str = "lon",
    lat_col: str = "lat",
    drop: bool = True,
) -> pd.DataFrame:
    """
    Remove rows without a complete coordinate pair.

    Parameters
    ----------
    drop : bool
        If True, drop incomplete rows with a warning. If False, raise.

    Raises
    ------
    ValidationError
        If ``drop`` is False and any row has a missing coordinate
    """
    incomplete = df[[lon_col, lat_col]].isna().any(axis=1)
    if not incomplete.any():
        return df.copy()

    ids = df.loc[incomplete, id_col].head(10).tolist() if id_col in df.columns else []
    n_missing = int(incomplete.sum())
    if not drop:
        raise ValidationError(
            f"{n_missing} observation(s) have missing coordinates. Examples: {ids}"
        )

    logger.warning(
        f"Dropping {n_missing} observation(s) with missing coordinates. "
        f"Examples: {ids}"
    )
    return df.loc[~incomplete].copy()


def validate_coordinate_ranges(
    df: pd.DataFrame,
    id_col: str = "unique_number",
    lon_col: str = "lon",
    lat_col: str = "lat",
) -> bool:
    """
    Check every present coordinate lies within its valid range.

    Missing values are ignored here; see ``drop_missing_coordinates``.

    Returns
    -------
    bool
        True if all coordinates are in range

    Raises
    ------
    ValidationError
        Listing the offending identifiers if any coordinate is out of range
    """
    lon = df[lon_col]
    lat = df[lat_col]
    bad_lon = lon.notna() & ~lon.between(*LON_RANGE)
    bad_lat = lat.notna() & ~lat.between(*LAT_RANGE)

    problems = []
    if bad_lon.any():
        ids = df.loc[bad_lon, id_col].head(10).tolist() if id_col in df.columns else []
        problems.append(
            f"{int(bad_lon.sum())} longitude(s) outside {list(LON_RANGE)} "
            f"(ids: {ids}, range seen: [{lon.min()}, {lon.max()}])"
        )
    if bad_lat.any():
        ids = df.loc[bad_lat, id_col].head(10).tolist() if id_col in df.columns else []
        problems.append(
            f"{int(bad_lat.sum())} latitude(s) outside {list(LAT_RANGE)} "
            f"(ids: {ids}, range seen: [{lat.min()}, {lat.max()}])"
        )

    if problems:
        for problem in problems:
            logger.error(problem)
        raise ValidationError("Invalid coordinates: " + "; ".join(problems))

    logger.debug("All coordinates within expected ranges")
    return True


def to_geo_points(
    df: pd.DataFrame,
    id_col: str = "unique_number",
    lon_col: str = "lon",
    lat_col: str = "lat",
) -> List[GeoPoint]:
    """Convert a validated table to GeoPoints, in row order."""
    return [
        GeoPoint(id=pid, lon=float(lon), lat=float(lat))
        for pid, lon, lat in zip(df[id_col], df[lon_col], df[lat_col])
    ]


def load_geo_points(
    path: Union[str, Path],
    id_col: str = "unique_number",
    lon_col: str = "Longitude",
    lat_col: str = "Latitude",
    sep: str = ",",
    na_values: Optional[Sequence[str]] = None,
    drop_missing: bool = True,
) -> Tuple[List[GeoPoint], pd.DataFrame]:
    """
    Read, parse and validate the observation table.

    Returns
    -------
    Tuple[List[GeoPoint], pd.DataFrame]
        Validated points and the cleaned table (with numeric lon/lat columns)

    Raises
    ------
    ValidationError
        If coordinates are out of range, or missing with ``drop_missing=False``
    """
    df = read_observations(
        path, id_col=id_col, lon_col=lon_col, lat_col=lat_col, sep=sep,
        na_values=NA_TOKENS if na_values is None else na_values,
    )
    df = parse_coordinates(df, lon_col=lon_col, lat_col=lat_col)
    df = drop_missing_coordinates(df, id_col=id_col, drop=drop_missing)
    validate_coordinate_ranges(df, id_col=id_col)
    df = df.reset_index(drop=True)
    return to_geo_points(df, id_col=id_col), df
