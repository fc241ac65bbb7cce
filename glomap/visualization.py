"""
Map Rendering and Export

This module composes the static world map from the projected basemap and
study sites, and writes it out.

Figure Layers (bottom to top):
1. Graticule lines (dotted, grey)
2. Countries (light grey fill, grey border)
3. Graticule labels, latitude and longitude
4. Bounding box outline (black, no fill)
5. Study sites (hollow black circles, half transparent)

One planar unit on the x-axis has the same length as one on the y-axis, and
the axes, background and default grid are hidden.

Output:
- Vector document (PDF) and raster image (PNG) at a physical size given in
  centimetres (default 14 x 7 cm) and a resolution given in dpi
  (default 1000)
- Interactive single-page HTML map of the unprojected sites (folium)

Example Usage:
    >>> from glomap.visualization import plot_global_map, save_figure
    >>> fig = plot_global_map(points_df, basemap, config.visualization)
    >>> save_figure(fig, "Output/Global_map.png", 14, 7, dpi=1000)
"""

from typing import Dict, List, Optional, Union
from pathlib import Path
import logging

import pandas as pd
from matplotlib.figure import Figure
import matplotlib.pyplot as plt
import folium

from .basemap import Basemap
from .config import VisualizationConfig
from .utils import cm_to_inches

logger = logging.getLogger(__name__)

# Fraction of the map extent kept free around the outline and labels
MAP_PADDING = 0.01


def _map_extent(basemap: Basemap) -> List[float]:
    """Return [xmin, xmax, ymin, ymax] covering the outline and every label."""
    xmin, ymin, xmax, ymax = basemap.box.total_bounds
    xs = [lab.x for lab in basemap.labels if lab.x is not None]
    ys = [lab.y for lab in basemap.labels if lab.y is not None]
    if xs:
        xmin, xmax = min(xmin, min(xs)), max(xmax, max(xs))
    if ys:
        ymin, ymax = min(ymin, min(ys)), max(ymax, max(ys))
    pad_x = (xmax - xmin) * MAP_PADDING
    pad_y = (ymax - ymin) * MAP_PADDING
    return [xmin - pad_x, xmax + pad_x, ymin - pad_y, ymax + pad_y]


def plot_global_map(
    points_df: pd.DataFrame,
    basemap: Basemap,
    viz: Optional[VisualizationConfig] = None,
    x_col: str = "X_prj",
    y_col: str = "Y_prj",
) -> Figure:
    """
    Build the layered world map.

    Parameters
    ----------
    points_df : pd.DataFrame
        Study sites with projected coordinate columns
    basemap : Basemap
        Projected reference layers and corrected labels
    viz : VisualizationConfig, optional
        Styling and figure size (default: VisualizationConfig())
    x_col, y_col : str
        Projected coordinate columns in ``points_df``

    Returns
    -------
    Figure
        The composed figure; the caller saves and closes it
    """
    if viz is None:
        viz = VisualizationConfig()

    for c in (x_col, y_col):
        if c not in points_df.columns:
            raise ValueError(f"Column '{c}' not found in dataframe")

    points = points_df.dropna(subset=[x_col, y_col])
    if points.empty:
        logger.warning("No study sites to plot; drawing the basemap only.")

    with plt.rc_context({"font.family": viz.font_family, "font.size": viz.font_size}):
        fig, ax = plt.subplots(
            figsize=(cm_to_inches(viz.width_cm), cm_to_inches(viz.height_cm))
        )
        fig.subplots_adjust(left=0, right=1, bottom=0, top=1)

        basemap.graticules.plot(
            ax=ax,
            color=viz.graticule_color,
            linestyle=":",
            linewidth=viz.graticule_linewidth,
            zorder=1,
        )
        basemap.countries.plot(
            ax=ax,
            facecolor=viz.country_fill_color,
            edgecolor=viz.country_edge_color,
            linewidth=viz.country_linewidth,
            zorder=2,
        )
        for lab in basemap.labels:
            ax.text(
                lab.x, lab.y, lab.text,
                color=viz.label_color,
                fontsize=viz.label_font_size,
                ha="center", va="center",
                zorder=3,
            )
        basemap.box.boundary.plot(
            ax=ax,
            color=viz.box_color,
            linewidth=viz.box_linewidth,
            zorder=4,
        )
        if not points.empty:
            ax.scatter(
                points[x_col], points[y_col],
                s=viz.point_size,
                facecolors="none",
                edgecolors=viz.point_color,
                linewidths=0.3,
                alpha=viz.point_alpha,
                zorder=5,
            )

        xmin, xmax, ymin, ymax = _map_extent(basemap)
        ax.set_xlim(xmin, xmax)
        ax.set_ylim(ymin, ymax)
        ax.set_aspect("equal")
        ax.set_axis_off()

    logger.info(
        f"Composed map with {len(points)} sites, {len(basemap.countries)} "
        f"countries and {len(basemap.labels)} graticule labels"
    )
    return fig


def save_figure(
    fig: Figure,
    output_path: Union[str, Path],
    width_cm: Optional[float] = None,
    height_cm: Optional[float] = None,
    dpi: int = 300,
) -> Path:
    """
    Save a figure at a physical size.

    PNG output is rasterised at ``dpi``; PDF and SVG are vector. The figure
    is not cropped, so the page matches the requested size exactly.
    """
    out = Path(output_path)
    out.parent.mkdir(parents=True, exist_ok=True)

    if width_cm is not None and height_cm is not None:
        fig.set_size_inches(cm_to_inches(width_cm), cm_to_inches(height_cm))

    if out.suffix.lower() == ".png":
        fig.savefig(out, dpi=dpi)
    else:
        fig.savefig(out)

    logger.info(f"Saved figure: {out}")
    return out


def export_map(
    fig: Figure,
    output_dir: Union[str, Path],
    basename: str,
    viz: Optional[VisualizationConfig] = None,
) -> Dict[str, Path]:
    """
    Save the map in every configured static format and close the figure.

    Returns
    -------
    Dict[str, Path]
        Format -> written file
    """
    if viz is None:
        viz = VisualizationConfig()

    written = {}
    try:
        for fmt in viz.figure_format:
            path = Path(output_dir) / f"{basename}.{fmt.lower()}"
            written[fmt.lower()] = save_figure(
                fig, path, viz.width_cm, viz.height_cm, dpi=viz.dpi
            )
    finally:
        plt.close(fig)
    return written


def write_interactive_map(
    points_df: pd.DataFrame,
    output_path: Union[str, Path],
    id_col: str = "unique_number",
    lon_col: str = "lon",
    lat_col: str = "lat",
    color: str = "black",
) -> Path:
    """
    Write a single-page interactive map of the study sites.

    Uses geographic coordinates on a web basemap, one circle marker per site
    with its identifier as popup; useful to spot misplaced sites.
    """
    out = Path(output_path)
    out.parent.mkdir(parents=True, exist_ok=True)

    for c in (id_col, lon_col, lat_col):
        if c not in points_df.columns:
            raise ValueError(f"Column '{c}' not found in dataframe")

    d = points_df.dropna(subset=[lon_col, lat_col])
    fmap = folium.Map(location=[20, 0], zoom_start=2, tiles="OpenStreetMap")

    for pid, lon, lat in zip(d[id_col], d[lon_col], d[lat_col]):
        folium.CircleMarker(
            location=[float(lat), float(lon)],
            radius=4,
            popup=str(pid),
            color=color,
            weight=1,
            fill=True,
            fill_opacity=0.5,
        ).add_to(fmap)

    if not d.empty:
        fmap.fit_bounds([
            [float(d[lat_col].min()), float(d[lon_col].min())],
            [float(d[lat_col].max()), float(d[lon_col].max())],
        ])

    fmap.save(str(out))
    logger.info(f"Saved interactive map with {len(d)} sites: {out}")
    return out
