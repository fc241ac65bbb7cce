"""
Tests for map rendering and export.

Figures are rendered with the Agg backend at a low resolution.
"""

import matplotlib.pyplot as plt
import pandas as pd
import pytest
from matplotlib.collections import PathCollection
from matplotlib.figure import Figure

from glomap.basemap import load_basemap
from glomap.config import VisualizationConfig
from glomap.projection import Projector, project_dataframe
from glomap.visualization import (
    export_map,
    plot_global_map,
    save_figure,
    write_interactive_map,
)


@pytest.fixture
def robinson():
    return Projector("+proj=robin")


@pytest.fixture
def map_basemap(offline_config, robinson):
    return load_basemap(offline_config, robinson)


@pytest.fixture
def sites_df(robinson):
    df = pd.DataFrame({
        "unique_number": ["1", "2", "3"],
        "lon": [10.5, -70.1, 151.2],
        "lat": [45.2, -33.4, -33.9],
    })
    return project_dataframe(df, robinson)


@pytest.fixture
def small_viz():
    return VisualizationConfig(dpi=100)


class TestPlotGlobalMap:

    def test_returns_figure_with_physical_size(self, sites_df, map_basemap, small_viz):
        fig = plot_global_map(sites_df, map_basemap, small_viz)
        try:
            assert isinstance(fig, Figure)
            width, height = fig.get_size_inches()
            assert width == pytest.approx(14 / 2.54)
            assert height == pytest.approx(7 / 2.54)
        finally:
            plt.close(fig)

    def test_layers_and_labels(self, sites_df, map_basemap, small_viz):
        fig = plot_global_map(sites_df, map_basemap, small_viz)
        try:
            ax = fig.axes[0]
            texts = [t.get_text() for t in ax.texts]
            assert len(texts) == 68
            assert "160°E" in texts and "80°S" in texts

            sites = [c for c in ax.collections if c.get_zorder() == 5]
            assert len(sites) == 1
            assert isinstance(sites[0], PathCollection)
            assert len(sites[0].get_offsets()) == 3

            assert not ax.axison
            assert ax.get_aspect() in ("equal", 1.0)
        finally:
            plt.close(fig)

    def test_extent_includes_nudged_labels(self, sites_df, map_basemap, small_viz):
        fig = plot_global_map(sites_df, map_basemap, small_viz)
        try:
            ax = fig.axes[0]
            xmin, xmax = ax.get_xlim()
            ymin, ymax = ax.get_ylim()
            for lab in map_basemap.labels:
                assert xmin <= lab.x <= xmax
                assert ymin <= lab.y <= ymax
        finally:
            plt.close(fig)

    def test_no_sites_draws_basemap_only(self, map_basemap, small_viz):
        empty = pd.DataFrame({"X_prj": pd.Series(dtype=float), "Y_prj": pd.Series(dtype=float)})
        fig = plot_global_map(empty, map_basemap, small_viz)
        try:
            assert len(fig.axes[0].texts) == 68
        finally:
            plt.close(fig)

    def test_missing_columns(self, map_basemap):
        with pytest.raises(ValueError, match="X_prj"):
            plot_global_map(pd.DataFrame({"lon": [1.0]}), map_basemap)


class TestExport:

    def test_export_writes_pdf_and_png(self, sites_df, map_basemap, small_viz, tmp_path):
        fig = plot_global_map(sites_df, map_basemap, small_viz)
        written = export_map(fig, tmp_path, "Global_map", small_viz)

        assert set(written) == {"pdf", "png"}
        assert written["pdf"].read_bytes().startswith(b"%PDF")
        assert written["png"].read_bytes()[:8] == b"\x89PNG\r\n\x1a\n"
        # Figure is closed after export
        assert not plt.fignum_exists(fig.number)

    def test_png_pixel_size_follows_dpi(self, sites_df, map_basemap, small_viz, tmp_path):
        fig = plot_global_map(sites_df, map_basemap, small_viz)
        try:
            path = save_figure(fig, tmp_path / "map.png", 14, 7, dpi=100)
        finally:
            plt.close(fig)

        image = plt.imread(path)
        height, width = image.shape[:2]
        assert width == pytest.approx(14 / 2.54 * 100, abs=1)
        assert height == pytest.approx(7 / 2.54 * 100, abs=1)


class TestInteractiveMap:

    def test_writes_html_with_markers(self, sites_df, tmp_path):
        path = write_interactive_map(sites_df, tmp_path / "map.html")
        html = path.read_text(encoding="utf-8")

        assert path.exists()
        assert html.count("L.circleMarker") == 3
        assert "151.2" in html

    def test_missing_column(self, sites_df, tmp_path):
        with pytest.raises(ValueError, match="site_id"):
            write_interactive_map(sites_df, tmp_path / "map.html", id_col="site_id")
