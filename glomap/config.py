"""
Configuration Management for GloMap

This module provides the configuration system for the map pipeline using
frozen dataclasses. The configuration system supports:

1. Default values reproducing the published global map
2. Loading configuration from YAML/JSON files
3. Environment variable overrides
4. Validation on construction
5. Section-specific settings combined in one pipeline configuration

Configuration Structure:
- InputConfig: Observation table columns and missing-value handling
- ProjectionConfig: Source and target coordinate reference systems
- GraticuleConfig: Graticule spacing and label correction parameters
- BasemapConfig: Paths to the reference geometries
- VisualizationConfig: Figure size, resolution and layer styling
- PipelineConfig: Master configuration combining all sections

Example Usage:
    >>> from glomap.config import get_default_config, load_config_from_file
    >>>
    >>> config = get_default_config()
    >>> print(config.projection.projection)
    +proj=robin
    >>>
    >>> config = load_config_from_file("my_map.yaml")
    >>>
    >>> custom_config = config.update(
    ...     visualization__dpi=300,
    ...     graticule__nudge_lat=6.0,
    ... )
"""

from dataclasses import dataclass, field, fields, asdict, replace
from pathlib import Path
from typing import Optional, List, Dict, Any, Tuple, Union
import os
import json
import logging

import yaml

logger = logging.getLogger(__name__)


# ============================================================================
# Input Configuration
# ============================================================================

@dataclass(frozen=True)
class InputConfig:
    """
    Configuration for reading the observation table.

    Attributes
    ----------
    id_column : str
        Identifier column (default: "unique_number")
    lon_column : str
        Longitude column (default: "Longitude")
    lat_column : str
        Latitude column (default: "Latitude")
    delimiter : str
        Field delimiter (default: ",")
    na_values : List[str]
        Tokens read as missing values
    drop_missing_coordinates : bool
        Drop rows without coordinates with a warning (default: True).
        If False, such rows fail validation.
    """
    id_column: str = "unique_number"
    lon_column: str = "Longitude"
    lat_column: str = "Latitude"
    delimiter: str = ","
    na_values: List[str] = field(default_factory=lambda: ["NA", "N/A", "null", ""])
    drop_missing_coordinates: bool = True

    def __post_init__(self):
        """Validate configuration parameters."""
        columns = [self.id_column, self.lon_column, self.lat_column]
        if any(not c for c in columns):
            raise ValueError("id_column, lon_column and lat_column must be non-empty")
        if len(set(columns)) != 3:
            raise ValueError("id_column, lon_column and lat_column must be distinct")
        if not self.delimiter:
            raise ValueError("delimiter must be non-empty")


# ============================================================================
# Projection Configuration
# ============================================================================

@dataclass(frozen=True)
class ProjectionConfig:
    """
    Configuration for the coordinate transformation.

    Attributes
    ----------
    projection : str
        Target CRS (default: "+proj=robin", same as "ESRI:54030")
    source_crs : str
        CRS of the input coordinates (default: "EPSG:4326")
    """
    projection: str = "+proj=robin"
    source_crs: str = "EPSG:4326"

    def __post_init__(self):
        if not self.projection:
            raise ValueError("projection must be non-empty")
        if not self.source_crs:
            raise ValueError("source_crs must be non-empty")


# ============================================================================
# Graticule Configuration
# ============================================================================

@dataclass(frozen=True)
class GraticuleConfig:
    """
    Configuration for graticule lines and label correction.

    Attributes
    ----------
    lon_step : float
        Meridian spacing in degrees (default: 20)
    lat_step : float
        Parallel spacing in degrees (default: 10)
    longitude_shift : Tuple[float, ...]
        Shift magnitudes for meridians ``shift_start_lon`` down to 0
        (default: 10, 10, 9, 8, 8, 5, 2, 0, 0)
    shift_start_lon : float
        Outermost meridian covered by ``longitude_shift`` (default: 160)
    nudge_lon : float
        Longitude component of the projected label nudge, degrees (default: 10)
    nudge_lat : float
        Latitude component of the projected label nudge, degrees (default: 4)
    label_lat : float
        Latitude of the meridian labels on the top/bottom edges (default: 90)
    label_lon : float
        Longitude of the parallel labels on the left/right edges (default: 180)
    lat_label_max : float
        Highest labelled parallel (default: 80)
    densify_degrees : float
        Vertex spacing of generated lines, so they curve after projection

    Notes
    -----
    The shift sequence is mirrored for the western hemisphere and looked up
    by meridian value; it must have one entry per meridian from
    ``shift_start_lon`` down to 0 in steps of ``lon_step``.
    """
    lon_step: float = 20.0
    lat_step: float = 10.0
    longitude_shift: Tuple[float, ...] = (10, 10, 9, 8, 8, 5, 2, 0, 0)
    shift_start_lon: float = 160.0
    nudge_lon: float = 10.0
    nudge_lat: float = 4.0
    label_lat: float = 90.0
    label_lon: float = 180.0
    lat_label_max: float = 80.0
    densify_degrees: float = 1.0

    def __post_init__(self):
        """Validate configuration parameters."""
        if isinstance(self.longitude_shift, list):
            object.__setattr__(self, 'longitude_shift', tuple(self.longitude_shift))
        if not 0 < self.lon_step <= 180:
            raise ValueError("lon_step must be in (0, 180]")
        if not 0 < self.lat_step <= 90:
            raise ValueError("lat_step must be in (0, 90]")
        expected = int(round(self.shift_start_lon / self.lon_step)) + 1
        if len(self.longitude_shift) != expected:
            raise ValueError(
                f"longitude_shift needs {expected} entries for meridians "
                f"{self.shift_start_lon:g}..0 by {self.lon_step:g}, "
                f"got {len(self.longitude_shift)}"
            )
        if not 0 <= self.label_lat <= 90:
            raise ValueError("label_lat must be in [0, 90]")
        if not 0 <= self.label_lon <= 180:
            raise ValueError("label_lon must be in [0, 180]")
        if not 0 <= self.lat_label_max <= 90:
            raise ValueError("lat_label_max must be in [0, 90]")
        if self.densify_degrees <= 0:
            raise ValueError("densify_degrees must be positive")


# ============================================================================
# Basemap Configuration
# ============================================================================

@dataclass(frozen=True)
class BasemapConfig:
    """
    Configuration for the reference geometries.

    Any path left as None falls back to a built-in source: Natural Earth
    countries through cartopy, and generated graticule lines, outline and
    labels.

    Attributes
    ----------
    countries_path : Optional[Path]
        Country polygons (shapefile, GeoPackage, GeoJSON)
    graticules_path : Optional[Path]
        Graticule lines
    box_path : Optional[Path]
        World outline polygon
    lon_labels_path : Optional[Path]
        CSV of meridian labels (lon, lat, lbl)
    lat_labels_path : Optional[Path]
        CSV of parallel labels (lon, lat, lbl)
    natural_earth_resolution : str
        Resolution of the fallback Natural Earth countries (default: "110m")
    """
    countries_path: Optional[Path] = None
    graticules_path: Optional[Path] = None
    box_path: Optional[Path] = None
    lon_labels_path: Optional[Path] = None
    lat_labels_path: Optional[Path] = None
    natural_earth_resolution: str = "110m"

    def __post_init__(self):
        for name in PATH_FIELDS:
            value = getattr(self, name, None)
            if isinstance(value, str):
                object.__setattr__(self, name, Path(value))
        if self.natural_earth_resolution not in ["110m", "50m", "10m"]:
            raise ValueError("natural_earth_resolution must be '110m', '50m' or '10m'")


# ============================================================================
# Visualization Configuration
# ============================================================================

@dataclass(frozen=True)
class VisualizationConfig:
    """
    Configuration for the static map and the interactive map.

    Attributes
    ----------
    width_cm, height_cm : float
        Physical figure size (default: 14 x 7 cm)
    dpi : int
        Raster resolution (default: 1000)
    figure_format : List[str]
        Static output formats (default: ["pdf", "png"])
    write_html : bool
        Also write the interactive point map (default: True)
    graticule_color, country_edge_color, country_fill_color, label_color,
    box_color, point_color : str
        Layer colors
    graticule_linewidth, country_linewidth, box_linewidth : float
        Line widths in points
    label_font_size : float
        Graticule label size in points
    point_size : float
        Marker area in points^2
    point_alpha : float
        Marker opacity
    font_family : str
        Font family (default: "sans-serif")
    font_size : float
        Base font size (default: 8)
    """
    width_cm: float = 14.0
    height_cm: float = 7.0
    dpi: int = 1000
    figure_format: List[str] = field(default_factory=lambda: ["pdf", "png"])
    write_html: bool = True
    graticule_color: str = "#7f7f7f"    # grey50
    country_edge_color: str = "#999999"  # grey60
    country_fill_color: str = "#e5e5e5"  # gray90
    label_color: str = "#7f7f7f"
    box_color: str = "black"
    point_color: str = "black"
    graticule_linewidth: float = 0.3
    country_linewidth: float = 0.4
    box_linewidth: float = 0.4
    label_font_size: float = 2.8
    point_size: float = 2.0
    point_alpha: float = 0.5
    font_family: str = "sans-serif"
    font_size: float = 8.0

    def __post_init__(self):
        """Validate configuration parameters."""
        if self.width_cm <= 0 or self.height_cm <= 0:
            raise ValueError("width_cm and height_cm must be positive")
        if self.dpi < 72:
            raise ValueError("dpi must be at least 72")
        unknown = [f for f in self.figure_format if f.lower() not in ["pdf", "png", "svg"]]
        if unknown:
            raise ValueError(f"Unsupported figure_format entries: {unknown}")
        if not 0 <= self.point_alpha <= 1:
            raise ValueError("point_alpha must be between 0 and 1")
        if self.font_size < 1 or self.label_font_size <= 0:
            raise ValueError("font sizes must be positive")
        if self.dpi > 1200:
            logger.warning(
                f"dpi ({self.dpi}) is very high; PNG export may be slow and large."
            )


# ============================================================================
# Master Pipeline Configuration
# ============================================================================

@dataclass(frozen=True)
class PipelineConfig:
    """
    Master configuration for the map pipeline.

    Attributes
    ----------
    input : InputConfig
    projection : ProjectionConfig
    graticule : GraticuleConfig
    basemap : BasemapConfig
    visualization : VisualizationConfig
    log_level : str
        Logging level (default: "INFO")
    output_dir : Path
        Base output directory (default: "Output")
    basename : str
        Stem of the output files (default: "Global_map")
    overwrite_existing : bool
        Overwrite existing output files (default: True)
    """
    input: InputConfig = field(default_factory=InputConfig)
    projection: ProjectionConfig = field(default_factory=ProjectionConfig)
    graticule: GraticuleConfig = field(default_factory=GraticuleConfig)
    basemap: BasemapConfig = field(default_factory=BasemapConfig)
    visualization: VisualizationConfig = field(default_factory=VisualizationConfig)
    log_level: str = "INFO"
    output_dir: Path = field(default_factory=lambda: Path("Output"))
    basename: str = "Global_map"
    overwrite_existing: bool = True

    def __post_init__(self):
        """Validate and normalize configuration."""
        if isinstance(self.output_dir, str):
            object.__setattr__(self, 'output_dir', Path(self.output_dir))

        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")

        if not self.basename:
            raise ValueError("basename must be non-empty")

    def update(self, **kwargs) -> 'PipelineConfig':
        """
        Create a new configuration with updated values.

        Supports nested updates using double underscore notation:
        config.update(visualization__dpi=300)

        Parameters
        ----------
        **kwargs
            Configuration parameters to update

        Returns
        -------
        PipelineConfig
            New configuration object with updates
        """
        top_level = {}
        nested = {}

        for key, value in kwargs.items():
            if '__' in key:
                component, param = key.split('__', 1)
                nested.setdefault(component, {})[param] = value
            else:
                top_level[key] = value

        for component, updates in nested.items():
            current = getattr(self, component)
            top_level[component] = replace(current, **updates)

        return replace(self, **top_level)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to a nested dictionary."""
        return asdict(self)

    def to_yaml(self, output_path: Union[str, Path]) -> None:
        """Save configuration to a YAML file."""
        config_dict = _convert_paths_to_strings(self.to_dict())

        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w') as f:
            yaml.safe_dump(config_dict, f, default_flow_style=False, sort_keys=False)

        logger.info(f"Configuration saved to {path}")

    def to_json(self, output_path: Union[str, Path]) -> None:
        """Save configuration to a JSON file."""
        config_dict = _convert_paths_to_strings(self.to_dict())

        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w') as f:
            json.dump(config_dict, f, indent=2)

        logger.info(f"Configuration saved to {path}")


# ============================================================================
# Helper Functions
# ============================================================================

PATH_FIELDS = [
    'countries_path', 'graticules_path', 'box_path',
    'lon_labels_path', 'lat_labels_path', 'output_dir',
]

SECTIONS = {
    'input': InputConfig,
    'projection': ProjectionConfig,
    'graticule': GraticuleConfig,
    'basemap': BasemapConfig,
    'visualization': VisualizationConfig,
}


def get_default_config() -> PipelineConfig:
    """Get the default pipeline configuration."""
    return PipelineConfig()


def load_config_from_file(config_path: Union[str, Path]) -> PipelineConfig:
    """
    Load configuration from a YAML or JSON file.

    Raises
    ------
    FileNotFoundError
        If the configuration file doesn't exist
    ValueError
        If the file format is not supported
    """
    path = Path(config_path)

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    suffix = path.suffix.lower()
    with open(path, 'r') as f:
        if suffix in ['.yaml', '.yml']:
            config_dict = yaml.safe_load(f) or {}
        elif suffix == '.json':
            config_dict = json.load(f)
        else:
            raise ValueError(f"Unsupported config file format: {suffix}")

    logger.info(f"Loaded configuration from {path}")
    return _dict_to_config(config_dict)


def _dict_to_config(config_dict: Dict[str, Any]) -> PipelineConfig:
    """Convert a (possibly partial) nested dictionary to PipelineConfig."""
    config_dict = _convert_strings_to_paths(dict(config_dict))

    nested_configs = {}
    for name, cls in SECTIONS.items():
        if name in config_dict:
            nested_configs[name] = cls(**(config_dict.pop(name) or {}))

    return PipelineConfig(**nested_configs, **config_dict)


def _convert_paths_to_strings(obj: Any) -> Any:
    """Recursively convert Path objects and tuples for serialization."""
    if isinstance(obj, Path):
        return str(obj)
    elif isinstance(obj, dict):
        return {k: _convert_paths_to_strings(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [_convert_paths_to_strings(item) for item in obj]
    else:
        return obj


def _convert_strings_to_paths(obj: Any) -> Any:
    """Recursively convert known path fields back to Path objects."""
    if isinstance(obj, dict):
        result = {}
        for k, v in obj.items():
            if k in PATH_FIELDS and v is not None:
                result[k] = Path(v)
            else:
                result[k] = _convert_strings_to_paths(v)
        return result
    elif isinstance(obj, list):
        return [_convert_strings_to_paths(item) for item in obj]
    else:
        return obj


def load_config_from_env() -> Dict[str, Any]:
    """
    Load configuration overrides from environment variables.

    Variables are prefixed with GLOMAP_ and use double underscores for
    nesting, matching ``PipelineConfig.update``:

    GLOMAP_VISUALIZATION__DPI=300
    GLOMAP_LOG_LEVEL=DEBUG

    Text and path fields keep the raw string; other values are parsed as
    booleans or numbers where they look like one.

    Returns
    -------
    Dict[str, Any]
        Overrides suitable for ``PipelineConfig.update(**overrides)``
    """
    prefix = "GLOMAP_"
    overrides = {}

    for key, value in os.environ.items():
        if key.startswith(prefix):
            config_key = key[len(prefix):].lower()
            if _field_type(config_key) in (str, Path, Optional[Path]):
                overrides[config_key] = value
            else:
                overrides[config_key] = _parse_env_value(value)

    if overrides:
        logger.debug(f"Loaded {len(overrides)} configuration overrides from environment")

    return overrides


def _field_type(config_key: str) -> Any:
    """Declared type of the field a ``section__field`` key targets, or None."""
    section, _, name = config_key.rpartition('__')
    cls = SECTIONS.get(section) if section else PipelineConfig
    if cls is None:
        return None
    for f in fields(cls):
        if f.name == name:
            return f.type
    return None


def _parse_env_value(value: str) -> Any:
    """Parse environment variable value to appropriate type."""
    if value.lower() in ['true', 'yes']:
        return True
    if value.lower() in ['false', 'no']:
        return False

    try:
        return int(value)
    except ValueError:
        pass

    try:
        return float(value)
    except ValueError:
        pass

    return value


def validate_config(config: PipelineConfig) -> List[str]:
    """
    Validate configuration and return a list of warnings.

    Checks for missing reference files and unusual parameter values.
    """
    warnings = []

    for name in ['countries_path', 'graticules_path', 'box_path',
                 'lon_labels_path', 'lat_labels_path']:
        path = getattr(config.basemap, name)
        if path is not None and not path.exists():
            warnings.append(f"Basemap file not found ({name}): {path}")

    if config.basemap.countries_path is None:
        warnings.append(
            "No countries file configured; Natural Earth countries will be "
            "downloaded through cartopy on first use."
        )

    g = config.graticule
    if g.nudge_lon > 30 or g.nudge_lat > 15:
        warnings.append(
            f"Label nudge ({g.nudge_lon}, {g.nudge_lat}) degrees is large; "
            "labels may be pushed outside the figure."
        )

    v = config.visualization
    aspect = v.width_cm / v.height_cm
    if not 1.5 <= aspect <= 2.5:
        warnings.append(
            f"Figure aspect ratio {aspect:.2f} is far from the ~2:1 shape of "
            "a world map; large margins are likely."
        )

    if not config.visualization.figure_format and not config.visualization.write_html:
        warnings.append("No output formats configured; only the projected table will be written.")

    return warnings


def create_config_template(output_path: Union[str, Path], format: str = "yaml") -> None:
    """Write the default configuration to a YAML or JSON file."""
    config = get_default_config()

    if format.lower() == "yaml":
        config.to_yaml(output_path)
    elif format.lower() == "json":
        config.to_json(output_path)
    else:
        raise ValueError(f"Unsupported format: {format}")

    logger.info(f"Created configuration template: {output_path}")
