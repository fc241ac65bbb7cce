"""
Helper Functions and Utilities

This module provides common utility functions used throughout the GloMap
package: logging configuration, output path handling and small formatting
helpers.

Example Usage:
    >>> from glomap.utils import setup_logging, safe_file_path
    >>> logger = setup_logging(log_level="DEBUG", log_file="map.log")
    >>> path = safe_file_path("Output", "Global map draft", ".pdf")
    >>> print(path)
    Output/Global_map_draft.pdf
"""

from typing import Optional, Union
from pathlib import Path
import logging
import re
import sys
from datetime import datetime

logger = logging.getLogger(__name__)

CM_PER_INCH = 2.54


# ============================================================================
# Logging Configuration
# ============================================================================

def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    format_string: Optional[str] = None,
) -> logging.Logger:
    """
    Configure logging for GloMap.

    Sets up the package logger with console output and an optional log file.

    Parameters
    ----------
    log_level : str, optional
        Logging level: DEBUG, INFO, WARNING, ERROR, or CRITICAL (default: INFO)
    log_file : str, optional
        Path to log file. If None, logs only to console (default: None)
    format_string : str, optional
        Custom format string for log messages

    Returns
    -------
    logging.Logger
        Configured package logger

    Notes
    -----
    The default format includes timestamp, level, and message:
    [2025-11-03 10:30:45] INFO: Projected 1200 points
    """
    package_logger = logging.getLogger("glomap")
    package_logger.setLevel(getattr(logging, log_level.upper()))

    # Remove existing handlers to avoid duplicates
    package_logger.handlers.clear()

    if format_string is None:
        format_string = "[%(asctime)s] %(levelname)s: %(message)s"

    formatter = logging.Formatter(format_string, datefmt="%Y-%m-%d %H:%M:%S")

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, log_level.upper()))
    console_handler.setFormatter(formatter)
    package_logger.addHandler(console_handler)

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.setLevel(getattr(logging, log_level.upper()))
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)

        package_logger.info(f"Logging to file: {log_file}")

    return package_logger


# ============================================================================
# File I/O and Path Handling
# ============================================================================

def create_output_directory(output_dir: Union[str, Path]) -> Path:
    """
    Create output directory if it doesn't exist.

    Raises
    ------
    OSError
        If the directory cannot be created
    """
    path = Path(output_dir)

    try:
        path.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Created/verified output directory: {path}")
        return path
    except OSError as e:
        logger.error(f"Failed to create directory {path}: {e}")
        raise


def sanitize_filename(filename: str) -> str:
    """
    Sanitize filename for cross-platform compatibility.

    Examples
    --------
    >>> sanitize_filename("Global map: draft/11")
    'Global_map_draft_11'
    """
    safe = re.sub(r'[<>:"/\\|?*]', '_', filename.strip())
    safe = re.sub(r'\s+', '_', safe)
    safe = re.sub(r'_+', '_', safe)
    return safe.strip('_.') or "output"


def safe_file_path(
    base_dir: Union[str, Path],
    filename: str,
    extension: Optional[str] = None
) -> Path:
    """
    Create a sanitized file path inside ``base_dir``, creating the directory.

    Parameters
    ----------
    base_dir : Union[str, Path]
        Base directory
    filename : str
        Filename (will be sanitized)
    extension : str, optional
        File extension (with or without leading dot)
    """
    base = create_output_directory(base_dir)
    safe_name = sanitize_filename(filename)

    if extension:
        if not extension.startswith('.'):
            extension = '.' + extension
        safe_name += extension

    return base / safe_name


# ============================================================================
# Formatting Helpers
# ============================================================================

def cm_to_inches(value_cm: float) -> float:
    """Convert centimetres to inches (matplotlib figure units)."""
    return value_cm / CM_PER_INCH


def format_elapsed_time(seconds: float) -> str:
    """
    Format elapsed time in human-readable format.

    Examples
    --------
    >>> format_elapsed_time(45)
    '45.0s'
    >>> format_elapsed_time(125)
    '2m 5s'
    """
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    if minutes < 60:
        return f"{minutes}m {secs}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m"


def format_file_size(size_bytes: int) -> str:
    """
    Format file size in human-readable format.

    Examples
    --------
    >>> format_file_size(1536)
    '1.5 KB'
    """
    size = float(size_bytes)
    for unit in ['B', 'KB', 'MB', 'GB']:
        if size < 1024.0:
            return f"{size:.1f} {unit}"
        size /= 1024.0
    return f"{size:.1f} TB"


def get_timestamp() -> str:
    """Get current timestamp as an ISO 8601 string (seconds precision)."""
    return datetime.now().isoformat(timespec="seconds")
