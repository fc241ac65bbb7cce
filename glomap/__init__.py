"""
GloMap: Global Study-Site Maps in the Robinson Projection

GloMap draws the global distribution of study sites on a Robinson map with
country outlines, a 20° x 10° graticule and degree labels placed around the
map edge.

Core functionality includes:
- Reading and validating site coordinates from delimited tables
- Forward and inverse Robinson projection of sites and basemap layers
- Graticule label correction: a longitude shift for labels on the curved
  top and bottom edges, and an outward nudge away from the map outline
- Publication figures (PDF, PNG) and an interactive HTML map of the sites
"""

__version__ = "0.1.0"

# Import main modules for easy access
from . import models
from . import config
from . import projection
from . import graticule
from . import metadata
from . import basemap
from . import visualization
from . import utils

__all__ = [
    "models",
    "config",
    "projection",
    "graticule",
    "metadata",
    "basemap",
    "visualization",
    "utils",
]
