"""
Chart Catalog

Backend library for browsing Helm chart repositories.
"""

from .libs import *  # noqa: F401,F403
from .libs import __all__, __version__  # noqa: F401
