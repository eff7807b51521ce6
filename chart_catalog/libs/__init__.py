"""
Chart Catalog Library

Chart repository index loading, version resolution and a persistent chart catalog.
"""

__version__ = "1.0.0"

# Core libraries
from .core import (
    ConfigManager,
    ChartCatalogError, ConfigurationError, ValidationError, ParseError, FetchError,
    RepositoryError, NotFoundError, VersionNotFoundError,
    Repo, PackageVersion, Chart, ChartFiles, ChartQuery
)

# Repository libraries
from .repository import (
    ChartRepository, IndexMemoryCache, RepositorySession,
    parse_index, charts_from_index, summarize_versions, VersionsInSummary
)

# Catalog libraries
from .catalog import PostgresAssetManager, FileImporter, get_accessible_namespaces

# Service
from .service import ChartCatalogService

__all__ = [
    # Core
    'ConfigManager',
    'ChartCatalogError',
    'ConfigurationError',
    'ValidationError',
    'ParseError',
    'FetchError',
    'RepositoryError',
    'NotFoundError',
    'VersionNotFoundError',
    'Repo',
    'PackageVersion',
    'Chart',
    'ChartFiles',
    'ChartQuery',
    # Repository
    'ChartRepository',
    'IndexMemoryCache',
    'RepositorySession',
    'parse_index',
    'charts_from_index',
    'summarize_versions',
    'VersionsInSummary',
    # Catalog
    'PostgresAssetManager',
    'FileImporter',
    'get_accessible_namespaces',
    # Service
    'ChartCatalogService',
]
