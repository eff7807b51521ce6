"""
Core Libraries

Shared models, configuration, constants, exceptions and utilities for the Chart Catalog library.
"""

from .config import ConfigManager
from .constants import (
    RepositoryConstants, SummaryConstants, CatalogConstants,
    KubernetesConstants, NetworkConstants, ErrorMessages
)
from .exceptions import (
    ChartCatalogError, ConfigurationError, ValidationError, ParseError, NetworkError, FetchError,
    RepositoryError, CacheKeyError, DownloadError, NoIndexError, NoChartError, NoVersionsError,
    NoMatchError, CatalogStoreError, NotFoundError, VersionNotFoundError
)
from .models import (
    Maintainer, Repo, PackageVersion, RepositoryIndex, IndexSnapshot,
    ChartVersion, Chart, ChartFiles, ChartCategory, ChartQuery
)
from .protocols import (
    IndexCacheProvider, IndexTier, HTTPProvider, AssetStoreProvider,
    AccessReviewProvider, NamespaceListProvider
)
from .utils import (
    setup_logging, mask_sensitive_info, format_bytes, escape_chart_name, make_chart_id,
    unescape_chart_id, split_chart_identifier, contains_only_allowed_chars, handle_api_error
)

__all__ = [
    # Main classes
    'ConfigManager',
    # Constants
    'RepositoryConstants',
    'SummaryConstants',
    'CatalogConstants',
    'KubernetesConstants',
    'NetworkConstants',
    'ErrorMessages',
    # Exceptions
    'ChartCatalogError',
    'ConfigurationError',
    'ValidationError',
    'ParseError',
    'NetworkError',
    'FetchError',
    'RepositoryError',
    'CacheKeyError',
    'DownloadError',
    'NoIndexError',
    'NoChartError',
    'NoVersionsError',
    'NoMatchError',
    'CatalogStoreError',
    'NotFoundError',
    'VersionNotFoundError',
    # Models
    'Maintainer',
    'Repo',
    'PackageVersion',
    'RepositoryIndex',
    'IndexSnapshot',
    'ChartVersion',
    'Chart',
    'ChartFiles',
    'ChartCategory',
    'ChartQuery',
    # Protocols
    'IndexCacheProvider',
    'IndexTier',
    'HTTPProvider',
    'AssetStoreProvider',
    'AccessReviewProvider',
    'NamespaceListProvider',
    # Utilities
    'setup_logging',
    'mask_sensitive_info',
    'format_bytes',
    'escape_chart_name',
    'make_chart_id',
    'unescape_chart_id',
    'split_chart_identifier',
    'contains_only_allowed_chars',
    'handle_api_error',
]
