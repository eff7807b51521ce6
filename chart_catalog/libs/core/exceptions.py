"""
Custom Exceptions

Defines custom exception classes for the Chart Catalog library.
"""


class ChartCatalogError(Exception):
    """Base exception class for Chart Catalog errors"""
    pass


class ConfigurationError(ChartCatalogError):
    """Raised when configuration is invalid or missing"""
    pass


class ValidationError(ChartCatalogError):
    """Raised when a caller-supplied value fails validation"""
    pass


class ParseError(ChartCatalogError):
    """Raised when an index document or version constraint cannot be parsed"""
    pass


class NetworkError(ChartCatalogError):
    """Raised when network operations fail"""
    pass


class FetchError(NetworkError):
    """Raised when a remote resource cannot be fetched"""
    pass


class RepositoryError(ChartCatalogError):
    """Raised when chart repository operations fail"""
    pass


class CacheKeyError(RepositoryError):
    """Raised when a shared cache is configured without a usable key"""
    pass


class DownloadError(RepositoryError):
    """Raised when a chart version cannot be downloaded"""
    pass


class NoIndexError(RepositoryError):
    """Raised when no repository index is loaded"""
    pass


class NoChartError(RepositoryError):
    """Raised when the requested chart is not in the index"""
    pass


class NoVersionsError(RepositoryError):
    """Raised when the requested chart has no versions"""
    pass


class NoMatchError(RepositoryError):
    """Raised when no chart version satisfies the requested constraint"""
    pass


class CatalogStoreError(ChartCatalogError):
    """Raised when persistent catalog store operations fail"""
    pass


class NotFoundError(CatalogStoreError):
    """Raised when a chart or chart files record cannot be found"""
    pass


class VersionNotFoundError(NotFoundError):
    """Raised when a chart exists but the requested version does not"""
    pass
