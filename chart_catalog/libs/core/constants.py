"""
Constants Module

Centralized constants for the Chart Catalog library to eliminate magic strings
and improve maintainability.
"""

from enum import Enum, IntEnum


class BaseStrEnum(str, Enum):
    """Base enum class that inherits from str"""

    def __str__(self) -> str:
        """Return the enum value as string"""
        return self.value

    def __repr__(self) -> str:
        """Return a detailed representation of the enum"""
        return f"{self.__class__.__name__}.{self.name}"


class RepositoryConstants:
    """Chart repository constants"""

    INDEX_FILE_NAME = "index.yaml"
    CACHE_FILE_PREFIX = "chart-index-"
    CACHE_FILE_SUFFIX = ".yaml"

    # Maximum accepted size of an index loaded from disk (50 MiB)
    MAX_INDEX_SIZE = 50 * 1024 * 1024

    # Constraint meaning "latest stable version"
    LATEST_STABLE = "*"

    # Index annotation carrying the chart category
    CATEGORY_ANNOTATION = "category"

    class CacheEvent(BaseStrEnum):
        """Shared index cache metric events"""
        HIT = "cache_hit"
        MISS = "cache_miss"

    class IndexField(BaseStrEnum):
        """Field names used in a repository index document"""
        API_VERSION = "apiVersion"
        GENERATED = "generated"
        ENTRIES = "entries"
        VERSION = "version"
        APP_VERSION = "appVersion"
        CREATED = "created"
        DIGEST = "digest"
        URLS = "urls"
        DEPRECATED = "deprecated"


class SummaryConstants:
    """Default caps used by the version summary"""

    MAJOR_VERSIONS_IN_SUMMARY = 3
    MINOR_VERSIONS_IN_SUMMARY = 3
    PATCH_VERSIONS_IN_SUMMARY = 3


class CatalogConstants:
    """Persistent catalog store constants"""

    # Sentinel namespace value that disables namespace filtering
    ALL_NAMESPACES = "_all"

    # Characters accepted in version and app version filters
    ALLOWED_VERSION_CHARS = (
        "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789+-."
    )

    DEFAULT_SYNC_WORKERS = 10

    class Table(BaseStrEnum):
        """Database table names"""
        CHARTS = "charts"
        CHART_FILES = "files"

    class ChartFile(BaseStrEnum):
        """Files extracted from a chart archive, keyed by lowercase name"""
        README = "readme.md"
        VALUES = "values.yaml"
        SCHEMA = "values.schema.json"

        @classmethod
        def get_all_files(cls) -> list:
            """Get all extracted file names"""
            return [cls.README, cls.VALUES, cls.SCHEMA]


class KubernetesConstants:
    """Kubernetes-related constants used by namespace filtering"""

    CORE_API_GROUP = ""
    ACTIVE_PHASE = "Active"

    # Namespace access is checked by the ability to read secrets
    ACCESS_REVIEW_RESOURCE = "secrets"
    ACCESS_REVIEW_VERB = "get"

    DEFAULT_MAX_WORKERS = 50


class NetworkConstants:
    """Network-related constants with improved enum-based structure"""

    DEFAULT_TIMEOUT = 30

    USER_AGENT = "chart-catalog/1.0"

    class HTTPStatus(IntEnum):
        """HTTP status codes used by the Chart Catalog library"""
        OK = 200
        UNAUTHORIZED = 401
        FORBIDDEN = 403
        NOT_FOUND = 404
        INTERNAL_SERVER_ERROR = 500

        def __str__(self) -> str:
            """Return a human-readable description of the status code"""
            descriptions = {
                200: "OK",
                401: "Unauthorized",
                403: "Forbidden",
                404: "Not Found",
                500: "Internal Server Error"
            }
            return f"{self.value} {descriptions.get(self.value, 'Unknown')}"

    class HTTPHeader(BaseStrEnum):
        """Standard HTTP header names"""
        AUTHORIZATION = "Authorization"
        CONTENT_TYPE = "Content-Type"
        USER_AGENT = "User-Agent"
        ACCEPT_ENCODING = "Accept-Encoding"


class ErrorMessages:
    """Centralized error message templates"""

    class RepositoryError(BaseStrEnum):
        """Repository error message templates"""
        NO_INDEX = "no chart index"
        NO_CHART = "no chart name found"
        NO_VERSIONS = "no chart version found"
        NO_MATCH = "no '{name}' chart with version matching '{constraint}' found"
        NO_URLS = "chart '{name}' has no downloadable URLs"
        EMPTY_CACHE_KEY = "a non-empty key is required when a shared index cache is configured"
        NO_API_VERSION = "no API version specified"
        INDEX_TOO_LARGE = "size of index '{path}' exceeds '{limit}' bytes limit"

    class CatalogError(BaseStrEnum):
        """Catalog store error message templates"""
        CHART_NOT_FOUND = "chart '{chart_id}' not found in namespace '{namespace}'"
        FILES_NOT_FOUND = "chart files '{files_id}' not found in namespace '{namespace}'"
        VERSION_NOT_FOUND = "chart version '{version}' not found for '{chart_id}'"
        INVALID_VERSION = "invalid version"
        INVALID_APP_VERSION = "invalid app version"
