"""
Repository Libraries

Chart repository index loading, caching, version resolution and summaries.
"""

from .chart_repository import ChartRepository, resolve_chart_url
from .memcache import IndexMemoryCache, CacheFullError
from .parser import parse_index, charts_from_index, chart_from_versions, sort_versions
from .session import RepositorySession
from .summary import summarize_versions, VersionsInSummary, PackageAppVersion
from .tiers import SharedCacheTier, DiskCacheTier, RemoteTier, snapshot_from_bytes, index_url
from .versions import Constraint, parse_version, try_parse_version

__all__ = [
    'ChartRepository',
    'resolve_chart_url',
    'IndexMemoryCache',
    'CacheFullError',
    'parse_index',
    'charts_from_index',
    'chart_from_versions',
    'sort_versions',
    'RepositorySession',
    'summarize_versions',
    'VersionsInSummary',
    'PackageAppVersion',
    'SharedCacheTier',
    'DiskCacheTier',
    'RemoteTier',
    'snapshot_from_bytes',
    'index_url',
    'Constraint',
    'parse_version',
    'try_parse_version',
]
