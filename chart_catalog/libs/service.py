"""
Chart Catalog Service

High-level service wiring configuration to the repository index, the version
resolver and summarizer, the catalog store and the file importer.
"""

import logging
import threading
from collections import Counter
from typing import Dict, List, Optional

from .catalog.importer import FileImporter
from .catalog.postgres import PostgresAssetManager
from .core.config import ConfigManager
from .core.constants import CatalogConstants, ErrorMessages, NetworkConstants, SummaryConstants
from .core.exceptions import ConfigurationError, NoChartError
from .core.models import Chart, ChartCategory, ChartFiles, ChartQuery, PackageVersion, Repo
from .core.protocols import HTTPProvider, IndexCacheProvider
from .core.utils import setup_logging
from .repository.chart_repository import ChartRepository
from .repository.memcache import IndexMemoryCache
from .repository.parser import charts_from_index
from .repository.session import RepositorySession
from .repository.summary import PackageAppVersion, VersionsInSummary, summarize_versions

logger = logging.getLogger(__name__)


class ChartCatalogService:
    """High-level service for one chart repository and its catalog"""

    def __init__(self, config: ConfigManager, session: Optional[HTTPProvider] = None,
                 index_cache: Optional[IndexCacheProvider] = None,
                 asset_manager: Optional[PostgresAssetManager] = None):
        """
        Initialize the service from a validated configuration

        Args:
            config: Loaded configuration
            session: HTTP session, created from the repository section when omitted
            index_cache: Shared index cache, created from the cache section when omitted and enabled
            asset_manager: Catalog store, created from the database section when omitted and configured
        """
        global_config = config.get_section('global')
        if 'debug' in global_config or 'log_level' in global_config:
            setup_logging(global_config.get('debug') or False, global_config.get('log_level'))

        repo_config = config.get_section('repository')
        self.repo = Repo(
            name=repo_config['name'],
            namespace=repo_config.get('namespace') or "",
            url=repo_config['url'],
            auth_header=repo_config.get('auth_header') or "",
        )

        self._owns_session = session is None
        if session is None:
            session = RepositorySession(
                auth_header=self.repo.auth_header,
                user_agent=config.get_value('repository.user_agent', NetworkConstants.USER_AGENT),
                timeout=config.get_value('repository.timeout', NetworkConstants.DEFAULT_TIMEOUT),
                verify=not config.get_value('global.skip_tls', False),
            )
        self.session = session

        self.cache_metrics: Counter = Counter()
        self._metrics_lock = threading.Lock()

        cache_key = ""
        cache_ttl = 0
        if config.get_value('cache.enabled', False):
            cache_key = config.get_value('cache.key')
            cache_ttl = config.get_value('cache.ttl', 0)
            if index_cache is None:
                index_cache = IndexMemoryCache(
                    max_items=config.get_value('cache.max_items', 1),
                    default_ttl=cache_ttl,
                )
        else:
            index_cache = None

        self.repository = ChartRepository(
            self.repo.url,
            session,
            cache_dir=config.get_value('repository.cache_dir'),
            index_cache=index_cache,
            cache_key=cache_key,
            cache_ttl=cache_ttl,
            record_metric=self._record_metric,
        )

        self._owns_asset_manager = False
        if asset_manager is None and config.get_value('database.url'):
            asset_manager = PostgresAssetManager.from_url(
                config.get_value('database.url'),
                config.get_value('database.global_packaging_namespace', ""),
            )
            self._owns_asset_manager = True
        self.asset_manager = asset_manager

        self.fetch_latest_only = config.get_value('sync.fetch_latest_only', False)
        self.sync_workers = config.get_value('sync.workers', CatalogConstants.DEFAULT_SYNC_WORKERS)
        self.versions_in_summary = VersionsInSummary(
            major=config.get_value('summary.major', SummaryConstants.MAJOR_VERSIONS_IN_SUMMARY),
            minor=config.get_value('summary.minor', SummaryConstants.MINOR_VERSIONS_IN_SUMMARY),
            patch=config.get_value('summary.patch', SummaryConstants.PATCH_VERSIONS_IN_SUMMARY),
        )

    def _record_metric(self, event: str) -> None:
        with self._metrics_lock:
            self.cache_metrics[event] += 1

    def _require_store(self) -> PostgresAssetManager:
        if self.asset_manager is None:
            raise ConfigurationError("database.url must be configured to use the catalog store")
        return self.asset_manager

    # Repository index

    def load_index(self) -> str:
        """
        Load the repository index if needed

        Returns:
            str: Checksum of the loaded index
        """
        self.repository.strategically_load()
        return self.repository.checksum

    def refresh_index(self) -> str:
        """Swap in a fresh copy of the remote index, readers keep the old one meanwhile"""
        return self.repository.refresh()

    def get_chart_version(self, name: str, constraint: str = "") -> PackageVersion:
        """Resolve a chart version, loading the index if needed"""
        self.load_index()
        return self.repository.get(name, constraint)

    def download_chart(self, name: str, constraint: str = "") -> bytes:
        """Resolve a chart version and download its archive"""
        return self.repository.download_chart(self.get_chart_version(name, constraint))

    def summarize(self, name: str) -> List[PackageAppVersion]:
        """
        Summarize the version history of a chart from the loaded index

        Raises:
            NoChartError: If the chart is not in the index
        """
        self.load_index()
        index = self.repository.index
        if name not in index.entries:
            raise NoChartError(f"{ErrorMessages.RepositoryError.NO_CHART}: {name}")
        return summarize_versions(index.entries[name], self.versions_in_summary)

    def charts(self) -> List[Chart]:
        """Build catalog charts from the repository index"""
        self.load_index()
        return charts_from_index(self.repository.index, self.repo, self.fetch_latest_only)

    def sync_files(self, charts: Optional[List[Chart]] = None) -> Dict[str, int]:
        """
        Import icons and files of charts into the catalog store

        Args:
            charts: Charts to enrich (default: every chart of the index)

        Returns:
            Dict with import counts
        """
        importer = FileImporter(self._require_store(), self.session, workers=self.sync_workers)
        if charts is None:
            charts = self.charts()
        return importer.fetch_files(charts, self.repo)

    # Catalog store

    def get_chart(self, chart_id: str, namespace: Optional[str] = None) -> Chart:
        return self._require_store().get_chart(self._namespace(namespace), chart_id)

    def get_stored_chart_version(self, chart_id: str, version: str, namespace: Optional[str] = None) -> Chart:
        return self._require_store().get_chart_version(self._namespace(namespace), chart_id, version)

    def get_chart_files(self, files_id: str, namespace: Optional[str] = None) -> ChartFiles:
        return self._require_store().get_chart_files(self._namespace(namespace), files_id)

    def list_charts(self, query: ChartQuery, start_item_number: int = 0, page_size: int = 0) -> List[Chart]:
        return self._require_store().get_paginated_chart_list_with_filters(query, start_item_number, page_size)

    def chart_categories(self, query: ChartQuery) -> List[ChartCategory]:
        return self._require_store().get_all_chart_categories(query)

    def _namespace(self, namespace: Optional[str]) -> str:
        return self.repo.namespace if namespace is None else namespace

    def close(self) -> None:
        """Release the HTTP session and database engine owned by the service"""
        if self._owns_session:
            self.session.close()
        if self._owns_asset_manager:
            self.asset_manager.close()
        logger.debug(f"Service for repository {self.repo.name} closed (cache events: {dict(self.cache_metrics)})")

    def __enter__(self):
        """Context manager entry"""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit"""
        self.close()
