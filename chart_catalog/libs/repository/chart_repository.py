"""
Chart Repository

Lazily loads a chart repository index through a chain of cache tiers,
resolves chart versions against version constraints and downloads chart
archives.

The loaded index is held as an immutable snapshot. Loading performs all
network and disk I/O first and only then swaps the snapshot reference under
the lock, so readers never wait on I/O and never see a partial index.
"""

import logging
import threading
from typing import Callable, List, Optional
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

from ..core.constants import ErrorMessages, RepositoryConstants
from ..core.exceptions import (
    CacheKeyError, DownloadError, NoChartError, NoIndexError, NoMatchError,
    NoVersionsError, RepositoryError
)
from ..core.models import IndexSnapshot, PackageVersion, RepositoryIndex
from ..core.protocols import HTTPProvider, IndexCacheProvider, IndexTier
from .tiers import DiskCacheTier, RemoteTier, SharedCacheTier, snapshot_from_bytes
from .versions import Constraint, try_parse_version

logger = logging.getLogger(__name__)

RecordMetricsFunc = Callable[[str], None]


def resolve_chart_url(repository_url: str, ref: str) -> str:
    """
    Resolve a chart archive reference against the repository URL

    Absolute references are returned unchanged. Relative ones are joined to
    the repository URL, whose query string replaces the query of the result.
    """
    if urlsplit(ref).scheme:
        return ref

    base = urlsplit(repository_url)
    query = urlencode(sorted(parse_qsl(base.query, keep_blank_values=True)))
    base_url = urlunsplit((base.scheme, base.netloc, base.path.rstrip('/') + '/', '', ''))
    resolved = urlsplit(urljoin(base_url, ref))
    return urlunsplit(resolved._replace(query=query))


class ChartRepository:
    """A Helm chart repository with a lazily loaded index"""

    def __init__(self, url: str, session: HTTPProvider, cache_path: str = "",
                 cache_dir: Optional[str] = None,
                 index_cache: Optional[IndexCacheProvider] = None, cache_key: str = "",
                 cache_ttl: float = 0, record_metric: Optional[RecordMetricsFunc] = None):
        """
        Initialize chart repository

        Args:
            url: Repository base URL
            session: HTTP session used for index and archive downloads
            cache_path: Existing index file to load before going remote (optional)
            cache_dir: Directory for new index cache files (default: system temp)
            index_cache: Shared in-memory index cache (optional)
            cache_key: Tenant-safe key of this repository in the shared cache
            cache_ttl: TTL of the shared cache entry in seconds
            record_metric: Callback receiving cache hit/miss events

        Raises:
            CacheKeyError: If a shared cache is given without a key
        """
        self.url = url
        self.session = session
        self._lock = threading.Lock()
        self._snapshot: Optional[IndexSnapshot] = None
        self._disk = DiskCacheTier(cache_path=cache_path, cache_dir=cache_dir)
        self._remote = RemoteTier(session, url, self._disk)
        self._shared: Optional[SharedCacheTier] = None
        if index_cache is not None:
            self.set_mem_cache(cache_key, index_cache, cache_ttl, record_metric)

    def set_mem_cache(self, key: str, cache: IndexCacheProvider, ttl: float,
                      record_metric: Optional[RecordMetricsFunc] = None) -> None:
        """
        Attach a shared in-memory index cache

        Raises:
            CacheKeyError: If key is empty
        """
        if not key:
            raise CacheKeyError(str(ErrorMessages.RepositoryError.EMPTY_CACHE_KEY))
        self._shared = SharedCacheTier(cache, key, ttl, record_metric)

    @property
    def tiers(self) -> List[IndexTier]:
        """Tiers consulted by strategically_load, in order"""
        tiers: List[IndexTier] = [self._disk, self._remote]
        if self._shared is not None:
            tiers.insert(0, self._shared)
        return tiers

    @property
    def index(self) -> Optional[RepositoryIndex]:
        snapshot = self._snapshot
        return snapshot.index if snapshot else None

    @property
    def checksum(self) -> str:
        snapshot = self._snapshot
        return snapshot.checksum if snapshot else ""

    @property
    def cache_path(self) -> str:
        return self._disk.cache_path

    @property
    def cached(self) -> bool:
        return self._disk.cached

    def has_index(self) -> bool:
        return self._snapshot is not None

    def has_cache_file(self) -> bool:
        return self._disk.has_cache_file()

    def _install(self, snapshot: IndexSnapshot) -> None:
        with self._lock:
            self._snapshot = snapshot

    def load_index_from_bytes(self, data: bytes) -> None:
        """
        Parse index bytes and install them as the loaded index

        Raises:
            ParseError: If the index cannot be parsed
        """
        self._install(snapshot_from_bytes(data))

    def load_from_file(self, path: str) -> None:
        """
        Load the index from a file

        Raises:
            RepositoryError: If the file cannot be read
            ParseError: If the file is too large or cannot be parsed
        """
        self._install(self._disk.load_file(path))

    def load_from_cache(self) -> None:
        """
        Load the index from the current cache file

        Raises:
            RepositoryError: If no cache file is set or it cannot be read
        """
        snapshot = self._disk.try_get()
        if snapshot is None:
            raise RepositoryError("no cache path set")
        self._install(snapshot)

    def load_from_mem_cache(self) -> bool:
        """
        Load the index from the shared cache

        Returns:
            bool: True if the index was found in the shared cache
        """
        if self._shared is None:
            return False
        snapshot = self._shared.try_get()
        if snapshot is None:
            return False
        self._install(snapshot)
        return True

    def download_index(self) -> bytes:
        """
        Download the raw remote index

        Raises:
            FetchError: If the request fails or does not return 200
        """
        return self._remote.download()

    def cache_index(self) -> str:
        """
        Download the remote index into a new cache file

        The index is not loaded, call load_from_cache for that.

        Returns:
            str: SHA-256 checksum of the downloaded index

        Raises:
            FetchError: If the download fails
            RepositoryError: If the cache file cannot be written
        """
        return self._disk.write(self.download_index())

    def cache_index_in_memory(self) -> None:
        """
        Store the loaded index in the shared cache

        Raises:
            CacheFullError: If the shared cache has no room for the entry
        """
        snapshot = self._snapshot
        if self._shared is not None and snapshot is not None:
            self._shared.store(snapshot)

    def strategically_load(self) -> None:
        """
        Make sure an index is loaded, doing as little I/O as possible

        Returns immediately when an index is loaded. Otherwise tries the shared
        cache, then an existing cache file, then the remote repository (which
        is written to a new cache file first). Tiers before the one that
        answered are back-filled with its snapshot.

        Raises:
            FetchError: If the remote index cannot be fetched
            ParseError: If the index cannot be parsed
            RepositoryError: If the cache file cannot be read or written
        """
        if self.has_index():
            return

        tiers = self.tiers
        for position, tier in enumerate(tiers):
            snapshot = tier.try_get()
            if snapshot is None:
                continue
            for earlier in tiers[:position]:
                try:
                    earlier.store(snapshot)
                except RepositoryError as e:
                    logger.warning(f"Failed to back-fill {earlier.name} index tier: {e}")
            self._install(snapshot)
            logger.debug(f"Index for {self.url} loaded from {tier.name} tier")
            return

        raise RepositoryError(f"failed to strategically load index for {self.url}")

    def refresh(self) -> str:
        """
        Replace the loaded index with a fresh copy of the remote index

        The new index is downloaded, cached to disk and parsed before it is
        swapped in, so readers keep resolving against the previous snapshot
        until then. The shared cache entry is replaced too.

        Returns:
            str: SHA-256 checksum of the new index

        Raises:
            FetchError: If the remote index cannot be fetched
            ParseError: If the index cannot be parsed
            RepositoryError: If the cache file cannot be written
        """
        snapshot = self._remote.try_get()
        if self._shared is not None:
            try:
                self._shared.store(snapshot)
            except RepositoryError as e:
                logger.warning(f"Failed to update {self._shared.name} index tier: {e}")
        self._install(snapshot)
        logger.info(f"Index for {self.url} refreshed ({snapshot.checksum[:12]})")
        return snapshot.checksum

    def get(self, name: str, constraint: str = "") -> PackageVersion:
        """
        Resolve a chart version

        An exact version string match is returned as is. Otherwise the newest
        version satisfying the constraint is returned; an empty constraint or
        "*" selects the latest stable version. Versions equal in semantic
        version order are ordered by creation time, earliest first.

        Args:
            name: Chart name
            constraint: Exact version or semantic version constraint

        Returns:
            PackageVersion: The resolved version

        Raises:
            NoIndexError: If no index is loaded
            NoChartError: If the chart is not in the index
            NoVersionsError: If the chart has no versions
            ParseError: If the constraint is malformed
            NoMatchError: If no version satisfies the constraint
        """
        index = self.index
        if index is None:
            raise NoIndexError(str(ErrorMessages.RepositoryError.NO_INDEX))
        if name not in index.entries:
            raise NoChartError(f"{ErrorMessages.RepositoryError.NO_CHART}: {name}")
        versions = index.entries[name]
        if not versions:
            raise NoVersionsError(f"{ErrorMessages.RepositoryError.NO_VERSIONS}: {name}")

        if constraint:
            for pv in versions:
                if pv.version == constraint:
                    return pv

        latest_stable = not constraint or constraint == RepositoryConstants.LATEST_STABLE
        parsed = Constraint(RepositoryConstants.LATEST_STABLE if latest_stable else constraint)

        matched = []
        for pv in versions:
            sv = try_parse_version(pv.version)
            if sv is not None and parsed.check(sv):
                matched.append((sv, pv))
        if not matched:
            raise NoMatchError(str(ErrorMessages.RepositoryError.NO_MATCH).format(
                name=name, constraint=constraint))

        # Stable sorts: creation time first so that it breaks ties in version order
        matched.sort(key=lambda item: item[1].created)
        matched.sort(key=lambda item: item[0], reverse=True)
        return matched[0][1]

    def resolve_chart_url(self, version: PackageVersion) -> str:
        """
        Resolve the download URL of a chart version

        Raises:
            DownloadError: If the version has no URLs
        """
        if not version.urls:
            raise DownloadError(str(ErrorMessages.RepositoryError.NO_URLS).format(name=version.name))

        return resolve_chart_url(self.url, version.urls[0])

    def download_chart(self, version: PackageVersion) -> bytes:
        """
        Download a chart archive

        Args:
            version: Chart version to download

        Returns:
            bytes: Archive content

        Raises:
            DownloadError: If the version has no URLs
            FetchError: If the download fails
        """
        url = self.resolve_chart_url(version)
        logger.debug(f"Downloading chart {version.name}-{version.version} from {url}")
        return self.session.get(url)

    def unload(self) -> None:
        """Drop the loaded index; no-op when nothing is loaded"""
        with self._lock:
            self._snapshot = None

    def remove_cache(self) -> None:
        """
        Remove the cache file created by this repository; no-op when there is none

        Raises:
            RepositoryError: If the file cannot be removed
        """
        self._disk.remove()
