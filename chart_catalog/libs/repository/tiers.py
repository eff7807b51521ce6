"""
Index Cache Tiers

Tiers of the index acquisition chain. Each tier can try to provide an index
snapshot and can be back-filled with a snapshot resolved by a later tier.
Tiers are consulted in order: shared memory cache, disk cache, remote repository.
"""

import hashlib
import logging
import os
import posixpath
import tempfile
import threading
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import urlsplit, urlunsplit

from ..core.constants import ErrorMessages, RepositoryConstants
from ..core.exceptions import ParseError, RepositoryError
from ..core.models import IndexSnapshot
from ..core.protocols import HTTPProvider, IndexCacheProvider
from ..core.utils import format_bytes
from .parser import parse_index

logger = logging.getLogger(__name__)

RecordMetricsFunc = Callable[[str], None]


def snapshot_from_bytes(data: bytes) -> IndexSnapshot:
    """
    Parse raw index bytes into a snapshot

    Raises:
        ParseError: If the index cannot be parsed
    """
    index = parse_index(data)
    return IndexSnapshot(index=index, checksum=hashlib.sha256(data).hexdigest())


def index_url(repository_url: str) -> str:
    """Build the index.yaml URL of a repository, keeping its query string"""
    parts = urlsplit(repository_url)
    path = posixpath.join(parts.path or "/", RepositoryConstants.INDEX_FILE_NAME)
    return urlunsplit((parts.scheme, parts.netloc, path, parts.query, parts.fragment))


class SharedCacheTier:
    """Shared in-memory cache lookup by a tenant-safe key"""

    name = "memory"

    def __init__(self, cache: IndexCacheProvider, key: str, ttl: float,
                 record_metric: Optional[RecordMetricsFunc] = None):
        self.cache = cache
        self.key = key
        self.ttl = ttl
        self.record_metric = record_metric

    def _record(self, event: RepositoryConstants.CacheEvent) -> None:
        if self.record_metric is not None:
            self.record_metric(str(event))

    def try_get(self) -> Optional[IndexSnapshot]:
        snapshot = self.cache.get(self.key)
        if isinstance(snapshot, IndexSnapshot):
            logger.debug(f"Index cache hit for key {self.key}")
            self._record(RepositoryConstants.CacheEvent.HIT)
            return snapshot
        logger.debug(f"Index cache miss for key {self.key}")
        self._record(RepositoryConstants.CacheEvent.MISS)
        return None

    def store(self, snapshot: IndexSnapshot) -> None:
        self.cache.set(self.key, snapshot, self.ttl)


class DiskCacheTier:
    """On-disk copy of the remote index"""

    name = "disk"

    def __init__(self, cache_path: str = "", cache_dir: Optional[str] = None):
        """
        Initialize disk tier

        Args:
            cache_path: Existing index file to load from (optional). Files passed
                in are never removed by this tier.
            cache_dir: Directory for new cache files (default: system temp)
        """
        self._lock = threading.Lock()
        self._cache_path = cache_path
        self._cached = False
        self.cache_dir = cache_dir

    @property
    def cache_path(self) -> str:
        with self._lock:
            return self._cache_path

    @property
    def cached(self) -> bool:
        """True when the current cache file was created by this tier"""
        with self._lock:
            return self._cached

    def has_cache_file(self) -> bool:
        return self.cache_path != ""

    def write(self, data: bytes) -> str:
        """
        Persist index bytes to a new cache file and make it the current one

        Args:
            data: Raw index content

        Returns:
            str: SHA-256 checksum of the content

        Raises:
            RepositoryError: If the file cannot be written
        """
        if self.cache_dir:
            Path(self.cache_dir).mkdir(parents=True, exist_ok=True)
        try:
            fd, path = tempfile.mkstemp(
                prefix=RepositoryConstants.CACHE_FILE_PREFIX,
                suffix=RepositoryConstants.CACHE_FILE_SUFFIX,
                dir=self.cache_dir,
            )
        except OSError as e:
            raise RepositoryError(f"failed to create temp file to cache index to: {e}") from e

        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(data)
        except OSError as e:
            Path(path).unlink(missing_ok=True)
            raise RepositoryError(f"failed to cache index to temporary file: {e}") from e

        # Publish the path only once the file is complete
        with self._lock:
            previous = self._cache_path if self._cached else ""
            self._cache_path = path
            self._cached = True
        if previous and previous != path:
            Path(previous).unlink(missing_ok=True)

        logger.debug(f"Cached index to {path} ({format_bytes(len(data))})")
        return hashlib.sha256(data).hexdigest()

    def load_file(self, path: str) -> IndexSnapshot:
        """
        Load an index file

        The file is read through a single open handle, so a concurrent write
        replacing it does not affect a read in progress.

        Raises:
            RepositoryError: If the file cannot be read
            ParseError: If the file exceeds the size limit or cannot be parsed
        """
        file_path = Path(path)
        if file_path.is_dir():
            raise RepositoryError(f"'{path}' is a directory")
        try:
            with file_path.open('rb') as f:
                if os.fstat(f.fileno()).st_size > RepositoryConstants.MAX_INDEX_SIZE:
                    raise ParseError(str(ErrorMessages.RepositoryError.INDEX_TOO_LARGE).format(
                        path=file_path.name, limit=RepositoryConstants.MAX_INDEX_SIZE))
                data = f.read()
        except OSError as e:
            raise RepositoryError(f"failed to read index file '{path}': {e}") from e
        return snapshot_from_bytes(data)

    def try_get(self) -> Optional[IndexSnapshot]:
        path = self.cache_path
        if not path:
            return None
        logger.debug(f"Loading index from cache file {path}")
        try:
            return self.load_file(path)
        except RepositoryError as e:
            # Replaced by a concurrent write
            if isinstance(e.__cause__, FileNotFoundError) and self.cache_path != path:
                logger.debug(f"Cache file {path} was replaced, skipping disk tier")
                return None
            raise

    def store(self, snapshot: IndexSnapshot) -> None:
        # Filled by write-through from the remote tier, parsed snapshots carry no raw bytes
        logger.debug(f"Disk tier not back-filled for index {snapshot.checksum[:12]}")

    def remove(self) -> None:
        """
        Remove the cache file if this tier created it

        Raises:
            RepositoryError: If the file exists but cannot be removed
        """
        with self._lock:
            if not self._cached:
                return
            path = self._cache_path
            try:
                Path(path).unlink(missing_ok=True)
            except OSError as e:
                raise RepositoryError(f"failed to remove cached index '{path}': {e}") from e
            self._cache_path = ""
            self._cached = False
        logger.debug(f"Removed cached index {path}")


class RemoteTier:
    """Remote repository index, written through to the disk tier"""

    name = "remote"

    def __init__(self, session: HTTPProvider, repository_url: str, disk: DiskCacheTier):
        self.session = session
        self.url = index_url(repository_url)
        self.disk = disk

    def download(self) -> bytes:
        """
        Download the raw index

        Raises:
            FetchError: If the request fails or does not return 200
        """
        logger.info(f"Fetching repository index {self.url}")
        return self.session.get(self.url)

    def try_get(self) -> Optional[IndexSnapshot]:
        data = self.download()
        self.disk.write(data)
        return snapshot_from_bytes(data)

    def store(self, snapshot: IndexSnapshot) -> None:
        pass
