"""
Protocols and Interfaces

Defines protocols (interfaces) for dependency injection and type hints.
"""

from typing import Protocol, Any, Dict, Optional, Tuple

try:
    from kubernetes import client
except ImportError:
    raise ImportError("kubernetes library is required. Install with: pip install kubernetes")

from .models import ChartFiles, IndexSnapshot, Repo


class IndexCacheProvider(Protocol):
    """Protocol for shared in-memory index caches"""

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value for key, or None when absent or expired"""
        ...

    def set(self, key: str, value: Any, ttl: float) -> None:
        """Store value under key for ttl seconds"""
        ...


class IndexTier(Protocol):
    """Protocol for one tier of the index acquisition chain"""

    name: str

    def try_get(self) -> Optional[IndexSnapshot]:
        """Return a snapshot when this tier can provide one, None otherwise"""
        ...

    def store(self, snapshot: IndexSnapshot) -> None:
        """Back-fill this tier with a snapshot resolved by a later tier"""
        ...


class HTTPProvider(Protocol):
    """Protocol for HTTP sessions used to fetch indexes, archives and icons"""

    def get(self, url: str, headers: Optional[Dict[str, str]] = None, with_auth: bool = True) -> bytes:
        """Fetch url and return the response body"""
        ...

    def get_with_content_type(self, url: str, headers: Optional[Dict[str, str]] = None,
                              with_auth: bool = True) -> Tuple[bytes, str]:
        """Fetch url and return the response body and its content type"""
        ...


class AssetStoreProvider(Protocol):
    """Protocol for the write side of the catalog store used by the file importer"""

    def update_icon(self, repo: Repo, data: bytes, content_type: str, chart_id: str) -> None:
        """Store the raw icon of a chart"""
        ...

    def files_exist(self, repo: Repo, chart_files_id: str, digest: str) -> bool:
        """Check whether files for a chart version are already stored with this digest"""
        ...

    def insert_files(self, chart_id: str, files: ChartFiles) -> None:
        """Insert or replace the files of a chart version"""
        ...


class AccessReviewProvider(Protocol):
    """Protocol for the Kubernetes authorization API used by namespace filtering"""

    def create_self_subject_access_review(
        self, body: client.V1SelfSubjectAccessReview, **kwargs: Any
    ) -> client.V1SelfSubjectAccessReview:
        """Ask the API server whether the current user may perform an action"""
        ...


class NamespaceListProvider(Protocol):
    """Protocol for the Kubernetes core API used to list namespaces"""

    def list_namespace(self, **kwargs: Any) -> client.V1NamespaceList:
        """List all namespaces visible to the client"""
        ...
