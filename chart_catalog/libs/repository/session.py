"""
Chart Repository Session

Manages a pooled HTTP connection to a chart repository using httpx.
Requires httpx library for HTTP client functionality.
"""

import logging
import threading
import time
from typing import Dict, Any, Optional, Tuple

try:
    import httpx
except ImportError:
    raise ImportError("httpx is required for RepositorySession. Install with: pip install httpx")

from ..core.exceptions import FetchError
from ..core.constants import NetworkConstants
from ..core.utils import format_bytes, handle_api_error, mask_sensitive_info

logger = logging.getLogger(__name__)


class RepositorySession:
    """Reusable httpx session for index, archive and icon downloads"""

    def __init__(self, auth_header: str = "", user_agent: str = NetworkConstants.USER_AGENT,
                 timeout: float = NetworkConstants.DEFAULT_TIMEOUT, verify: bool = True,
                 transport: Optional[httpx.BaseTransport] = None):
        """
        Initialize repository session

        Args:
            auth_header: Authorization header value for repository requests (optional)
            user_agent: User-Agent header value
            timeout: Request timeout in seconds
            verify: Verify TLS certificates
            transport: Custom transport, a pooled HTTPTransport is created when omitted
        """
        self.auth_header = auth_header
        self.user_agent = user_agent

        headers = {
            str(NetworkConstants.HTTPHeader.USER_AGENT): user_agent,
            str(NetworkConstants.HTTPHeader.ACCEPT_ENCODING): "gzip",
        }
        if transport is None:
            transport = httpx.HTTPTransport(verify=verify, retries=0)

        self.client: Optional[httpx.Client] = httpx.Client(
            transport=transport,
            timeout=httpx.Timeout(timeout),
            headers=headers,
            follow_redirects=True,
        )

        self._stats_lock = threading.Lock()
        self._request_count = 0
        self._total_request_time = 0.0
        self._total_bytes_received = 0

        logger.debug(f"Session initialized (user agent: {user_agent}, "
                     f"auth: {mask_sensitive_info(auth_header) or 'none'})")

    def _request(self, url: str, headers: Optional[Dict[str, str]] = None,
                 with_auth: bool = True) -> httpx.Response:
        if self.client is None:
            raise FetchError(f"{url}: session is closed")

        request_headers = {}
        if with_auth and self.auth_header:
            request_headers[str(NetworkConstants.HTTPHeader.AUTHORIZATION)] = self.auth_header
        if headers:
            request_headers.update(headers)

        start_time = time.time()
        try:
            response = self.client.get(url, headers=request_headers)
        except httpx.HTTPError as e:
            handle_api_error(e, context=url, exception_class=FetchError)

        if response.status_code != NetworkConstants.HTTPStatus.OK:
            raise FetchError(
                f"failed to fetch {url} : {response.status_code} {response.reason_phrase}"
            )

        request_time = time.time() - start_time
        with self._stats_lock:
            self._request_count += 1
            self._total_request_time += request_time
            self._total_bytes_received += len(response.content)

        logger.debug(f"GET {url} completed in {request_time:.2f}s ({len(response.content)} bytes)")
        return response

    def get(self, url: str, headers: Optional[Dict[str, str]] = None, with_auth: bool = True) -> bytes:
        """
        Fetch a URL

        Args:
            url: Absolute URL
            headers: Additional HTTP headers
            with_auth: Send the repository Authorization header

        Returns:
            bytes: Response body

        Raises:
            FetchError: If the request fails or does not return 200
        """
        return self._request(url, headers, with_auth).content

    def get_with_content_type(self, url: str, headers: Optional[Dict[str, str]] = None,
                              with_auth: bool = True) -> Tuple[bytes, str]:
        """
        Fetch a URL and report its content type

        Returns:
            Tuple of (response body, Content-Type header value)

        Raises:
            FetchError: If the request fails or does not return 200
        """
        response = self._request(url, headers, with_auth)
        return response.content, response.headers.get(str(NetworkConstants.HTTPHeader.CONTENT_TYPE), "")

    def get_session_stats(self) -> Dict[str, Any]:
        """
        Get session performance statistics

        Returns:
            Dict with session statistics
        """
        with self._stats_lock:
            count = self._request_count
            avg_request_time = self._total_request_time / count if count > 0 else 0
            return {
                'total_requests': count,
                'total_request_time': self._total_request_time,
                'average_request_time': avg_request_time,
                'total_bytes_received': self._total_bytes_received,
                'httpx_client_active': self.client is not None,
            }

    def close(self) -> None:
        """Close the session and clean up resources"""
        if self.client:
            try:
                self.client.close()
            except httpx.HTTPError as e:
                logger.debug(f"Error closing httpx client: {e}")
            finally:
                self.client = None

        if self._request_count > 0:
            stats = self.get_session_stats()
            logger.info(f"Session closed: {stats['total_requests']} requests, "
                        f"{stats['average_request_time']:.2f}s avg, "
                        f"{format_bytes(stats['total_bytes_received'])} transferred")

    def __enter__(self):
        """Context manager entry"""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit"""
        self.close()
