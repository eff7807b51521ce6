"""
Core Utilities

Common utility functions used across the Chart Catalog library.
"""

import logging
import re
import sys
from typing import Type, Optional, Tuple
from urllib.parse import quote, unquote

from .exceptions import ChartCatalogError, FetchError, ValidationError
from .constants import CatalogConstants


def setup_logging(debug: bool = False, level: Optional[str] = None) -> None:
    """
    Configure the root logger for the chart catalog.

    Records below ERROR go to stdout, ERROR and above to stderr. The httpx
    request log is kept at WARNING unless debug is enabled.

    Args:
        debug: Enable debug logging, overrides level
        level: Level name such as "INFO" or "WARNING" (default: INFO)
    """
    if debug:
        log_level = logging.DEBUG
    else:
        log_level = logging.getLevelName((level or "INFO").upper())
        if not isinstance(log_level, int):
            raise ValidationError(f"Unknown log level: {level}")

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setLevel(log_level)
    stdout_handler.setFormatter(formatter)
    stdout_handler.addFilter(lambda record: record.levelno < logging.ERROR)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.ERROR)
    stderr_handler.setFormatter(formatter)

    root_logger.addHandler(stdout_handler)
    root_logger.addHandler(stderr_handler)

    logging.getLogger("httpx").setLevel(logging.DEBUG if debug else logging.WARNING)
    logging.getLogger(__name__).debug(f"Logging configured at {logging.getLevelName(log_level)}")


def mask_sensitive_info(text: str, token: Optional[str] = None) -> str:
    """
    Mask sensitive information in text for logging and debug output.

    Args:
        text: Text to mask
        token: Explicit credential to mask (optional)

    Returns:
        Text with sensitive information masked
    """
    if not text:
        return text

    masked_text = text

    if token and token in masked_text:
        masked_text = masked_text.replace(token, "***MASKED***")

    # Mask bearer tokens
    masked_text = re.sub(r'Bearer [A-Za-z0-9+/=_.-]+', 'Bearer ***MASKED***', masked_text)

    # Mask basic auth tokens
    masked_text = re.sub(r'Basic [A-Za-z0-9+/=]+', 'Basic ***MASKED***', masked_text)

    # Mask credentials embedded in URLs
    masked_text = re.sub(r'://[^/@\s:]+:[^/@\s]+@', '://***:***@', masked_text)

    return masked_text


def format_bytes(bytes_count: int) -> str:
    """
    Format byte count into human-readable string.

    Args:
        bytes_count: Number of bytes

    Returns:
        str: Human-readable byte count (e.g., "1.5 MB")
    """
    if bytes_count == 0:
        return "0 B"

    units = ['B', 'KB', 'MB', 'GB', 'TB']
    unit_index = 0
    size = float(bytes_count)

    while size >= 1024 and unit_index < len(units) - 1:
        size /= 1024
        unit_index += 1

    return f"{size:.1f} {units[unit_index]}"


def escape_chart_name(name: str) -> str:
    """Percent-escape a chart name so it is a single identifier segment"""
    return quote(name, safe='$&+:=@')


def make_chart_id(repo_name: str, chart_name: str) -> str:
    """
    Build the composite catalog identifier of a chart.

    Args:
        repo_name: Name of the owning repository
        chart_name: Unescaped chart name

    Returns:
        str: Identifier in the form "{repo}/{escaped name}"
    """
    return f"{repo_name}/{escape_chart_name(chart_name)}"


def unescape_chart_id(chart_id: str) -> str:
    """
    Recover the chart name from a composite identifier.

    Args:
        chart_id: Identifier built by make_chart_id

    Returns:
        str: The unescaped chart name

    Raises:
        ValidationError: If the identifier has no repository prefix
    """
    _, name = split_chart_identifier(chart_id)
    return unquote(name)


def split_chart_identifier(chart_id: str) -> Tuple[str, str]:
    """
    Split a chart identifier into its repository and chart name segments.

    Args:
        chart_id: Identifier in the form "{repo}/{name}"

    Returns:
        Tuple of (repository name, escaped chart name)

    Raises:
        ValidationError: If the identifier does not have exactly two segments
    """
    parts = chart_id.split('/')
    if len(parts) != 2 or not all(parts):
        raise ValidationError(f"Incorrect request format for chart identifier: {chart_id!r}")
    return parts[0], parts[1]


def contains_only_allowed_chars(value: str) -> bool:
    """Check a version-like string against the version character allow-list"""
    return all(char in CatalogConstants.ALLOWED_VERSION_CHARS for char in value)


def handle_api_error(
    error: Exception,
    context: str = "",
    exception_class: Optional[Type[ChartCatalogError]] = None
) -> None:
    """
    Inspect a transport exception and raise the matching library exception

    Args:
        error: The caught exception to analyze and handle
        context: Name of the resource being accessed, prepended to the message
        exception_class: The specific exception class to raise (defaults to FetchError)

    Raises:
        ChartCatalogError: Appropriate error type wrapping the original error
    """
    if exception_class is None:
        exception_class = FetchError

    error_str = str(error).lower()
    context_msg = f"{context}: " if context else ""

    if any(ssl_indicator in error_str for ssl_indicator in ["ssl", "certificate", "tls"]):
        raise exception_class(f"{context_msg}TLS error: {error}") from error

    if "timeout" in error_str or "timed out" in error_str:
        raise exception_class(f"{context_msg}Request timed out: {error}") from error

    if "connection" in error_str:
        raise exception_class(f"{context_msg}Connection error: {error}") from error

    raise exception_class(f"{context_msg}{error}") from error
