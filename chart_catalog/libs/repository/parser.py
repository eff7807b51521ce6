"""
Index Parser

Parses chart repository index documents and converts them into catalog charts.
"""

import logging
from types import MappingProxyType
from typing import Any, Dict, List, Tuple, Union

try:
    import yaml
except ImportError:
    raise ImportError("PyYAML is required. Install with: pip install PyYAML")

from ..core.constants import ErrorMessages, RepositoryConstants
from ..core.exceptions import ParseError
from ..core.models import (
    Chart, ChartVersion, PackageVersion, Repo, RepositoryIndex, parse_timestamp
)
from ..core.utils import make_chart_id
from .versions import try_parse_version

logger = logging.getLogger(__name__)

Field = RepositoryConstants.IndexField


def sort_versions(versions: List[PackageVersion]) -> List[PackageVersion]:
    """
    Order chart versions newest first

    Semantic versions come first in descending order, followed by versions that
    do not parse, in descending lexical order.

    Args:
        versions: Versions of a single chart

    Returns:
        List of versions, most recent at index 0
    """
    parsed = []
    unparsed = []
    for pv in versions:
        sv = try_parse_version(pv.version)
        if sv is None:
            unparsed.append(pv)
        else:
            parsed.append((sv, pv))
    parsed.sort(key=lambda item: item[0], reverse=True)
    unparsed.sort(key=lambda pv: pv.version, reverse=True)
    return [pv for _, pv in parsed] + unparsed


def _load_entry_versions(name: str, raw_versions: Any) -> List[PackageVersion]:
    versions = []
    if not isinstance(raw_versions, list):
        logger.info(f"Skipping chart {name!r}: versions are not a list")
        return versions
    for raw in raw_versions:
        if not isinstance(raw, dict):
            continue
        if not raw.get(str(Field.VERSION)):
            logger.info(f"Skipping invalid entry for chart {name!r}: missing version")
            continue
        versions.append(PackageVersion.from_index_entry(name, raw))
    return versions


def parse_index(data: Union[bytes, str]) -> RepositoryIndex:
    """
    Parse a repository index document

    Args:
        data: Raw index.yaml content

    Returns:
        RepositoryIndex: Index with sorted entries; empty and deprecated charts are left out

    Raises:
        ParseError: If the document is not valid YAML or has no API version
    """
    try:
        document = yaml.safe_load(data)
    except yaml.YAMLError as e:
        raise ParseError(f"Failed to parse repository index: {e}") from e

    if not isinstance(document, dict):
        raise ParseError("Failed to parse repository index: document is not a mapping")

    api_version = document.get(str(Field.API_VERSION))
    if not api_version:
        raise ParseError(str(ErrorMessages.RepositoryError.NO_API_VERSION))

    raw_entries = document.get(str(Field.ENTRIES)) or {}
    if not isinstance(raw_entries, dict):
        raise ParseError("Failed to parse repository index: entries is not a mapping")

    entries: Dict[str, Tuple[PackageVersion, ...]] = {}
    for key, raw_versions in sorted(raw_entries.items(), key=lambda item: str(item[0])):
        name = str(key)
        versions = sort_versions(_load_entry_versions(name, raw_versions))
        if not versions:
            logger.info(f"Skipping chart {name!r}: no versions")
            continue
        if versions[0].deprecated:
            logger.info(f"Skipping chart {name!r}: deprecated")
            continue
        entries[name] = tuple(versions)

    logger.debug(f"Parsed repository index with {len(entries)} charts")
    return RepositoryIndex(
        api_version=str(api_version),
        entries=MappingProxyType(entries),
        generated=parse_timestamp(document.get(str(Field.GENERATED))),
    )


def chart_from_versions(repo: Repo, name: str, versions: Tuple[PackageVersion, ...],
                        fetch_latest_only: bool = False) -> Chart:
    """
    Build a catalog chart from the versions of one index entry

    Chart metadata is taken from the newest version.

    Args:
        repo: Owning repository
        name: Chart name
        versions: Versions ordered newest first
        fetch_latest_only: Copy only the newest version

    Returns:
        Chart: Catalog record
    """
    latest = versions[0]
    selected = versions[:1] if fetch_latest_only else versions
    return Chart(
        id=make_chart_id(repo.name, name),
        name=name,
        repo=repo,
        chart_versions=tuple(ChartVersion.from_package_version(pv) for pv in selected),
        description=latest.description,
        home=latest.home,
        icon=latest.icon,
        category=latest.annotations.get(RepositoryConstants.CATEGORY_ANNOTATION, ""),
        keywords=latest.keywords,
        sources=latest.sources,
        maintainers=latest.maintainers,
    )


def charts_from_index(index: RepositoryIndex, repo: Repo, fetch_latest_only: bool = False) -> List[Chart]:
    """
    Convert a parsed index into catalog charts

    Args:
        index: Parsed repository index
        repo: Owning repository
        fetch_latest_only: Copy only the newest version of every chart

    Returns:
        List of charts ordered by ID
    """
    charts = [
        chart_from_versions(repo, name, versions, fetch_latest_only)
        for name, versions in index.entries.items()
        if versions
    ]
    charts.sort(key=lambda c: c.id)
    return charts
