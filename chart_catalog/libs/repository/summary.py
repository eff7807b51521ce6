"""
Version Summary

Reduces the version history of a chart to a short list for display.
"""

import logging
from typing import Dict, Iterable, List, NamedTuple, Union

from ..core.constants import SummaryConstants
from ..core.models import ChartVersion, PackageVersion
from .versions import try_parse_version

logger = logging.getLogger(__name__)


class VersionsInSummary(NamedTuple):
    """Maximum number of major, minor-per-major and patch-per-minor versions to keep"""
    major: int = SummaryConstants.MAJOR_VERSIONS_IN_SUMMARY
    minor: int = SummaryConstants.MINOR_VERSIONS_IN_SUMMARY
    patch: int = SummaryConstants.PATCH_VERSIONS_IN_SUMMARY


class PackageAppVersion(NamedTuple):
    """Chart version paired with the version of the application it packages"""
    pkg_version: str
    app_version: str


def summarize_versions(versions: Iterable[Union[ChartVersion, PackageVersion]],
                       versions_in_summary: VersionsInSummary = VersionsInSummary()) -> List[PackageAppVersion]:
    """
    Summarize a version history

    Versions are walked newest first. A version is kept when it opens a new
    major while fewer than ``major`` majors are kept, opens a new minor of a
    kept major while that major holds fewer than ``minor`` minors, or falls
    in a kept minor holding fewer than ``patch`` versions. A zero cap stops
    new buckets of that level from being opened; the version that opens a
    coarser bucket is always kept.

    Args:
        versions: Chart versions in any order; versions that are not semantic versions are ignored
        versions_in_summary: Caps per level

    Returns:
        List of kept versions, newest first
    """
    parsed = []
    for v in versions:
        sv = try_parse_version(v.version)
        if sv is None:
            logger.debug(f"Ignoring non semantic version {v.version!r} in summary")
            continue
        parsed.append((sv, v))
    parsed.sort(key=lambda item: item[0], reverse=True)

    summary: List[PackageAppVersion] = []
    # major -> minor -> kept patch numbers
    kept: Dict[int, Dict[int, List[int]]] = {}
    for sv, v in parsed:
        minors = kept.get(sv.major)
        if minors is None:
            if len(kept) >= versions_in_summary.major:
                continue
        elif sv.minor not in minors:
            if len(minors) >= versions_in_summary.minor:
                continue
        elif len(minors[sv.minor]) >= versions_in_summary.patch:
            continue

        summary.append(PackageAppVersion(pkg_version=v.version, app_version=v.app_version))
        kept.setdefault(sv.major, {}).setdefault(sv.minor, []).append(sv.patch)

    return summary
