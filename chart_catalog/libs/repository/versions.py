"""
Semantic Versions and Constraints

Lenient semantic version parsing and range constraints on top of python-semver.

Constraint syntax:
    - comparison operators ``=``, ``!=``, ``>``, ``>=``, ``<``, ``<=``
    - tilde ``~1.2.3`` / ``~>1.2.3`` (patch-level changes) and caret ``^1.2.3``
      (changes that do not modify the left-most non-zero part)
    - wildcards ``x``, ``X`` and ``*`` in any position; a missing minor or
      patch part acts as a wildcard, so ``8.5`` means ``8.5.x``
    - hyphen ranges ``1.2 - 1.4.5``
    - AND by comma or whitespace, OR by ``||``

A version with a prerelease part only satisfies a constraint whose own
version carries a prerelease part.
"""

import logging
import re
from typing import List, NamedTuple, Optional

try:
    import semver
except ImportError:
    raise ImportError("semver is required. Install with: pip install semver")

from ..core.exceptions import ParseError

logger = logging.getLogger(__name__)

_IDENT = r'[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*'

_LOOSE_VERSION_RE = re.compile(
    r'^v?(\d+)(?:\.(\d+))?(?:\.(\d+))?'
    rf'(?:-({_IDENT}))?(?:\+({_IDENT}))?$'
)

_PART = r'(?:\d+|[xX*])'
_CONSTRAINT_TOKEN_RE = re.compile(
    r'\s*(?P<op>!=|>=|=>|<=|=<|~>|==|=|>|<|~|\^)?\s*'
    rf'(?P<ver>v?{_PART}(?:\.{_PART})?(?:\.{_PART})?(?:-{_IDENT})?(?:\+{_IDENT})?)'
    r'(?=\s|$)\s*'
)

_HYPHEN_RANGE_RE = re.compile(r'(\S+)\s+-\s+(\S+)')

_WILDCARDS = ('x', 'X', '*')


def parse_version(text: str) -> semver.Version:
    """
    Parse a version leniently

    Accepts a leading ``v`` and missing minor or patch parts, which default to zero.

    Args:
        text: Version string

    Returns:
        semver.Version: Parsed version

    Raises:
        ParseError: If the text is not a semantic version
    """
    match = _LOOSE_VERSION_RE.match(text.strip()) if text else None
    if not match:
        raise ParseError(f"Invalid semantic version: {text!r}")
    major, minor, patch, prerelease, build = match.groups()
    return semver.Version(int(major), int(minor or 0), int(patch or 0), prerelease, build)


def try_parse_version(text: str) -> Optional[semver.Version]:
    """Parse a version, returning None when it is not a semantic version"""
    try:
        return parse_version(text)
    except ParseError:
        return None


class _Range(NamedTuple):
    """One simple constraint expressed as an interval"""
    lower: Optional[semver.Version] = None
    lower_inclusive: bool = True
    upper: Optional[semver.Version] = None
    upper_inclusive: bool = False
    negate: bool = False
    allows_prerelease: bool = False

    def contains(self, version: semver.Version) -> bool:
        if version.prerelease and not self.allows_prerelease:
            return False
        inside = True
        if self.lower is not None:
            inside = version >= self.lower if self.lower_inclusive else version > self.lower
        if inside and self.upper is not None:
            inside = version <= self.upper if self.upper_inclusive else version < self.upper
        return not inside if self.negate else inside


def _v(major: int, minor: int = 0, patch: int = 0) -> semver.Version:
    return semver.Version(major, minor, patch)


def _simple_range(op: str, text: str) -> _Range:
    """Translate one ``op version`` token into a _Range"""
    body = text[1:] if text.startswith('v') else text
    build = None
    if '+' in body:
        body, build = body.split('+', 1)
    prerelease = None
    if '-' in body:
        body, prerelease = body.split('-', 1)

    parts: List[Optional[str]] = body.split('.')
    parts += [None] * (3 - len(parts))
    major_s, minor_s, patch_s = parts

    major_dirty = major_s in _WILDCARDS
    minor_dirty = not major_dirty and (minor_s is None or minor_s in _WILDCARDS)
    patch_dirty = not major_dirty and not minor_dirty and (patch_s is None or patch_s in _WILDCARDS)
    dirty = major_dirty or minor_dirty or patch_dirty

    def number(value: Optional[str], dirty_here: bool) -> int:
        if value is None or dirty_here or value in _WILDCARDS:
            return 0
        return int(value)

    major = number(major_s, major_dirty)
    minor = number(minor_s, major_dirty or minor_dirty)
    patch = number(patch_s, dirty)
    base = semver.Version(major, minor, patch, prerelease, build)
    pre = prerelease is not None
    minor_missing = minor_s is None or minor_s in _WILDCARDS
    patch_missing = patch_s is None or patch_s in _WILDCARDS

    # Upper bound of a wildcard version, e.g. 1.2.x -> 1.3.0
    if major_dirty:
        wildcard_upper = None
    elif minor_dirty:
        wildcard_upper = _v(major + 1)
    else:
        wildcard_upper = _v(major, minor + 1)

    if op in ('', '=', '=='):
        if not dirty:
            return _Range(base, True, base, True, allows_prerelease=pre)
        return _Range(base, True, wildcard_upper, False, allows_prerelease=pre)

    if op == '!=':
        if not dirty:
            return _Range(base, True, base, True, negate=True, allows_prerelease=pre)
        return _Range(base, True, wildcard_upper, False, negate=True, allows_prerelease=pre)

    if op == '>':
        if not dirty:
            return _Range(base, False, allows_prerelease=pre)
        if major_dirty:
            # Nothing is greater than every version
            return _Range(base, False, base, False, allows_prerelease=pre)
        return _Range(wildcard_upper, True, allows_prerelease=pre)

    if op in ('>=', '=>'):
        return _Range(base, True, allows_prerelease=pre)

    if op == '<':
        return _Range(None, True, base, False, allows_prerelease=pre)

    if op in ('<=', '=<'):
        if not dirty:
            return _Range(None, True, base, True, allows_prerelease=pre)
        return _Range(None, True, wildcard_upper, False, allows_prerelease=pre)

    if op in ('~', '~>'):
        if major_dirty:
            return _Range(base, True, allows_prerelease=pre)
        if minor_missing:
            return _Range(base, True, _v(major + 1), False, allows_prerelease=pre)
        return _Range(base, True, _v(major, minor + 1), False, allows_prerelease=pre)

    if op == '^':
        if major_dirty:
            return _Range(base, True, allows_prerelease=pre)
        if major > 0 or minor_missing:
            return _Range(base, True, _v(major + 1), False, allows_prerelease=pre)
        if minor > 0 or patch_missing:
            return _Range(base, True, _v(0, minor + 1), False, allows_prerelease=pre)
        return _Range(base, True, _v(0, 0, patch + 1), False, allows_prerelease=pre)

    raise ParseError(f"Unsupported constraint operator: {op!r}")


class Constraint:
    """A parsed semantic version range expression"""

    def __init__(self, text: str):
        """
        Parse a constraint expression

        Args:
            text: Constraint expression, e.g. ``>=1.2.0 <2.0.0 || ^3.1``

        Raises:
            ParseError: If the expression is malformed
        """
        self.text = text
        self._groups: List[List[_Range]] = []

        if not text or not text.strip():
            raise ParseError("Empty version constraint")

        for group_text in text.split('||'):
            group_text = _HYPHEN_RANGE_RE.sub(r'>=\1 <=\2', group_text.replace(',', ' ')).strip()
            if not group_text:
                raise ParseError(f"Improper constraint: {text!r}")
            group = []
            pos = 0
            while pos < len(group_text):
                match = _CONSTRAINT_TOKEN_RE.match(group_text, pos)
                if not match or match.end() == pos:
                    raise ParseError(f"Improper constraint: {text!r}")
                group.append(_simple_range(match.group('op') or '', match.group('ver')))
                pos = match.end()
            self._groups.append(group)

    def check(self, version: semver.Version) -> bool:
        """Check whether a version satisfies the constraint"""
        return any(all(r.contains(version) for r in group) for group in self._groups)

    def __str__(self) -> str:
        return self.text

    def __repr__(self) -> str:
        return f"Constraint({self.text!r})"
