"""
Data Models

Immutable records shared by the repository and catalog layers.
"""

import base64
import re
from datetime import date, datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Tuple

# Sort key used for versions without a creation timestamp
MIN_TIMESTAMP = datetime.min.replace(tzinfo=timezone.utc)

_FRACTION_RE = re.compile(r'\.(\d+)')


def parse_timestamp(value: Any) -> datetime:
    """
    Normalize an index or database timestamp to an aware UTC datetime

    Args:
        value: datetime, date, RFC 3339 string or None

    Returns:
        datetime: Aware UTC datetime, MIN_TIMESTAMP when the value is missing or invalid
    """
    if value is None or value == "":
        return MIN_TIMESTAMP
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith(('Z', 'z')):
            text = text[:-1] + '+00:00'
        # fromisoformat only accepts microsecond precision
        text = _FRACTION_RE.sub(lambda m: '.' + m.group(1)[:6].ljust(6, '0'), text, count=1)
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return MIN_TIMESTAMP
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Render a timestamp in RFC 3339 form, empty for the missing sentinel"""
    if value == MIN_TIMESTAMP:
        return ""
    return value.isoformat().replace('+00:00', 'Z')


class Maintainer(NamedTuple):
    """Chart maintainer"""
    name: str
    email: str = ""


def _maintainers_from(items: Optional[List[Dict[str, Any]]]) -> Tuple[Maintainer, ...]:
    result = []
    for item in items or []:
        if isinstance(item, dict) and item.get('name'):
            result.append(Maintainer(str(item['name']), str(item.get('email') or "")))
    return tuple(result)


class Repo(NamedTuple):
    """Chart repository identity"""
    name: str
    namespace: str = ""
    url: str = ""
    auth_header: str = ""

    def to_dict(self) -> Dict[str, str]:
        # auth_header never leaves the process
        return {'name': self.name, 'namespace': self.namespace, 'url': self.url}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'Repo':
        data = data or {}
        return cls(
            name=data.get('name') or "",
            namespace=data.get('namespace') or "",
            url=data.get('url') or "",
        )


class PackageVersion(NamedTuple):
    """A single chart version entry of a repository index"""
    name: str
    version: str
    app_version: str = ""
    created: datetime = MIN_TIMESTAMP
    digest: str = ""
    urls: Tuple[str, ...] = ()
    deprecated: bool = False
    description: str = ""
    home: str = ""
    icon: str = ""
    keywords: Tuple[str, ...] = ()
    sources: Tuple[str, ...] = ()
    maintainers: Tuple[Maintainer, ...] = ()
    annotations: Mapping[str, str] = MappingProxyType({})

    @classmethod
    def from_index_entry(cls, name: str, entry: Dict[str, Any]) -> 'PackageVersion':
        """
        Build a version from one raw index entry

        Args:
            name: Chart name the entry is listed under
            entry: Raw entry mapping from the index document

        Returns:
            PackageVersion: The normalized version record
        """
        annotations = entry.get('annotations') or {}
        return cls(
            name=str(entry.get('name') or name),
            version=str(entry.get('version') or ""),
            app_version=str(entry.get('appVersion') or ""),
            created=parse_timestamp(entry.get('created')),
            digest=str(entry.get('digest') or ""),
            urls=tuple(str(u) for u in entry.get('urls') or ()),
            deprecated=bool(entry.get('deprecated', False)),
            description=str(entry.get('description') or ""),
            home=str(entry.get('home') or ""),
            icon=str(entry.get('icon') or ""),
            keywords=tuple(str(k) for k in entry.get('keywords') or ()),
            sources=tuple(str(s) for s in entry.get('sources') or ()),
            maintainers=_maintainers_from(entry.get('maintainers')),
            annotations=MappingProxyType({str(k): str(v) for k, v in annotations.items()}),
        )


class RepositoryIndex(NamedTuple):
    """
    Parsed repository index

    ``entries`` maps chart names, in sorted order, to their versions with the
    most recent version first. The mapping is read-only.
    """
    api_version: str
    entries: Mapping[str, Tuple[PackageVersion, ...]]
    generated: datetime = MIN_TIMESTAMP

    def chart_names(self) -> List[str]:
        return list(self.entries)


class IndexSnapshot(NamedTuple):
    """A loaded index paired with the SHA-256 checksum of its source bytes"""
    index: RepositoryIndex
    checksum: str


class ChartVersion(NamedTuple):
    """Chart version as stored in the catalog"""
    version: str
    app_version: str = ""
    created: datetime = MIN_TIMESTAMP
    digest: str = ""
    urls: Tuple[str, ...] = ()

    @classmethod
    def from_package_version(cls, pv: PackageVersion) -> 'ChartVersion':
        return cls(pv.version, pv.app_version, pv.created, pv.digest, pv.urls)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'version': self.version,
            'app_version': self.app_version,
            'created': format_timestamp(self.created),
            'digest': self.digest,
            'urls': list(self.urls),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChartVersion':
        return cls(
            version=data.get('version') or "",
            app_version=data.get('app_version') or "",
            created=parse_timestamp(data.get('created')),
            digest=data.get('digest') or "",
            urls=tuple(data.get('urls') or ()),
        )


class Chart(NamedTuple):
    """Catalog record for one chart of one repository"""
    id: str
    name: str
    repo: Repo
    chart_versions: Tuple[ChartVersion, ...]
    description: str = ""
    home: str = ""
    icon: str = ""
    raw_icon: bytes = b""
    icon_content_type: str = ""
    category: str = ""
    keywords: Tuple[str, ...] = ()
    sources: Tuple[str, ...] = ()
    maintainers: Tuple[Maintainer, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the JSON document layout used by the catalog store"""
        data = {
            'ID': self.id,
            'name': self.name,
            'repo': self.repo.to_dict(),
            'description': self.description,
            'home': self.home,
            'keywords': list(self.keywords),
            'maintainers': [m._asdict() for m in self.maintainers],
            'sources': list(self.sources),
            'icon': self.icon,
            'raw_icon': base64.b64encode(self.raw_icon).decode('ascii'),
            'category': self.category,
            'chartVersions': [cv.to_dict() for cv in self.chart_versions],
        }
        if self.icon_content_type:
            data['icon_content_type'] = self.icon_content_type
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Chart':
        """
        Build a chart from a catalog JSON document

        Raises:
            binascii.Error: If raw_icon is not valid base64
        """
        raw_icon = data.get('raw_icon') or ""
        return cls(
            id=data.get('ID') or "",
            name=data.get('name') or "",
            repo=Repo.from_dict(data.get('repo')),
            chart_versions=tuple(ChartVersion.from_dict(cv) for cv in data.get('chartVersions') or ()),
            description=data.get('description') or "",
            home=data.get('home') or "",
            icon=data.get('icon') or "",
            raw_icon=base64.b64decode(raw_icon, validate=True) if raw_icon else b"",
            icon_content_type=data.get('icon_content_type') or "",
            category=data.get('category') or "",
            keywords=tuple(data.get('keywords') or ()),
            sources=tuple(data.get('sources') or ()),
            maintainers=_maintainers_from(data.get('maintainers')),
        )


class ChartFiles(NamedTuple):
    """Files extracted from one chart version archive"""
    id: str
    repo: Repo
    digest: str = ""
    readme: str = ""
    values: str = ""
    schema: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ID': self.id,
            'repo': self.repo.to_dict(),
            'digest': self.digest,
            'readme': self.readme,
            'values': self.values,
            'schema': self.schema,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChartFiles':
        return cls(
            id=data.get('ID') or "",
            repo=Repo.from_dict(data.get('repo')),
            digest=data.get('digest') or "",
            readme=data.get('readme') or "",
            values=data.get('values') or "",
            schema=data.get('schema') or "",
        )


class ChartCategory(NamedTuple):
    """Category name with the number of charts carrying it"""
    name: str
    count: int


class ChartQuery(NamedTuple):
    """Filter parameters for catalog list queries"""
    namespace: str = ""
    chart_name: str = ""
    version: str = ""
    app_version: str = ""
    repos: Tuple[str, ...] = ()
    categories: Tuple[str, ...] = ()
    search_query: str = ""
