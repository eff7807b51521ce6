"""
PostgreSQL Catalog Store

Read and filter charts stored in PostgreSQL, plus the writes used by the file importer.

Charts live in the ``charts`` table and the files of each chart version in the
``files`` table; both keep the record as a JSON document in the ``info`` column.
Queries are built with positional ``$n`` placeholders and bound as named
parameters when executed through SQLAlchemy.
"""

import base64
import binascii
import json
import logging
import re
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Tuple, Union

try:
    from sqlalchemy import create_engine, text
    from sqlalchemy.engine import Engine
    from sqlalchemy.exc import SQLAlchemyError
except ImportError:
    raise ImportError("SQLAlchemy is required. Install with: pip install SQLAlchemy psycopg2-binary")

from ..core.constants import CatalogConstants, ErrorMessages
from ..core.exceptions import CatalogStoreError, NotFoundError, ValidationError, VersionNotFoundError
from ..core.models import Chart, ChartCategory, ChartFiles, ChartQuery, Repo
from ..core.utils import contains_only_allowed_chars

logger = logging.getLogger(__name__)

CHARTS_TABLE = str(CatalogConstants.Table.CHARTS)
FILES_TABLE = str(CatalogConstants.Table.CHART_FILES)

_POSITIONAL_RE = re.compile(r'\$(\d+)')


def to_named_parameters(query: str, params: Sequence[Any]) -> Tuple[str, Dict[str, Any]]:
    """
    Rewrite ``$n`` placeholders to SQLAlchemy named parameters

    Args:
        query: SQL with positional placeholders
        params: Positional parameter values

    Returns:
        Tuple of (SQL with ``:pn`` placeholders, parameter mapping)
    """
    named = _POSITIONAL_RE.sub(lambda m: f":p{m.group(1)}", query)
    return named, {f"p{i}": value for i, value in enumerate(params, start=1)}


class ExactLookup(NamedTuple):
    """Match an identifier exactly"""
    value: str

    def condition(self, column: str) -> str:
        return f"{column} = $2"


class FallbackLookup(NamedTuple):
    """
    Match a two segment identifier against longer stored identifiers

    Recovers charts mirrored through an intermediate repository, e.g.
    ``jfrog/wordpress`` finds ``jfrog/bitnami/wordpress``. The first match
    wins.
    """
    pattern: str

    @property
    def value(self) -> str:
        return self.pattern

    def condition(self, column: str) -> str:
        return f"{column} ILIKE $2"


Lookup = Union[ExactLookup, FallbackLookup]


def lookup_plan(identifier: str) -> List[Lookup]:
    """
    Build the ordered lookups for a chart or chart files identifier

    The fallback is only added for identifiers with exactly two segments.
    """
    plan: List[Lookup] = [ExactLookup(identifier)]
    segments = identifier.split('/')
    if len(segments) == 2:
        plan.append(FallbackLookup(f"{segments[0]}%{segments[1]}"))
    return plan


def _decode_info(value: Any) -> Dict[str, Any]:
    if isinstance(value, (str, bytes)):
        return json.loads(value)
    return value


class PostgresAssetManager:
    """Chart catalog backed by PostgreSQL"""

    def __init__(self, engine: Engine, global_packaging_namespace: str):
        """
        Initialize the catalog store

        Args:
            engine: SQLAlchemy engine connected to the catalog database
            global_packaging_namespace: Namespace whose charts are visible from every namespace
        """
        self.engine = engine
        self.global_packaging_namespace = global_packaging_namespace

    @classmethod
    def from_url(cls, database_url: str, global_packaging_namespace: str) -> 'PostgresAssetManager':
        """Create a store with a pooled engine for database_url"""
        engine = create_engine(database_url, pool_pre_ping=True)
        return cls(engine, global_packaging_namespace)

    def close(self) -> None:
        self.engine.dispose()

    # Query execution

    def _fetch_all(self, query: str, params: Sequence[Any]) -> List[Any]:
        statement, bound = to_named_parameters(query, params)
        logger.debug(f"Executing catalog query: {statement}")
        with self.engine.connect() as conn:
            return list(conn.execute(text(statement), bound).all())

    def _fetch_one(self, query: str, params: Sequence[Any]) -> Optional[Any]:
        statement, bound = to_named_parameters(query, params)
        logger.debug(f"Executing catalog query: {statement}")
        with self.engine.connect() as conn:
            return conn.execute(text(statement), bound).first()

    def _execute_write(self, query: str, params: Sequence[Any]) -> List[Any]:
        statement, bound = to_named_parameters(query, params)
        logger.debug(f"Executing catalog write: {statement}")
        with self.engine.begin() as conn:
            result = conn.execute(text(statement), bound)
            return list(result.all()) if result.returns_rows else []

    def _query_info(self, table: str, column: str, namespace: str, identifier: str) -> Optional[Dict[str, Any]]:
        """
        Run the lookup plan of an identifier and return the first matching document

        Raises:
            CatalogStoreError: If the exact lookup fails
            NotFoundError: If the fallback lookup fails
        """
        for lookup in lookup_plan(identifier):
            query = f"SELECT info FROM {table} WHERE repo_namespace = $1 AND {lookup.condition(column)}"
            try:
                row = self._fetch_one(query, [namespace, lookup.value])
            except SQLAlchemyError as e:
                if isinstance(lookup, FallbackLookup):
                    raise NotFoundError(f"fallback lookup of '{identifier}' failed: {e}") from e
                raise CatalogStoreError(f"lookup of '{identifier}' failed: {e}") from e
            if row is not None:
                if isinstance(lookup, FallbackLookup):
                    logger.info(f"Resolved '{identifier}' in namespace '{namespace}' by fallback lookup")
                return _decode_info(row[0])
        return None

    # Point lookups

    def get_chart(self, namespace: str, chart_id: str) -> Chart:
        """
        Get a chart

        Args:
            namespace: Repository namespace
            chart_id: Chart identifier "{repo}/{name}"

        Returns:
            Chart: The chart with its raw icon decoded

        Raises:
            NotFoundError: If no chart matches
            CatalogStoreError: If the query fails or the stored icon is not valid base64
        """
        info = self._query_info(CHARTS_TABLE, "chart_id", namespace, chart_id)
        if info is None:
            raise NotFoundError(str(ErrorMessages.CatalogError.CHART_NOT_FOUND).format(
                chart_id=chart_id, namespace=namespace))
        try:
            return Chart.from_dict(info)
        except (binascii.Error, ValueError) as e:
            raise CatalogStoreError(f"invalid icon stored for chart '{chart_id}': {e}") from e

    def get_chart_version(self, namespace: str, chart_id: str, version: str) -> Chart:
        """
        Get a chart narrowed to a single version

        Raises:
            NotFoundError: If no chart matches
            VersionNotFoundError: If the chart has no such version
        """
        chart = self.get_chart(namespace, chart_id)
        for chart_version in chart.chart_versions:
            if chart_version.version == version:
                return chart._replace(chart_versions=(chart_version,))
        raise VersionNotFoundError(str(ErrorMessages.CatalogError.VERSION_NOT_FOUND).format(
            version=version, chart_id=chart_id))

    def get_chart_files(self, namespace: str, files_id: str) -> ChartFiles:
        """
        Get the files of a chart version

        Args:
            namespace: Repository namespace
            files_id: Files identifier "{chart id}-{version}"

        Raises:
            NotFoundError: If no files match
        """
        info = self._query_info(FILES_TABLE, "chart_files_id", namespace, files_id)
        if info is None:
            raise NotFoundError(str(ErrorMessages.CatalogError.FILES_NOT_FOUND).format(
                files_id=files_id, namespace=namespace))
        return ChartFiles.from_dict(info)

    # Filtered queries

    def generate_where_clause(self, query: ChartQuery) -> Tuple[str, List[Any]]:
        """
        Build the WHERE clause of a filtered chart query

        Args:
            query: Filter parameters

        Returns:
            Tuple of (clause, positional parameters), the clause is empty without filters

        Raises:
            ValidationError: If version or app version contain disallowed characters
        """
        clauses: List[str] = []
        params: List[Any] = []

        if query.namespace != CatalogConstants.ALL_NAMESPACES:
            params.extend([query.namespace, self.global_packaging_namespace])
            clauses.append(f"(repo_namespace = ${len(params) - 1} OR repo_namespace = ${len(params)})")

        if query.chart_name:
            params.append(query.chart_name)
            clauses.append(f"(info->>'name' = ${len(params)})")

        if query.version and query.app_version:
            if not contains_only_allowed_chars(query.version):
                raise ValidationError(str(ErrorMessages.CatalogError.INVALID_VERSION))
            if not contains_only_allowed_chars(query.app_version):
                raise ValidationError(str(ErrorMessages.CatalogError.INVALID_APP_VERSION))
            params.append(json.dumps([{"version": query.version, "app_version": query.app_version}]))
            clauses.append(f"(info->'chartVersions' @> CAST(${len(params)} AS jsonb))")

        repo_clauses = []
        for repo in query.repos or ():
            if repo:
                params.append(repo)
                repo_clauses.append(f"(repo_name = ${len(params)})")
        if repo_clauses:
            clauses.append("(" + " OR ".join(repo_clauses) + ")")

        category_clauses = []
        for category in query.categories or ():
            if category:
                params.append(category)
                category_clauses.append(f"info->>'category' = ${len(params)}")
        if category_clauses:
            clauses.append("(" + " OR ".join(category_clauses) + ")")

        if query.search_query:
            params.append(f"%{query.search_query}%")
            n = len(params)
            clauses.append(
                f"((info ->> 'name' ILIKE ${n}) OR "
                f"(info ->> 'description' ILIKE ${n}) OR "
                f"(info -> 'repo' ->> 'name' ILIKE ${n}) OR "
                f"(info ->> 'keywords' ILIKE ${n}) OR "
                f"(info ->> 'sources' ILIKE ${n}) OR "
                f"(info -> 'maintainers' ->> 'name' ILIKE ${n}))"
            )

        where = "WHERE " + " AND ".join(clauses) if clauses else ""
        return where, params

    def get_paginated_chart_list(self, where: str, params: Sequence[Any],
                                 start_item_number: int, page_size: int) -> List[Chart]:
        """
        Get a page of charts ordered by name

        LIMIT is applied only for a positive page size and OFFSET only for a
        positive start item number.

        Raises:
            CatalogStoreError: If the query fails
        """
        pagination = ""
        if page_size > 0:
            pagination = f"LIMIT {int(page_size)}"
        if start_item_number > 0:
            pagination = f"{pagination} OFFSET {int(start_item_number)}".strip()

        query = f"SELECT info FROM {CHARTS_TABLE} {where} ORDER BY (info->>'name') ASC {pagination}"
        try:
            rows = self._fetch_all(query.strip(), params)
            return [Chart.from_dict(_decode_info(row[0])) for row in rows]
        except SQLAlchemyError as e:
            raise CatalogStoreError(f"failed to list charts: {e}") from e
        except (binascii.Error, ValueError) as e:
            raise CatalogStoreError(f"invalid chart document: {e}") from e

    def get_paginated_chart_list_with_filters(self, query: ChartQuery, start_item_number: int,
                                              page_size: int) -> List[Chart]:
        """
        Get a page of charts matching the filters

        Raises:
            ValidationError: If the version filters contain disallowed characters
            CatalogStoreError: If the query fails
        """
        where, params = self.generate_where_clause(query)
        return self.get_paginated_chart_list(where, params, start_item_number, page_size)

    def get_all_chart_categories(self, query: ChartQuery) -> List[ChartCategory]:
        """
        Count charts per category for charts matching the filters

        Raises:
            ValidationError: If the version filters contain disallowed characters
            CatalogStoreError: If the query fails
        """
        where, params = self.generate_where_clause(query)
        sql = (
            f"SELECT (info ->> 'category') AS name, COUNT((info ->> 'category')) AS count "
            f"FROM {CHARTS_TABLE} {where} "
            f"GROUP BY (info ->> 'category') ORDER BY (info ->> 'category') ASC"
        )
        try:
            rows = self._fetch_all(sql, params)
        except SQLAlchemyError as e:
            raise CatalogStoreError(f"failed to list chart categories: {e}") from e
        return [ChartCategory(name=row[0] or "", count=int(row[1])) for row in rows]

    # Writes used by the file importer

    def update_icon(self, repo: Repo, data: bytes, content_type: str, chart_id: str) -> None:
        """
        Store the raw icon of a chart

        Raises:
            NotFoundError: If no chart was updated
            CatalogStoreError: If the update fails or matched more than one chart
        """
        query = (
            f"UPDATE {CHARTS_TABLE} SET info = info || jsonb_build_object("
            f"'raw_icon', CAST($1 AS text), 'icon_content_type', CAST($2 AS text)) "
            f"WHERE chart_id = $3 AND repo_namespace = $4 AND repo_name = $5 RETURNING ID"
        )
        params = [base64.b64encode(data).decode('ascii'), content_type, chart_id, repo.namespace, repo.name]
        try:
            rows = self._execute_write(query, params)
        except SQLAlchemyError as e:
            raise CatalogStoreError(f"failed to update icon for chart '{chart_id}': {e}") from e
        if not rows:
            raise NotFoundError(str(ErrorMessages.CatalogError.CHART_NOT_FOUND).format(
                chart_id=chart_id, namespace=repo.namespace))
        if len(rows) > 1:
            raise CatalogStoreError(f"more than one icon updated for chart id '{chart_id}'")

    def files_exist(self, repo: Repo, chart_files_id: str, digest: str) -> bool:
        """Check whether files with this digest are already stored; query failures count as absent"""
        query = (
            f"SELECT EXISTS(SELECT 1 FROM {FILES_TABLE} "
            f"WHERE chart_files_id = $1 AND repo_name = $2 AND repo_namespace = $3 "
            f"AND info ->> 'digest' = $4)"
        )
        try:
            row = self._fetch_one(query, [chart_files_id, repo.name, repo.namespace, digest])
        except SQLAlchemyError as e:
            logger.debug(f"Files existence check for {chart_files_id} failed: {e}")
            return False
        return bool(row and row[0])

    def insert_files(self, chart_id: str, files: ChartFiles) -> None:
        """
        Insert the files of a chart version, replacing a stored copy

        Raises:
            ValidationError: If the files carry no repository
            CatalogStoreError: If the insert fails
        """
        if not files.repo.name:
            raise ValidationError(f"unable to insert file without repo: {files.id!r}")
        query = (
            f"INSERT INTO {FILES_TABLE} (chart_id, repo_name, repo_namespace, chart_files_id, info) "
            f"VALUES ($1, $2, $3, $4, CAST($5 AS jsonb)) "
            f"ON CONFLICT (repo_namespace, chart_files_id) DO UPDATE SET info = CAST($5 AS jsonb)"
        )
        params = [chart_id, files.repo.name, files.repo.namespace, files.id, json.dumps(files.to_dict())]
        try:
            self._execute_write(query, params)
        except SQLAlchemyError as e:
            raise CatalogStoreError(f"failed to insert files '{files.id}': {e}") from e
