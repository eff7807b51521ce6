"""
Catalog Libraries

Persistent chart catalog in PostgreSQL, chart file import and namespace access checks.
"""

from .importer import FileImporter, extract_chart_files, is_url_domain_equal
from .namespaces import (
    filter_allowed_namespaces, filter_active_namespaces,
    get_trusted_namespaces_from_header, get_accessible_namespaces
)
from .postgres import PostgresAssetManager, ExactLookup, FallbackLookup, lookup_plan, to_named_parameters

__all__ = [
    'FileImporter',
    'extract_chart_files',
    'is_url_domain_equal',
    'filter_allowed_namespaces',
    'filter_active_namespaces',
    'get_trusted_namespaces_from_header',
    'get_accessible_namespaces',
    'PostgresAssetManager',
    'ExactLookup',
    'FallbackLookup',
    'lookup_plan',
    'to_named_parameters',
]
