"""
Chart catalog service tests
"""

import logging
from unittest.mock import MagicMock, patch

import pytest

from chart_catalog.libs.core.config import ConfigManager
from chart_catalog.libs.core.exceptions import ConfigurationError, NoChartError, ValidationError
from chart_catalog.libs.core.models import ChartQuery
from chart_catalog.libs.core.utils import setup_logging
from chart_catalog.libs.service import ChartCatalogService

from test_constants import CommonTestConstants, RepositoryTestConstants


def make_config(tmp_path, **sections):
    data = {
        'repository': {
            'name': CommonTestConstants.REPO_NAME,
            'namespace': CommonTestConstants.REPO_NAMESPACE,
            'url': CommonTestConstants.REPO_URL,
            'cache_dir': str(tmp_path),
        },
        'cache': {'enabled': True, 'key': "kubeapps/bitnami", 'max_items': 4},
        'summary': {'major': 1, 'minor': 2, 'patch': 2},
    }
    data.update(sections)
    config = ConfigManager()
    config.load_config_dict(data)
    return config


class TestChartCatalogService:

    def test_index_operations(self, tmp_path, index_session, http_calls):
        with ChartCatalogService(make_config(tmp_path), session=index_session) as service:
            checksum = service.load_index()
            assert service.load_index() == checksum
            assert service.get_chart_version(RepositoryTestConstants.WORDPRESS).version == "9.0.0"
            assert [s.pkg_version for s in service.summarize(RepositoryTestConstants.WORDPRESS)] == [
                "9.1.0-rc.1", "9.0.0"]
            assert [c.id for c in service.charts()] == ["bitnami/apache", "bitnami/wordpress"]

        assert len(http_calls) == 1
        assert service.cache_metrics == {'cache_miss': 1}

    def test_summarize_unknown_chart(self, tmp_path, index_session):
        service = ChartCatalogService(make_config(tmp_path), session=index_session)
        with pytest.raises(NoChartError, match="unknown"):
            service.summarize("unknown")

    def test_refresh_index(self, tmp_path, index_session, http_calls):
        service = ChartCatalogService(make_config(tmp_path, cache={'enabled': False}), session=index_session)
        service.load_index()
        service.refresh_index()
        assert len(http_calls) == 2
        assert service.repository.has_index()

    def test_store_required(self, tmp_path, index_session):
        service = ChartCatalogService(make_config(tmp_path), session=index_session)
        with pytest.raises(ConfigurationError):
            service.get_chart("bitnami/wordpress")

    def test_store_queries_use_repository_namespace(self, tmp_path, index_session):
        store = MagicMock()
        service = ChartCatalogService(make_config(tmp_path), session=index_session, asset_manager=store)

        service.get_chart("bitnami/wordpress")
        store.get_chart.assert_called_once_with(CommonTestConstants.REPO_NAMESPACE, "bitnami/wordpress")

        service.get_chart_files("bitnami/wordpress-9.0.0", namespace="other")
        store.get_chart_files.assert_called_once_with("other", "bitnami/wordpress-9.0.0")

        query = ChartQuery(namespace="_all")
        service.list_charts(query, 0, 10)
        store.get_paginated_chart_list_with_filters.assert_called_once_with(query, 0, 10)

    def test_sync_files(self, tmp_path, index_session):
        store = MagicMock()
        store.files_exist.return_value = True
        service = ChartCatalogService(make_config(tmp_path, sync={'workers': 2, 'fetch_latest_only': True}),
                                      session=index_session, asset_manager=store)

        results = service.sync_files()

        # the wordpress icon is not served by the index session
        assert results == {'icons': 1, 'files': 2, 'failed': 1}
        assert store.files_exist.call_count == 2

    def test_logging_configured_from_global_section(self, tmp_path, index_session):
        config = make_config(tmp_path, **{'global': {'log_level': 'WARNING'}})
        with patch("chart_catalog.libs.service.setup_logging") as setup:
            ChartCatalogService(config, session=index_session)
        setup.assert_called_once_with(False, 'WARNING')

    def test_logging_untouched_without_settings(self, tmp_path, index_session):
        with patch("chart_catalog.libs.service.setup_logging") as setup:
            ChartCatalogService(make_config(tmp_path), session=index_session)
        setup.assert_not_called()


class TestSetupLogging:

    def test_level_and_handlers(self, restore_logging):
        setup_logging(level="warning")

        assert restore_logging.level == logging.WARNING
        assert [h.level for h in restore_logging.handlers] == [logging.WARNING, logging.ERROR]
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_debug_overrides_level(self, restore_logging):
        setup_logging(debug=True, level="ERROR")

        assert restore_logging.level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.DEBUG

    def test_unknown_level(self, restore_logging):
        handlers = restore_logging.handlers[:]
        with pytest.raises(ValidationError, match="Unknown log level"):
            setup_logging(level="verbose")
        assert restore_logging.handlers == handlers
