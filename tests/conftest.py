"""
Shared pytest fixtures
"""

import logging

import pytest

from chart_catalog.libs.repository.chart_repository import ChartRepository
from chart_catalog.libs.repository.parser import parse_index

from test_constants import CommonTestConstants, TestUtilities


@pytest.fixture
def index_yaml():
    return TestUtilities.sample_index_yaml()


@pytest.fixture
def index(index_yaml):
    return parse_index(index_yaml)


@pytest.fixture
def repo():
    return TestUtilities.make_repo()


@pytest.fixture
def http_calls():
    return []


@pytest.fixture
def index_session(index_yaml, http_calls):
    routes = {CommonTestConstants.INDEX_URL: (200, index_yaml, {})}
    session = TestUtilities.make_session(routes, http_calls)
    yield session
    session.close()


@pytest.fixture
def loaded_repository(index_yaml, index_session, tmp_path):
    repository = ChartRepository(CommonTestConstants.REPO_URL, index_session, cache_dir=str(tmp_path))
    repository.load_index_from_bytes(index_yaml)
    return repository


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    httpx_logger = logging.getLogger("httpx")
    handlers, level, httpx_level = root.handlers[:], root.level, httpx_logger.level
    yield root
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)
    httpx_logger.setLevel(httpx_level)
