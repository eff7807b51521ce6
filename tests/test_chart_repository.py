"""
Chart repository loading, caching and version resolution tests
"""

import hashlib
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import httpx
import pytest

from chart_catalog.libs.core.exceptions import (
    CacheKeyError, DownloadError, FetchError, NoChartError, NoIndexError, NoMatchError,
    NoVersionsError, ParseError, RepositoryError
)
from chart_catalog.libs.core.models import IndexSnapshot, PackageVersion, RepositoryIndex
from chart_catalog.libs.repository.chart_repository import ChartRepository, resolve_chart_url
from chart_catalog.libs.repository.memcache import IndexMemoryCache
from chart_catalog.libs.repository.session import RepositorySession

from test_constants import CommonTestConstants, RepositoryTestConstants, TestUtilities


class TestVersionResolution:

    def test_no_index(self, index_session):
        repository = ChartRepository(CommonTestConstants.REPO_URL, index_session)
        with pytest.raises(NoIndexError):
            repository.get(RepositoryTestConstants.WORDPRESS)

    def test_unknown_chart(self, loaded_repository):
        with pytest.raises(NoChartError):
            loaded_repository.get("unknown")

    def test_chart_without_versions(self, loaded_repository):
        empty = RepositoryIndex(api_version="v1", entries={"empty": ()})
        loaded_repository._install(IndexSnapshot(empty, "checksum"))
        with pytest.raises(NoVersionsError):
            loaded_repository.get("empty")

    def test_literal_version_match(self, loaded_repository):
        assert loaded_repository.get(RepositoryTestConstants.WORDPRESS, "latest").version == "latest"

    @pytest.mark.parametrize("constraint", ["", "*"])
    def test_latest_stable(self, loaded_repository, constraint):
        version = loaded_repository.get(RepositoryTestConstants.WORDPRESS, constraint)
        assert version.version == RepositoryTestConstants.LATEST_STABLE_WORDPRESS

    def test_max_satisfying(self, loaded_repository):
        assert loaded_repository.get(RepositoryTestConstants.WORDPRESS, "~8.5").version == "8.5.6"

    def test_partial_version_acts_as_wildcard(self, loaded_repository):
        assert loaded_repository.get(RepositoryTestConstants.WORDPRESS, "8.5").version == "8.5.6"

    def test_prerelease_constraint(self, loaded_repository):
        assert loaded_repository.get(RepositoryTestConstants.WORDPRESS, ">=9.1.0-0").version == "9.1.0-rc.1"

    def test_no_match(self, loaded_repository):
        with pytest.raises(NoMatchError, match="no 'wordpress' chart with version matching '>=10' found"):
            loaded_repository.get(RepositoryTestConstants.WORDPRESS, ">=10")

    def test_malformed_constraint(self, loaded_repository):
        with pytest.raises(ParseError):
            loaded_repository.get(RepositoryTestConstants.WORDPRESS, ">>1")

    def test_equal_versions_prefer_earlier_created(self, index_session):
        make = TestUtilities.make_version_entry
        data = TestUtilities.make_index_yaml({
            "nginx": [
                make("nginx", "1.0.0+late", created=CommonTestConstants.CREATED_LATE),
                make("nginx", "1.0.0+early", created=CommonTestConstants.CREATED_EARLY),
            ],
        })
        repository = ChartRepository(CommonTestConstants.REPO_URL, index_session)
        repository.load_index_from_bytes(data)
        assert repository.get("nginx", ">=1.0.0").version == "1.0.0+early"


class TestStrategicLoad:

    def test_single_remote_fetch(self, index_session, http_calls, index_yaml, tmp_path):
        repository = ChartRepository(CommonTestConstants.REPO_URL, index_session, cache_dir=str(tmp_path))
        repository.strategically_load()
        repository.strategically_load()

        assert len(http_calls) == 1
        assert str(http_calls[0].url) == CommonTestConstants.INDEX_URL
        assert repository.checksum == hashlib.sha256(index_yaml).hexdigest()
        assert repository.cached
        assert Path(repository.cache_path).parent == tmp_path

    def test_reload_from_disk_after_unload(self, index_session, http_calls, tmp_path):
        repository = ChartRepository(CommonTestConstants.REPO_URL, index_session, cache_dir=str(tmp_path))
        repository.strategically_load()
        repository.unload()
        assert not repository.has_index()

        repository.strategically_load()
        assert repository.has_index()
        assert len(http_calls) == 1

    def test_existing_cache_file(self, index_session, http_calls, index_yaml, tmp_path):
        cache_file = tmp_path / "index.yaml"
        cache_file.write_bytes(index_yaml)
        repository = ChartRepository(CommonTestConstants.REPO_URL, index_session, cache_path=str(cache_file))
        repository.strategically_load()

        assert http_calls == []
        assert repository.has_cache_file()
        assert not repository.cached
        repository.remove_cache()
        assert cache_file.exists()

    def test_remote_failure(self, tmp_path):
        session = TestUtilities.make_session({})
        repository = ChartRepository(CommonTestConstants.REPO_URL, session, cache_dir=str(tmp_path))
        with pytest.raises(FetchError, match="404"):
            repository.strategically_load()
        assert not repository.has_index()

    def test_shared_cache_metrics(self, index_session, http_calls, tmp_path):
        cache = IndexMemoryCache(max_items=10)
        counts, record = TestUtilities.counting_metric()

        first = ChartRepository(CommonTestConstants.REPO_URL, index_session, cache_dir=str(tmp_path),
                                index_cache=cache, cache_key="tenant/bitnami", record_metric=record)
        first.strategically_load()
        second = ChartRepository(CommonTestConstants.REPO_URL, index_session, cache_dir=str(tmp_path),
                                 index_cache=cache, cache_key="tenant/bitnami", record_metric=record)
        second.strategically_load()

        assert len(http_calls) == 1
        assert counts == {'cache_miss': 1, 'cache_hit': 1}
        assert second.checksum == first.checksum

    def test_refresh_replaces_cache_file_and_shared_entry(self, index_session, http_calls, tmp_path):
        cache = IndexMemoryCache(max_items=10)
        repository = ChartRepository(CommonTestConstants.REPO_URL, index_session, cache_dir=str(tmp_path),
                                     index_cache=cache, cache_key="tenant/bitnami")
        repository.strategically_load()
        previous_file = Path(repository.cache_path)

        checksum = repository.refresh()

        assert len(http_calls) == 2
        assert cache.get("tenant/bitnami").checksum == checksum == repository.checksum
        assert not previous_file.exists()
        assert Path(repository.cache_path).exists()

    def test_full_shared_cache_does_not_fail_load(self, index_session, tmp_path):
        repository = ChartRepository(CommonTestConstants.REPO_URL, index_session, cache_dir=str(tmp_path),
                                     index_cache=IndexMemoryCache(max_items=0), cache_key="key")
        repository.strategically_load()
        assert repository.has_index()

    def test_shared_cache_requires_key(self, index_session):
        with pytest.raises(CacheKeyError):
            ChartRepository(CommonTestConstants.REPO_URL, index_session,
                            index_cache=IndexMemoryCache(max_items=1), cache_key="")

    def test_load_from_cache_without_file(self, index_session):
        repository = ChartRepository(CommonTestConstants.REPO_URL, index_session)
        with pytest.raises(RepositoryError, match="no cache path set"):
            repository.load_from_cache()

    def test_cache_index_then_load(self, index_session, index_yaml, tmp_path):
        repository = ChartRepository(CommonTestConstants.REPO_URL, index_session, cache_dir=str(tmp_path))
        checksum = repository.cache_index()
        assert not repository.has_index()
        repository.load_from_cache()
        assert repository.checksum == checksum == hashlib.sha256(index_yaml).hexdigest()


class TestCacheLifecycle:

    def test_remove_cache(self, index_session, tmp_path):
        repository = ChartRepository(CommonTestConstants.REPO_URL, index_session, cache_dir=str(tmp_path))
        repository.strategically_load()
        cache_file = Path(repository.cache_path)
        assert cache_file.exists()

        repository.remove_cache()
        assert not cache_file.exists()
        assert not repository.has_cache_file()

    def test_uninitialized_noops(self, index_session):
        repository = ChartRepository(CommonTestConstants.REPO_URL, index_session)
        repository.unload()
        repository.remove_cache()
        assert not repository.has_index()


class TestConcurrentAccess:

    def test_readers_keep_old_snapshot_during_refresh(self, index_yaml, tmp_path):
        refreshed_yaml = TestUtilities.make_index_yaml({
            RepositoryTestConstants.WORDPRESS: [
                TestUtilities.make_version_entry(RepositoryTestConstants.WORDPRESS, "10.0.0"),
            ],
        })
        bodies = [index_yaml, refreshed_yaml]
        fetching = threading.Event()
        release = threading.Event()

        def handler(request):
            body = bodies.pop(0)
            if not bodies:
                fetching.set()
                release.wait(5)
            return httpx.Response(200, content=body)

        session = RepositorySession(transport=httpx.MockTransport(handler))
        repository = ChartRepository(CommonTestConstants.REPO_URL, session, cache_dir=str(tmp_path))
        repository.strategically_load()
        old_checksum = repository.checksum

        with ThreadPoolExecutor(max_workers=1) as pool:
            refresh = pool.submit(repository.refresh)
            try:
                assert fetching.wait(5)
                for _ in range(50):
                    assert repository.get(RepositoryTestConstants.WORDPRESS).version == "9.0.0"
                assert repository.checksum == old_checksum
            finally:
                release.set()
            new_checksum = refresh.result(timeout=5)

        assert new_checksum == hashlib.sha256(refreshed_yaml).hexdigest()
        assert repository.get(RepositoryTestConstants.WORDPRESS).version == "10.0.0"
        assert len(list(tmp_path.iterdir())) == 1
        session.close()

    def test_concurrent_loads(self, index_session, tmp_path):
        repository = ChartRepository(CommonTestConstants.REPO_URL, index_session, cache_dir=str(tmp_path))
        workers = 8
        barrier = threading.Barrier(workers)

        def load_and_resolve():
            barrier.wait(5)
            repository.strategically_load()
            return repository.get(RepositoryTestConstants.WORDPRESS).version

        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(load_and_resolve) for _ in range(workers)]
            results = [future.result(timeout=10) for future in futures]

        assert results == [RepositoryTestConstants.LATEST_STABLE_WORDPRESS] * workers

    def test_concurrent_loads_and_refreshes(self, index_session, tmp_path):
        repository = ChartRepository(CommonTestConstants.REPO_URL, index_session, cache_dir=str(tmp_path))
        barrier = threading.Barrier(6)

        def load():
            barrier.wait(5)
            for _ in range(10):
                repository.unload()
                repository.strategically_load()

        def refresh():
            barrier.wait(5)
            for _ in range(10):
                repository.refresh()

        with ThreadPoolExecutor(max_workers=6) as pool:
            futures = [pool.submit(load) for _ in range(3)] + [pool.submit(refresh) for _ in range(3)]
            for future in futures:
                future.result(timeout=30)

        assert repository.has_index()

    def test_readers_during_unload(self, index_session, tmp_path):
        repository = ChartRepository(CommonTestConstants.REPO_URL, index_session, cache_dir=str(tmp_path))
        repository.strategically_load()
        stop = threading.Event()
        unexpected = []

        def reload():
            while not stop.is_set():
                repository.unload()
                repository.strategically_load()

        def read():
            for _ in range(200):
                try:
                    version = repository.get(RepositoryTestConstants.WORDPRESS)
                except NoIndexError:
                    continue
                if version.version != RepositoryTestConstants.LATEST_STABLE_WORDPRESS:
                    unexpected.append(version.version)

        with ThreadPoolExecutor(max_workers=4) as pool:
            reloader = pool.submit(reload)
            readers = [pool.submit(read) for _ in range(3)]
            try:
                for future in readers:
                    future.result(timeout=30)
            finally:
                stop.set()
            reloader.result(timeout=30)

        assert unexpected == []


class TestDownloadChart:

    def test_relative_url(self, http_calls, index_yaml):
        archive_url = "https://charts.example.com/bitnami/charts/wordpress-9.0.0.tgz"
        session = TestUtilities.make_session({archive_url: (200, b"archive", {})}, http_calls)
        repository = ChartRepository(CommonTestConstants.REPO_URL, session)
        repository.load_index_from_bytes(index_yaml)

        version = repository.get(RepositoryTestConstants.WORDPRESS, "9.0.0")
        assert repository.download_chart(version) == b"archive"
        assert str(http_calls[-1].url) == archive_url

    def test_no_urls(self, loaded_repository):
        with pytest.raises(DownloadError):
            loaded_repository.download_chart(PackageVersion("wordpress", "1.0.0"))

    def test_authorization_sent(self, index_yaml, tmp_path):
        calls = []
        session = TestUtilities.make_session({CommonTestConstants.INDEX_URL: (200, index_yaml, {})},
                                             calls, auth_header=CommonTestConstants.AUTH_HEADER)
        ChartRepository(CommonTestConstants.REPO_URL, session, cache_dir=str(tmp_path)).strategically_load()
        assert calls[0].headers["Authorization"] == CommonTestConstants.AUTH_HEADER


class TestResolveChartURL:

    @pytest.mark.parametrize("repository_url,ref,expected", [
        ("https://example.com/charts", "wordpress-1.0.0.tgz",
         "https://example.com/charts/wordpress-1.0.0.tgz"),
        ("https://example.com/charts/", "sub/wordpress-1.0.0.tgz",
         "https://example.com/charts/sub/wordpress-1.0.0.tgz"),
        ("https://example.com/charts?token=abc", "wordpress-1.0.0.tgz",
         "https://example.com/charts/wordpress-1.0.0.tgz?token=abc"),
        ("https://example.com/charts", "https://cdn.example.org/wordpress-1.0.0.tgz",
         "https://cdn.example.org/wordpress-1.0.0.tgz"),
    ])
    def test_resolution(self, repository_url, ref, expected):
        assert resolve_chart_url(repository_url, ref) == expected
