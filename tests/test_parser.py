"""
Index parser and chart identifier tests
"""

import pytest

from chart_catalog.libs.core.exceptions import ParseError, ValidationError
from chart_catalog.libs.core.models import PackageVersion
from chart_catalog.libs.core.utils import (
    make_chart_id, split_chart_identifier, unescape_chart_id
)
from chart_catalog.libs.repository.parser import charts_from_index, parse_index, sort_versions

from test_constants import RepositoryTestConstants, TestUtilities


class TestParseIndex:

    def test_entries_sorted_by_name(self, index):
        assert list(index.entries) == [RepositoryTestConstants.APACHE, RepositoryTestConstants.WORDPRESS]
        assert index.api_version == "v1"

    def test_versions_newest_first_with_unparsable_last(self, index):
        versions = [pv.version for pv in index.entries[RepositoryTestConstants.WORDPRESS]]
        assert versions == ["9.1.0-rc.1", "9.0.0", "8.5.6", "8.5.5", "latest"]

    def test_deprecated_and_empty_charts_skipped(self, index):
        assert RepositoryTestConstants.DEPRECATED_CHART not in index.entries
        assert "empty" not in index.entries

    def test_missing_api_version(self):
        data = TestUtilities.make_index_yaml({}, api_version=None)
        with pytest.raises(ParseError, match="no API version specified"):
            parse_index(data)

    def test_malformed_yaml(self):
        with pytest.raises(ParseError):
            parse_index(b"apiVersion: v1\nentries: [unclosed")

    def test_entries_without_version_skipped(self):
        data = TestUtilities.make_index_yaml({
            "nginx": [{'name': "nginx"}, TestUtilities.make_version_entry("nginx", "1.2.3")],
        })
        index = parse_index(data)
        assert [pv.version for pv in index.entries["nginx"]] == ["1.2.3"]

    def test_entries_are_read_only(self, index):
        with pytest.raises(TypeError):
            index.entries["new"] = ()

    def test_fractional_timestamps_accepted(self):
        data = TestUtilities.make_index_yaml({
            "nginx": [TestUtilities.make_version_entry(
                "nginx", "1.0.0", created=RepositoryTestConstants.CREATED_LATE)],
        })
        created = parse_index(data).entries["nginx"][0].created
        assert (created.year, created.microsecond) == (2021, 123456)


class TestSortVersions:

    def test_semantic_before_lexical(self):
        versions = [PackageVersion("c", v) for v in ["beta", "1.10.0", "alpha", "1.9.0"]]
        assert [pv.version for pv in sort_versions(versions)] == ["1.10.0", "1.9.0", "beta", "alpha"]


class TestChartsFromIndex:

    def test_full_history(self, index, repo):
        charts = charts_from_index(index, repo)
        assert [c.id for c in charts] == ["bitnami/apache", "bitnami/wordpress"]
        wordpress = charts[1]
        assert len(wordpress.chart_versions) == 5
        assert wordpress.repo == repo

    def test_latest_only(self, index, repo):
        charts = charts_from_index(index, repo, fetch_latest_only=True)
        assert all(len(c.chart_versions) == 1 for c in charts)
        assert charts[1].chart_versions[0].version == "9.1.0-rc.1"

    def test_category_from_annotation(self, index, repo):
        apache = charts_from_index(index, repo)[0]
        assert apache.category == RepositoryTestConstants.CATEGORY


class TestChartIdentifiers:

    @pytest.mark.parametrize("name", ["wordpress", "my/chart", "chart with space", "100%"])
    def test_id_round_trip(self, name):
        chart_id = make_chart_id("bitnami", name)
        assert len(chart_id.split('/')) == 2
        assert unescape_chart_id(chart_id) == name

    @pytest.mark.parametrize("name,expected", [
        ("foo+bar", "bitnami/foo+bar"),
        ("a:b@c=d&e$f", "bitnami/a:b@c=d&e$f"),
        ("a,b;c?d", "bitnami/a%2Cb%3Bc%3Fd"),
        ("my/chart", "bitnami/my%2Fchart"),
    ])
    def test_path_segment_escaping(self, name, expected):
        assert make_chart_id("bitnami", name) == expected

    @pytest.mark.parametrize("chart_id", ["wordpress", "a/b/c", "/wordpress", "bitnami/"])
    def test_split_requires_two_segments(self, chart_id):
        with pytest.raises(ValidationError):
            split_chart_identifier(chart_id)
