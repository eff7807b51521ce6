"""
Configuration loading tests
"""

import pytest

from chart_catalog.libs.core.config import ConfigManager
from chart_catalog.libs.core.exceptions import ConfigurationError

VALID_CONFIG = """
repository:
  name: bitnami
  namespace: kubeapps
  url: https://charts.example.com/bitnami
  timeout: 10
cache:
  enabled: true
  key: kubeapps/bitnami
  ttl: 300
database:
  url: postgresql+psycopg2://kubeapps@localhost/assets
  global_packaging_namespace: kubeapps
summary:
  major: 2
global:
  log_level: DEBUG
"""


class TestConfigManager:

    def test_load_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(VALID_CONFIG)

        config = ConfigManager()
        config.load_config(str(path))

        assert config.get_value('repository.name') == "bitnami"
        assert config.get_value('cache.ttl') == 300
        assert config.get_value('summary.minor', 3) == 3
        assert config.get_section('sync') == {}
        assert config.config_file_path == str(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            ConfigManager().load_config(str(tmp_path / "missing.yaml"))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("repository: [unclosed")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            ConfigManager().load_config(str(path))

    @pytest.mark.parametrize("data,message", [
        ({}, "Required field repository is missing"),
        ({'repository': {'name': "bitnami"}}, "Required field repository.url is missing"),
        ({'repository': {'name': "bitnami", 'url': "u", 'timeout': True}}, "repository.timeout must be a int or float"),
        ({'repository': {'name': "bitnami", 'url': "u"}, 'global': {'log_level': "TRACE"}},
         "global.log_level must be one of"),
        ({'repository': {'name': "bitnami", 'url': "u"}, 'cache': {'enabled': True}}, "cache.key is required"),
    ])
    def test_validation(self, data, message):
        with pytest.raises(ConfigurationError, match=message):
            ConfigManager().load_config_dict(data)

    def test_not_a_mapping(self):
        with pytest.raises(ConfigurationError, match="must be a dictionary"):
            ConfigManager().load_config_dict(["repository"])
