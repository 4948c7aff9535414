"""
Unit tests for schemaledger Configuration Loader.

Tests ConfigLoader: YAML loading, env var expansion, environment
overrides, defaults, and save/load roundtrip.
"""

import pytest
import yaml

from schemaledger.config.loader import ConfigLoader


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "SCHEMALEDGER_DATABASE_URL",
        "SCHEMALEDGER_LOG_LEVEL",
        "SCHEMALEDGER_LOG_FORMAT",
    ):
        monkeypatch.delenv(name, raising=False)


class TestConfigLoaderDefaults:
    """Tests for default configuration."""

    def test_defaults_returned_for_missing_file(self, tmp_path):
        missing = str(tmp_path / "nonexistent.yaml")
        config = ConfigLoader.load(missing)
        assert config == ConfigLoader._get_defaults()

    def test_defaults_have_required_keys(self):
        defaults = ConfigLoader._get_defaults()
        assert "database_url" in defaults
        assert "migrations" in defaults
        assert "logging" in defaults

    def test_default_table_name(self):
        defaults = ConfigLoader._get_defaults()
        assert defaults["migrations"]["table_name"] == "parsql_migrations"


class TestConfigLoaderYAML:
    """Tests for YAML file loading."""

    def test_load_simple_config(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            yaml.dump({"schemaledger": {"database_url": "sqlite:///app.db"}})
        )
        config = ConfigLoader.load(str(config_file))
        assert config["database_url"] == "sqlite:///app.db"

    def test_load_without_section(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.dump({"database_url": "sqlite:///direct.db"}))
        config = ConfigLoader.load(str(config_file))
        assert config["database_url"] == "sqlite:///direct.db"

    def test_nested_values_merge_over_defaults(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        data = {"schemaledger": {"migrations": {"directory": "db/migrations"}}}
        config_file.write_text(yaml.dump(data))

        config = ConfigLoader.load(str(config_file))

        assert config["migrations"]["directory"] == "db/migrations"
        assert config["migrations"]["table_name"] == "parsql_migrations"
        assert config["logging"]["level"] == "INFO"

    def test_load_empty_file_returns_defaults(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("")
        config = ConfigLoader.load(str(config_file))
        assert config == ConfigLoader._get_defaults()


class TestConfigLoaderEnvExpansion:
    """Tests for environment variable expansion."""

    def test_expand_env_var(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DB_PASSWORD", "s3cret")
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            yaml.dump(
                {
                    "schemaledger": {
                        "database_url": "postgresql://app:${DB_PASSWORD}@db/app"
                    }
                }
            )
        )

        config = ConfigLoader.load(str(config_file))

        assert config["database_url"] == "postgresql://app:s3cret@db/app"

    def test_missing_env_var_kept_as_is(self, monkeypatch):
        monkeypatch.delenv("SCHEMALEDGER_TEST_UNSET", raising=False)
        value = ConfigLoader._expand_value("${SCHEMALEDGER_TEST_UNSET}")
        assert value == "${SCHEMALEDGER_TEST_UNSET}"

    def test_expand_in_lists(self, monkeypatch):
        monkeypatch.setenv("SCHEMA", "ops")
        assert ConfigLoader._expand_config(["${SCHEMA}", 3]) == ["ops", 3]


class TestConfigLoaderOverrides:
    """Tests for environment overrides applied after loading."""

    def test_database_url_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SCHEMALEDGER_DATABASE_URL", "sqlite:///override.db")
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.dump({"database_url": "sqlite:///file.db"}))

        config = ConfigLoader.load(str(config_file))

        assert config["database_url"] == "sqlite:///override.db"

    def test_logging_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SCHEMALEDGER_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("SCHEMALEDGER_LOG_FORMAT", "json")

        config = ConfigLoader.load(str(tmp_path / "missing.yaml"), warn_missing=False)

        assert config["logging"] == {"level": "DEBUG", "format": "json"}


class TestConfigLoaderSave:
    def test_save_and_load_roundtrip(self, tmp_path):
        path = tmp_path / "nested" / "schemaledger.yaml"
        config = ConfigLoader._get_defaults()
        config["database_url"] = "sqlite:///roundtrip.db"

        ConfigLoader.save(config, str(path))

        assert yaml.safe_load(path.read_text())["schemaledger"]["database_url"] == (
            "sqlite:///roundtrip.db"
        )
        assert ConfigLoader.load(str(path)) == config
