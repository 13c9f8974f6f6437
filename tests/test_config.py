"""Tests for the crmimport configuration system."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from crmimport.config.loader import (
    apply_env_overrides,
    find_config_file,
    find_secrets_file,
    get_config_search_paths,
    get_secrets_search_paths,
    load_config,
    load_secrets,
    load_toml_file,
    parse_env_file,
)
from crmimport.config.schema import (
    CrmImportConfig,
    DatabaseConfig,
    ImportConfig,
    SecretsConfig,
    ServerConfig,
    StorageConfig,
)
from crmimport.config.settings import Settings, get_settings, reset_settings


class TestSchemaDefaults:
    """Test default values in schema models."""

    def test_server_config_defaults(self):
        config = ServerConfig()
        assert config.host == "127.0.0.1"
        assert config.port == 8000
        assert config.workers == 2
        assert config.debug is False
        assert config.rate_limit_per_minute == 60
        assert config.cors_origins == []

    def test_database_config_defaults(self):
        config = DatabaseConfig()
        assert config.mongodb_url == "mongodb://localhost:27017"
        assert config.mongodb_database == "crmimport"

    def test_storage_config_defaults(self):
        """Test StorageConfig defaults and derived paths."""
        config = StorageConfig()
        assert config.data_dir == Path("data")
        assert config.log_dir == Path("data/logs")
        assert config.imports_dir == Path("data/imports")
        assert config.max_upload_bytes == 10 * 1024 * 1024

    def test_import_config_defaults(self):
        config = ImportConfig()
        assert config.error_limit == 50
        assert config.sample_rows == 5
        assert config.suggestion_min_confidence == 0.3
        assert config.default_stage == "Qualification"
        assert config.allowed_extensions == ["csv", "xlsx"]

    def test_import_config_rejects_out_of_range_values(self):
        with pytest.raises(ValidationError):
            ImportConfig(error_limit=0)
        with pytest.raises(ValidationError):
            ImportConfig(suggestion_min_confidence=1.5)

    def test_crmimport_config_defaults(self):
        config = CrmImportConfig()
        assert config.app_name == "CRM Import"
        assert isinstance(config.server, ServerConfig)
        assert isinstance(config.database, DatabaseConfig)
        assert isinstance(config.storage, StorageConfig)
        assert isinstance(config.imports, ImportConfig)

    def test_secrets_config_defaults(self):
        assert SecretsConfig().mongodb_url is None


class TestConfigSearchPaths:
    """Test configuration file search paths."""

    def test_config_search_paths_order(self):
        paths = get_config_search_paths()
        assert paths == [
            Path.cwd() / "config.toml",
            Path.home() / ".config" / "crmimport" / "config.toml",
            Path("/etc/crmimport/config.toml"),
        ]

    def test_secrets_search_paths_order(self):
        paths = get_secrets_search_paths()
        assert paths[0] == Path.cwd() / "secrets.env"
        assert paths[2] == Path("/etc/crmimport/secrets.env")


class TestTomlLoading:
    """Test TOML file loading."""

    def test_load_toml_file(self, tmp_path):
        config_file = tmp_path / "config.toml"
        config_file.write_text('app_name = "TestApp"\n\n[server]\nport = 9000\ndebug = true\n')

        data = load_toml_file(config_file)
        assert data["app_name"] == "TestApp"
        assert data["server"]["port"] == 9000
        assert data["server"]["debug"] is True

    def test_load_config_from_file(self, tmp_path):
        """Test load_config with a specific file."""
        toml_content = """
app_name = "CustomApp"

[server]
port = 5000

[imports]
error_limit = 10
default_stage = "Discovery"
"""
        config_file = tmp_path / "config.toml"
        config_file.write_text(toml_content)

        config = load_config(config_file)
        assert config.app_name == "CustomApp"
        assert config.server.port == 5000
        assert config.imports.error_limit == 10
        assert config.imports.default_stage == "Discovery"
        # Defaults should still apply
        assert config.server.host == "127.0.0.1"
        assert config.imports.sample_rows == 5


class TestEnvFileParsing:
    """Test .env file parsing."""

    def test_parse_env_file(self, tmp_path):
        env_content = """
# Connection
CRMIMPORT_MONGODB_SECRET_URL="mongodb://user:pw@db:27017"
KEY2='single quoted value'

KEY3=unquoted value
not a pair
"""
        env_file = tmp_path / "secrets.env"
        env_file.write_text(env_content)

        result = parse_env_file(env_file)
        assert result == {
            "CRMIMPORT_MONGODB_SECRET_URL": "mongodb://user:pw@db:27017",
            "KEY2": "single quoted value",
            "KEY3": "unquoted value",
        }


class TestEnvOverrides:
    """Test environment variable overrides."""

    def test_apply_server_overrides(self):
        config_dict = {}

        with patch.dict(os.environ, {"CRMIMPORT_HOST": "0.0.0.0", "CRMIMPORT_PORT": "3000"}):
            apply_env_overrides(config_dict)

        assert config_dict["server"]["host"] == "0.0.0.0"
        assert config_dict["server"]["port"] == 3000

    def test_apply_import_overrides(self):
        config_dict = {"imports": {"sample_rows": 3}}

        with patch.dict(
            os.environ,
            {
                "CRMIMPORT_IMPORTS_ERROR_LIMIT": "25",
                "CRMIMPORT_IMPORTS_SUGGESTION_MIN_CONFIDENCE": "0.5",
                "CRMIMPORT_IMPORTS_DEFAULT_STAGE": "Proposal",
            },
        ):
            apply_env_overrides(config_dict)

        assert config_dict["imports"] == {
            "sample_rows": 3,
            "error_limit": 25,
            "suggestion_min_confidence": 0.5,
            "default_stage": "Proposal",
        }

    def test_apply_boolean_override(self):
        config_dict = {"server": {"debug": False}}

        with patch.dict(os.environ, {"CRMIMPORT_DEBUG": "yes"}):
            apply_env_overrides(config_dict)

        assert config_dict["server"]["debug"] is True

    def test_env_overrides_win_over_file(self, tmp_path):
        config_file = tmp_path / "config.toml"
        config_file.write_text("[database]\nmongodb_database = \"from_file\"\n")

        with patch.dict(os.environ, {"CRMIMPORT_MONGODB_DATABASE": "from_env"}):
            config = load_config(config_file)

        assert config.database.mongodb_database == "from_env"


class TestSecretsLoading:
    """Test secrets loading."""

    def test_load_secrets_from_file(self, tmp_path):
        secrets_file = tmp_path / "secrets.env"
        secrets_file.write_text("CRMIMPORT_MONGODB_SECRET_URL=mongodb://file:27017\n")

        secrets = load_secrets(secrets_file)
        assert secrets.mongodb_url == "mongodb://file:27017"

    def test_load_secrets_env_override(self, tmp_path):
        secrets_file = tmp_path / "secrets.env"
        secrets_file.write_text("CRMIMPORT_MONGODB_SECRET_URL=mongodb://file:27017\n")

        with patch.dict(os.environ, {"CRMIMPORT_MONGODB_SECRET_URL": "mongodb://env:27017"}):
            secrets = load_secrets(secrets_file)

        assert secrets.mongodb_url == "mongodb://env:27017"


class TestSettings:
    """Test the Settings class."""

    def setup_method(self):
        reset_settings()

    def test_settings_property_accessors(self):
        config = CrmImportConfig(
            app_name="TestApp",
            server=ServerConfig(host="0.0.0.0", port=9000),
            database=DatabaseConfig(mongodb_database="testdb"),
            storage=StorageConfig(data_dir=Path("/srv/crm"), max_upload_mb=2),
            imports=ImportConfig(error_limit=5),
        )
        settings = Settings(config=config, secrets=SecretsConfig())

        assert settings.app_name == "TestApp"
        assert settings.host == "0.0.0.0"
        assert settings.port == 9000
        assert settings.mongodb_database == "testdb"
        assert settings.mongodb_url == "mongodb://localhost:27017"
        assert settings.imports_dir == Path("/srv/crm/imports")
        assert settings.max_upload_size_bytes == 2 * 1024 * 1024
        assert settings.import_error_limit == 5
        assert settings.allowed_extensions == ["csv", "xlsx"]

    def test_secret_mongodb_url_wins(self):
        settings = Settings(
            config=CrmImportConfig(database=DatabaseConfig(mongodb_url="mongodb://plain:27017")),
            secrets=SecretsConfig(mongodb_url="mongodb://user:pw@secure:27017"),
        )
        assert settings.mongodb_url == "mongodb://user:pw@secure:27017"

    def test_get_settings_singleton(self):
        s1 = get_settings()
        s2 = get_settings()
        assert s1 is s2

    def test_reset_settings_clears_cache(self):
        s1 = get_settings()
        reset_settings()
        s2 = get_settings()
        assert s1 is not s2


class TestFindFiles:
    """Test config and secrets file discovery."""

    def test_find_config_file_in_cwd(self, tmp_path, monkeypatch):
        config_file = tmp_path / "config.toml"
        config_file.write_text("[server]\nport = 8000\n")

        monkeypatch.chdir(tmp_path)
        assert find_config_file() == config_file

    def test_find_secrets_file_in_cwd(self, tmp_path, monkeypatch):
        secrets_file = tmp_path / "secrets.env"
        secrets_file.write_text("CRMIMPORT_MONGODB_SECRET_URL=mongodb://x:27017\n")

        monkeypatch.chdir(tmp_path)
        assert find_secrets_file() == secrets_file
