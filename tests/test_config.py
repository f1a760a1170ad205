"""
Config Tests — DatabaseConfig defaults, environment and .env loading.
"""

import pytest

from palmrecord.config import DatabaseConfig
from palmrecord.db import Database, configure_database, get_database, set_database
from palmrecord.faults import ConfigInvalidFault


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ("URL", "ALIAS", "CONNECT_RETRIES", "CONNECT_RETRY_DELAY", "OPTIONS"):
        monkeypatch.delenv(f"PALMRECORD_DB_{key}", raising=False)


class TestDatabaseConfig:

    def test_defaults(self):
        config = DatabaseConfig()
        assert config.url == "sqlite:///:memory:"
        assert config.alias == "default"
        assert config.connect_retries == 3
        assert config.connect_retry_delay == 0.5
        assert config.options == {}

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("PALMRECORD_DB_URL", "sqlite:///app.db")
        monkeypatch.setenv("PALMRECORD_DB_CONNECT_RETRIES", "5")
        monkeypatch.setenv("PALMRECORD_DB_OPTIONS", '{"timeout": 10}')
        monkeypatch.setenv("PALMRECORD_DB_UNKNOWN", "ignored")

        config = DatabaseConfig.from_env()

        assert config.url == "sqlite:///app.db"
        assert config.connect_retries == 5
        assert config.options == {"timeout": 10}

    def test_custom_prefix(self, monkeypatch):
        monkeypatch.setenv("REPORTS_DB_URL", "sqlite:///reports.db")
        monkeypatch.setenv("REPORTS_DB_ALIAS", "reports")
        config = DatabaseConfig.from_env(prefix="REPORTS_DB_")
        assert config.url == "sqlite:///reports.db"
        assert config.alias == "reports"

    def test_env_file_beneath_environment(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text(
            "PALMRECORD_DB_URL=sqlite:///from_file.db\n"
            "PALMRECORD_DB_CONNECT_RETRY_DELAY=0.1\n"
        )
        config = DatabaseConfig.from_env(env_file=str(env_file))
        assert config.url == "sqlite:///from_file.db"
        assert config.connect_retry_delay == 0.1

        monkeypatch.setenv("PALMRECORD_DB_URL", "sqlite:///from_env.db")
        config = DatabaseConfig.from_env(env_file=str(env_file))
        assert config.url == "sqlite:///from_env.db"
        assert config.connect_retry_delay == 0.1

    def test_missing_env_file_is_ignored(self, tmp_path):
        config = DatabaseConfig.from_env(env_file=str(tmp_path / "absent.env"))
        assert config.url == "sqlite:///:memory:"

    def test_overrides_win(self, monkeypatch):
        monkeypatch.setenv("PALMRECORD_DB_CONNECT_RETRIES", "5")
        config = DatabaseConfig.from_env(connect_retries=1)
        assert config.connect_retries == 1

    @pytest.mark.parametrize(
        "kwargs, key",
        [
            ({"url": "not a url"}, "url"),
            ({"connect_retries": 0}, "connect_retries"),
            ({"options": ["timeout"]}, "options"),
        ],
    )
    def test_validate(self, kwargs, key):
        with pytest.raises(ConfigInvalidFault) as exc_info:
            DatabaseConfig(**kwargs).validate()
        assert exc_info.value.metadata["key"] == key
        assert exc_info.value.code == "CONFIG_INVALID"

    def test_invalid_env_value_rejected(self, monkeypatch):
        monkeypatch.setenv("PALMRECORD_DB_CONNECT_RETRIES", "-2")
        with pytest.raises(ConfigInvalidFault):
            DatabaseConfig.from_env()

    def test_to_dict(self):
        assert DatabaseConfig(alias="x").to_dict()["alias"] == "x"


class TestConfigureDatabase:

    def test_from_config(self):
        db = Database.from_config(DatabaseConfig(url="sqlite:///:memory:", connect_retries=2))
        assert db.driver == "sqlite"
        assert db.url == "sqlite:///:memory:"

    def test_configure_with_config_registers_alias(self):
        config = DatabaseConfig(alias="analytics")
        try:
            db = configure_database(config)
            assert get_database("analytics") is db
        finally:
            set_database(None, alias="analytics")
