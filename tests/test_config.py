"""Tests for utils.config module."""

import pytest

from typingstats.utils.config import AppSettings, Config


@pytest.fixture
def config(tmp_path):
    """Create Config instance with temporary database."""
    return Config(tmp_path / "settings.db")


class TestConfigInit:
    """Tests for Config initialization."""

    def test_config_initialization_creates_settings_table(self, config):
        """Test that settings table is created on initialization."""
        with config._get_connection() as conn:
            row = conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name='settings'"
            ).fetchone()
        assert row is not None

    def test_config_initialization_inserts_default_settings(self, config):
        """Test that every AppSettings key is stored."""
        all_settings = config.get_all()
        assert set(all_settings) == set(AppSettings.model_fields)

    def test_creates_parent_directory(self, tmp_path):
        """Test that a missing data directory is created."""
        Config(tmp_path / "nested" / "settings.db")
        assert (tmp_path / "nested" / "settings.db").exists()

    def test_reopen_keeps_values(self, tmp_path):
        """Test that values survive reopening the database."""
        Config(tmp_path / "settings.db").set("postgres_host", "db.example.org")
        assert Config(tmp_path / "settings.db").get("postgres_host") == "db.example.org"


class TestConfigGet:
    """Tests for typed getters."""

    def test_defaults(self, config):
        assert config.get_int("drain_interval_ms") == 100
        assert config.get_int("save_interval_sec") == 30
        assert config.get_int("remote_pull_interval_sec") == 300
        assert config.get_bool("remote_sync_enabled") is False
        assert config.get_bool("count_words") is True
        assert config.get("remote_key_prefix") == "stats_"
        assert config.get("postgres_channel") == "typingstats_kv"

    def test_unknown_key_returns_default(self, config):
        assert config.get("no_such_key") is None
        assert config.get("no_such_key", "fallback") == "fallback"
        assert config.get_int("no_such_key", 7) == 7

    def test_invalid_stored_value_falls_back_to_default(self, config):
        """Test that a hand-edited invalid value is replaced by the default."""
        with config._get_connection() as conn:
            conn.execute(
                "UPDATE settings SET value = ? WHERE key = ?", ("-5", "drain_interval_ms")
            )
        assert config.get_int("drain_interval_ms") == 100


class TestConfigSet:
    """Tests for setting values."""

    def test_set_and_get_int(self, config):
        config.set("save_interval_sec", 60)
        assert config.get_int("save_interval_sec") == 60

    def test_set_and_get_bool(self, config):
        config.set("remote_sync_enabled", True)
        assert config.get_bool("remote_sync_enabled") is True
        config.set("remote_sync_enabled", False)
        assert config.get_bool("remote_sync_enabled") is False

    def test_set_string_number_is_coerced(self, config):
        config.set("postgres_port", "6543")
        assert config.get_int("postgres_port") == 6543

    def test_set_invalid_value_raises(self, config):
        with pytest.raises(ValueError):
            config.set("drain_interval_ms", 0)
        with pytest.raises(ValueError):
            config.set("postgres_port", 70000)
        with pytest.raises(ValueError):
            config.set("remote_key_prefix", "")

    def test_set_unknown_key(self, config):
        config.set("custom_list", [1, 2])
        assert config.get("custom_list") == [1, 2]


class TestConfigSettingsModel:
    """Tests for settings() and reset_to_defaults()."""

    def test_settings_model(self, config):
        config.set("postgres_user", "alice")
        settings = config.settings()
        assert isinstance(settings, AppSettings)
        assert settings.postgres_user == "alice"
        assert settings.postgres_port == 5432

    def test_reset_to_defaults_keeps_device_uuid(self, config):
        config.set("device_uuid", "ABC-123")
        config.set("device_id", "desk")
        config.set("save_interval_sec", 90)

        config.reset_to_defaults()

        assert config.get_int("save_interval_sec") == 30
        assert config.get("device_uuid") == "ABC-123"
        assert config.get("device_id") == "desk"
