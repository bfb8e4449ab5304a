"""Unit tests for TOML configuration loader."""

import tomllib
from pathlib import Path

import pytest

from concierge.config.loader import (
    deep_merge,
    get_config_dir,
    get_environment,
    load_config,
    load_toml,
    unknown_settings,
)
from concierge.errors import ConfigurationError

REPO_CONFIG = Path(__file__).resolve().parents[3] / "config"


class TestDeepMerge:
    """Tests for deep_merge function."""

    def test_merge_nested_dicts(self) -> None:
        """Nested dictionaries are merged recursively."""
        base = {"routing": {"tier2_timeout_seconds": 1.5, "defaults": {"tier1": 0.8}}}
        override = {"routing": {"defaults": {"tier1": 0.9, "tier2": 0.5}}}
        result = deep_merge(base, override)
        assert result == {
            "routing": {"tier2_timeout_seconds": 1.5, "defaults": {"tier1": 0.9, "tier2": 0.5}}
        }

    def test_override_replaces_non_dict(self) -> None:
        """Non-dict values in override replace base values."""
        result = deep_merge({"a": {"x": 1}}, {"a": "replaced"})
        assert result == {"a": "replaced"}

    def test_base_unmodified(self) -> None:
        """Original base dictionary is not modified."""
        base = {"a": 1}
        deep_merge(base, {"b": 2})
        assert base == {"a": 1}


class TestLoadToml:
    """Tests for load_toml function."""

    def test_load_valid_toml(self, tmp_path: Path) -> None:
        """Valid TOML file is loaded correctly."""
        toml_file = tmp_path / "test.toml"
        toml_file.write_text('[warmup]\nenabled = false\ndaily_budget_usd = 2.5')

        assert load_toml(toml_file) == {"warmup": {"enabled": False, "daily_budget_usd": 2.5}}

    def test_load_missing_file_raises(self, tmp_path: Path) -> None:
        """Missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_toml(tmp_path / "nonexistent.toml")

    def test_load_invalid_toml_raises(self, tmp_path: Path) -> None:
        """Invalid TOML syntax raises error."""
        invalid_file = tmp_path / "invalid.toml"
        invalid_file.write_text("invalid = [unclosed")

        with pytest.raises(tomllib.TOMLDecodeError):
            load_toml(invalid_file)


class TestUnknownSettings:
    """Tests for checking files against the settings model."""

    def test_nested_typo_reported(self) -> None:
        """A misspelled routing table is reported by its dotted path."""
        data = {"routing": {"defualts": {"tier1": 0.9}, "pool_cache_size": 10}}
        assert unknown_settings(data) == ["routing.defualts"]

    def test_unknown_key_inside_known_table(self) -> None:
        """Keys are checked inside nested sections too."""
        data = {"routing": {"defaults": {"tier_1": 0.9}}, "warmup": {"budget": 3}}
        assert unknown_settings(data) == ["routing.defaults.tier_1", "warmup.budget"]

    def test_pricing_models_are_free_form(self) -> None:
        """Any model name may appear in the pricing table."""
        data = {"providers": {"llm": {"pricing": {"claude-x": {"input_per_1k": 0.1}}}}}
        assert unknown_settings(data) == []

    def test_shipped_default_is_clean(self) -> None:
        """The repository's default.toml only names real settings."""
        assert unknown_settings(load_toml(REPO_CONFIG / "default.toml")) == []


class TestEnvironmentSelection:
    """Tests for get_environment and get_config_dir."""

    def test_returns_env_var_value(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Returns CONCIERGE_ENV value when set."""
        monkeypatch.setenv("CONCIERGE_ENV", "production")
        assert get_environment() == "production"

    def test_defaults_to_development(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Defaults to 'development' when CONCIERGE_ENV not set."""
        monkeypatch.delenv("CONCIERGE_ENV", raising=False)
        assert get_environment() == "development"

    def test_uses_config_dir_env_var(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Uses CONCIERGE_CONFIG_DIR when set."""
        monkeypatch.setenv("CONCIERGE_CONFIG_DIR", str(tmp_path))
        assert get_config_dir() == tmp_path

    def test_raises_for_missing_config_dir(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Raises error when CONCIERGE_CONFIG_DIR doesn't exist."""
        monkeypatch.setenv("CONCIERGE_CONFIG_DIR", str(tmp_path / "missing"))

        with pytest.raises(FileNotFoundError):
            get_config_dir()


class TestLoadConfig:
    """Tests for load_config function."""

    def test_merges_environment_config(
        self,
        test_config_dir: Path,
        mock_toml_files,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Environment config overrides default config."""
        mock_toml_files(
            {
                "default.toml": (
                    "app_name = 'test'\n[warmup]\nenabled = true\nhit_rate_window_days = 7"
                ),
                "staging.toml": "[warmup]\nenabled = false",
            }
        )
        monkeypatch.setenv("CONCIERGE_CONFIG_DIR", str(test_config_dir))
        monkeypatch.setenv("CONCIERGE_ENV", "staging")

        result = load_config()
        assert result == {
            "app_name": "test",
            "warmup": {"enabled": False, "hit_rate_window_days": 7},
        }

    def test_missing_environment_file_is_ignored(
        self,
        test_config_dir: Path,
        mock_toml_files,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """An environment without its own file uses default.toml alone."""
        mock_toml_files({"default.toml": "debug = false"})
        monkeypatch.setenv("CONCIERGE_CONFIG_DIR", str(test_config_dir))
        monkeypatch.setenv("CONCIERGE_ENV", "nonexistent")

        assert load_config() == {"debug": False}

    def test_unknown_setting_in_environment_file_raises(
        self,
        test_config_dir: Path,
        mock_toml_files,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """A typo in an environment file fails the load and names the file."""
        mock_toml_files(
            {
                "default.toml": "[routing.defaults]\ntier1 = 0.8",
                "production.toml": "[routing.defualts]\ntier1 = 0.9",
            }
        )
        monkeypatch.setenv("CONCIERGE_CONFIG_DIR", str(test_config_dir))

        with pytest.raises(ConfigurationError, match="production.toml: routing.defualts"):
            load_config("production")

    def test_explicit_environment_wins(
        self,
        test_config_dir: Path,
        mock_toml_files,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """An environment passed in overrides CONCIERGE_ENV."""
        mock_toml_files(
            {
                "default.toml": "[warmup]\nenabled = true",
                "staging.toml": "[warmup]\nenabled = false",
            }
        )
        monkeypatch.setenv("CONCIERGE_CONFIG_DIR", str(test_config_dir))
        monkeypatch.setenv("CONCIERGE_ENV", "production")

        assert load_config("staging") == {"warmup": {"enabled": False}}

    def test_missing_default_raises(
        self, test_config_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Missing default.toml raises error."""
        monkeypatch.setenv("CONCIERGE_CONFIG_DIR", str(test_config_dir))

        with pytest.raises(FileNotFoundError, match="default.toml"):
            load_config()
