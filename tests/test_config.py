"""
Tests for Configuration Module

Tests the Settings and configuration management.
"""

import os
import pytest
from unittest.mock import patch


class TestGetEnv:
    """Tests for environment variable helpers."""

    def test_get_env_with_default(self):
        """Test getting env var with default."""
        from persona_agent.config import get_env

        result = get_env("NONEXISTENT_VAR", "default_value")
        assert result == "default_value"

    def test_get_env_existing(self):
        """Test getting existing env var."""
        from persona_agent.config import get_env

        with patch.dict(os.environ, {"TEST_VAR": "test_value"}):
            result = get_env("TEST_VAR")
            assert result == "test_value"

    def test_get_env_required_missing(self):
        """Test required env var raises error when missing."""
        from persona_agent.config import get_env

        with pytest.raises(ValueError):
            get_env("DEFINITELY_NOT_SET", required=True)


class TestGetEnvTyped:
    """Tests for typed environment variable helpers."""

    def test_get_env_int(self):
        """Test getting int from env."""
        from persona_agent.config import get_env_int

        with patch.dict(os.environ, {"INT_VAR": "42"}):
            result = get_env_int("INT_VAR", 0)
            assert result == 42
            assert isinstance(result, int)

    def test_get_env_float(self):
        """Test getting float from env."""
        from persona_agent.config import get_env_float

        with patch.dict(os.environ, {"FLOAT_VAR": "2.5"}):
            assert get_env_float("FLOAT_VAR", 0.0) == 2.5

    def test_get_env_bool(self):
        """Test truthy and falsy spellings."""
        from persona_agent.config import get_env_bool

        for true_value in ["true", "True", "1", "yes", "on"]:
            with patch.dict(os.environ, {"BOOL_VAR": true_value}):
                assert get_env_bool("BOOL_VAR", False) is True
        for false_value in ["false", "0", "no", "off"]:
            with patch.dict(os.environ, {"BOOL_VAR": false_value}):
                assert get_env_bool("BOOL_VAR", True) is False

    def test_get_env_list(self):
        """Test comma separated lists drop blanks and whitespace."""
        from persona_agent.config import get_env_list

        with patch.dict(os.environ, {"LIST_VAR": " Rimuru, Frieren ,,Gura "}):
            assert get_env_list("LIST_VAR") == ["Rimuru", "Frieren", "Gura"]


class TestParseAliases:
    """Tests for identity alias parsing."""

    def test_pairs(self):
        from persona_agent.config import parse_aliases

        assert parse_aliases("moon1945=moon, viyi_=viyi") == {"moon1945": "moon", "viyi_": "viyi"}

    def test_malformed_pairs_ignored(self):
        from persona_agent.config import parse_aliases

        assert parse_aliases("broken, =moon, moon=, a=b") == {"a": "b"}

    def test_empty(self):
        from persona_agent.config import parse_aliases

        assert parse_aliases("") == {}


class TestOllamaConfig:
    """Tests for inference configuration."""

    def test_url(self):
        from persona_agent.config import OllamaConfig

        config = OllamaConfig(host="http://gpu-box:11434/")
        assert config.url("chat") == "http://gpu-box:11434/api/chat"
        assert config.url("/embed") == "http://gpu-box:11434/api/embed"

    def test_defaults(self):
        from persona_agent.config import OllamaConfig

        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("OLLAMA_KEEP_ALIVE", None)
            assert OllamaConfig().keep_alive == "30m"


class TestMemoryStoreConfig:
    """Tests for memory store configuration."""

    def test_validate_backend(self):
        from persona_agent.config import MemoryStoreConfig

        with pytest.raises(ValueError, match="MEMORY_BACKEND"):
            MemoryStoreConfig(backend="redis").validate()

    def test_validate_prefix(self):
        from persona_agent.config import MemoryStoreConfig

        with pytest.raises(ValueError, match="PREFIX"):
            MemoryStoreConfig(backend="chroma", collection_prefix="").validate()

    def test_is_remote(self):
        from persona_agent.config import MemoryStoreConfig

        assert MemoryStoreConfig(host="").is_remote is False
        assert MemoryStoreConfig(host="chroma.local").is_remote is True


class TestConversationConfig:
    """Tests for conversation tuning."""

    def test_window_defaults(self):
        from persona_agent.config import ConversationConfig

        env = {k: v for k, v in os.environ.items() if not k.endswith("_COUNT")}
        with patch.dict(os.environ, env, clear=True):
            config = ConversationConfig()
        assert (config.turn_recent_count, config.turn_relevant_count) == (8, 4)
        assert (config.gate_recent_count, config.gate_relevant_count) == (5, 5)

    def test_aliases_from_env(self):
        from persona_agent.config import ConversationConfig

        with patch.dict(os.environ, {"CHANNEL_ALIASES": "moon1945=moon"}):
            assert ConversationConfig().aliases == {"moon1945": "moon"}

    def test_validate_negative_window(self):
        from persona_agent.config import ConversationConfig

        with pytest.raises(ValueError, match="TURN_RECENT_COUNT"):
            ConversationConfig(turn_recent_count=-1).validate()

    def test_validate_verdict_window(self):
        from persona_agent.config import ConversationConfig

        with pytest.raises(ValueError, match="VERDICT_WINDOW_CHARS"):
            ConversationConfig(verdict_window_chars=0).validate()


class TestSettings:
    """Tests for main Settings class."""

    def test_settings_singleton(self):
        """Test settings is accessible."""
        from persona_agent.config import settings

        assert settings is not None
        assert hasattr(settings, "ollama")
        assert hasattr(settings, "memory")
        assert hasattr(settings, "conversation")
        assert settings.memory.backend == "memory"

    def test_is_development(self):
        """Test development mode detection."""
        from persona_agent.config import Settings

        settings = Settings()
        settings.app_env = "development"
        assert settings.is_development is True
        assert settings.is_production is False

    def test_is_production(self):
        """Test production mode detection."""
        from persona_agent.config import Settings

        settings = Settings()
        settings.app_env = "production"
        assert settings.is_production is True
        assert settings.is_development is False

    def test_validate_all(self):
        from persona_agent.config import Settings

        assert Settings().validate_all() is True
