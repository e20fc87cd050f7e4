"""
Tests for companion.config module.

Verifies:
- MOCK_MODE defaults to True when env var is unset
- MOCK_MODE accepts true, 1 and yes in any case and nothing else
- API keys, storage directory and timing knobs load from the environment
"""

import importlib

import pytest


class TestMockModeConfig:
    """Tests for the MOCK_MODE configuration toggle."""

    def test_mock_mode_defaults_true(self, monkeypatch):
        """MOCK_MODE should default to True when MOCK_MODE env var is unset."""
        monkeypatch.delenv("MOCK_MODE", raising=False)
        import companion.config
        importlib.reload(companion.config)
        assert companion.config.MOCK_MODE is True

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("true", True),
            ("TRUE", True),
            ("yes", True),
            ("1", True),
            ("false", False),
            ("0", False),
            ("off", False),
            ("", False),
        ],
    )
    def test_mock_mode_from_env(self, monkeypatch, value, expected):
        """Only true, 1 and yes (any case) switch mock mode on."""
        monkeypatch.setenv("MOCK_MODE", value)
        import companion.config
        importlib.reload(companion.config)
        assert companion.config.MOCK_MODE is expected


class TestServiceConfig:
    """Tests for API keys and storage configuration."""

    def test_keys_default_empty(self, monkeypatch):
        """API keys should default to empty strings when unset."""
        for name in ("OPENAI_API_KEY", "OPENAI_ORG_ID", "SUPABASE_URL", "SUPABASE_ANON_KEY"):
            monkeypatch.delenv(name, raising=False)
        import companion.config
        importlib.reload(companion.config)
        assert companion.config.OPENAI_API_KEY == ""
        assert companion.config.OPENAI_ORG_ID == ""
        assert companion.config.SUPABASE_URL == ""
        assert companion.config.SUPABASE_ANON_KEY == ""

    def test_keys_load_when_set(self, monkeypatch):
        """API keys should load from environment when set."""
        monkeypatch.setenv("OPENAI_API_KEY", "sk_test_key_789")
        monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
        import companion.config
        importlib.reload(companion.config)
        assert companion.config.OPENAI_API_KEY == "sk_test_key_789"
        assert companion.config.SUPABASE_URL == "https://example.supabase.co"


class TestTimingConfig:
    """Tests for the debounce, timeout and model defaults."""

    def test_defaults(self, monkeypatch):
        """Debounce is 600 ms, timeout 12 s, default model gpt-3.5-turbo."""
        for name in ("DETECT_DEBOUNCE_MS", "REQUEST_TIMEOUT_S", "DEFAULT_MODEL"):
            monkeypatch.delenv(name, raising=False)
        import companion.config
        importlib.reload(companion.config)
        assert companion.config.DETECT_DEBOUNCE_MS == 600
        assert companion.config.REQUEST_TIMEOUT_S == 12.0
        assert companion.config.DEFAULT_MODEL == "gpt-3.5-turbo"

    def test_overrides(self, monkeypatch, tmp_path):
        """Timing knobs and the local store directory read from the environment."""
        monkeypatch.setenv("DETECT_DEBOUNCE_MS", "250")
        monkeypatch.setenv("REQUEST_TIMEOUT_S", "3.5")
        monkeypatch.setenv("LOCAL_STORE_DIR", str(tmp_path))
        import companion.config
        importlib.reload(companion.config)
        assert companion.config.DETECT_DEBOUNCE_MS == 250
        assert companion.config.REQUEST_TIMEOUT_S == 3.5
        assert companion.config.LOCAL_STORE_DIR == str(tmp_path)
