"""Tests for credential lookup and configuration tables."""

import pytest

from finboard import config


@pytest.fixture
def no_client(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "_supabase_client", None)
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_KEY", raising=False)


class TestSupabaseCredentials:
    """Test the secrets-then-environment credential lookup."""

    def test_missing_credentials(self, no_client, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(config.st, "secrets", {})

        assert config.supabase_configured() is False
        with pytest.raises(RuntimeError):
            config.get_supabase_client()

    def test_environment(self, no_client, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(config.st, "secrets", {})
        monkeypatch.setenv("SUPABASE_URL", "https://env.supabase.co")
        monkeypatch.setenv("SUPABASE_KEY", "env-key")

        assert config._supabase_credentials() == ("https://env.supabase.co", "env-key")
        assert config.supabase_configured() is True

    def test_secrets_take_precedence(self, no_client, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test a deployment's secrets win over the environment."""
        monkeypatch.setattr(
            config.st, "secrets", {"SUPABASE_URL": "https://secret.supabase.co", "SUPABASE_KEY": "secret-key"}
        )
        monkeypatch.setenv("SUPABASE_URL", "https://env.supabase.co")
        monkeypatch.setenv("SUPABASE_KEY", "env-key")

        assert config._supabase_credentials() == ("https://secret.supabase.co", "secret-key")

    def test_secrets_client_is_built_once(self, no_client, monkeypatch: pytest.MonkeyPatch) -> None:
        calls = []
        monkeypatch.setattr(
            config.st, "secrets", {"SUPABASE_URL": "https://secret.supabase.co", "SUPABASE_KEY": "secret-key"}
        )
        monkeypatch.setattr(config, "create_client", lambda url, key: calls.append((url, key)) or object())

        first = config.get_supabase_client()
        second = config.get_supabase_client()

        assert first is second
        assert calls == [("https://secret.supabase.co", "secret-key")]

    def test_missing_secrets_file(self, no_client, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test a missing secrets file falls through to the environment."""

        class NoSecretsFile:
            def __contains__(self, key):
                raise FileNotFoundError("secrets.toml")

        monkeypatch.setattr(config.st, "secrets", NoSecretsFile())
        monkeypatch.setenv("SUPABASE_URL", "https://env.supabase.co")
        monkeypatch.setenv("SUPABASE_KEY", "env-key")

        assert config.supabase_configured() is True
