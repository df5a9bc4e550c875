"""Tests for environment-driven gateway configuration."""

import httpx
import pytest

from authgate.models.config import ApiConfig, AuthMode, RefreshConfig

ENV_VARS = (
    "APP_ENV",
    "BASE_URL",
    "DEV_URL",
    "AUTH_MODE",
    "REFRESH_PATH",
    "REFRESH_TOKEN_FIELD",
    "CONNECT_TIMEOUT",
    "RECEIVE_TIMEOUT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("BASE_URL", "https://api.example.com")
    monkeypatch.setenv("DEV_URL", "https://dev.example.com")


class TestFromEnv:
    def test_non_production_uses_dev_url(self, tmp_path):
        config = ApiConfig.from_env(env_file=tmp_path / "missing.env")

        assert config.base_url == "https://dev.example.com"
        assert config.auth_mode is AuthMode.BACKEND_JWT
        assert config.refresh == RefreshConfig()

    def test_production_app_env_uses_base_url(self, monkeypatch, tmp_path):
        monkeypatch.setenv("APP_ENV", "production")

        config = ApiConfig.from_env(env_file=tmp_path / "missing.env")

        assert config.base_url == "https://api.example.com"

    def test_explicit_production_flag_wins(self, monkeypatch, tmp_path):
        monkeypatch.setenv("APP_ENV", "production")

        config = ApiConfig.from_env(env_file=tmp_path / "missing.env", production=False)

        assert config.base_url == "https://dev.example.com"

    def test_reads_dotenv_file(self, monkeypatch, tmp_path):
        monkeypatch.delenv("DEV_URL")
        env_file = tmp_path / ".env"
        env_file.write_text(
            "DEV_URL=https://staging.example.com\n"
            "AUTH_MODE=identity_provider\n"
            "REFRESH_PATH=/auth/refresh\n"
            "REFRESH_TOKEN_FIELD=refresh_token\n"
            "CONNECT_TIMEOUT=5\n"
        )

        config = ApiConfig.from_env(env_file=env_file)

        assert config.base_url == "https://staging.example.com"
        assert config.auth_mode is AuthMode.IDENTITY_PROVIDER
        assert config.refresh.path == "/auth/refresh"
        assert config.refresh.token_field == "refresh_token"
        assert config.connect_timeout == 5.0
        assert config.receive_timeout == 10.0

    def test_unknown_auth_mode_raises(self, monkeypatch, tmp_path):
        monkeypatch.setenv("AUTH_MODE", "magic")

        with pytest.raises(ValueError, match="AUTH_MODE"):
            ApiConfig.from_env(env_file=tmp_path / "missing.env")

    def test_non_numeric_timeout_raises(self, monkeypatch, tmp_path):
        monkeypatch.setenv("RECEIVE_TIMEOUT", "soon")

        with pytest.raises(ValueError, match="RECEIVE_TIMEOUT"):
            ApiConfig.from_env(env_file=tmp_path / "missing.env")


class TestApiConfig:
    def test_defaults(self):
        config = ApiConfig(base_url="https://api.example.com")

        assert config.default_headers == {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        assert config.success_status_upper_bound == 400

    def test_timeout_is_finite(self):
        config = ApiConfig(
            base_url="https://api.example.com", connect_timeout=3, receive_timeout=7
        )

        timeout = config.timeout

        assert isinstance(timeout, httpx.Timeout)
        assert timeout.connect == 3
        assert timeout.read == 7

    def test_rejects_non_positive_timeout(self):
        with pytest.raises(ValueError):
            ApiConfig(base_url="https://api.example.com", connect_timeout=0)
