"""Tests for configuration validation.

Settings are constructed directly (without the .env file) so that invalid
configurations can be checked without reloading the config module.
"""

import os
from datetime import timedelta
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from taskauth.core.config import Settings
from taskauth.core.database import engine_options
from taskauth.services.tokens import TokenSigner

SECRET = "s" * 32


def make_settings(**overrides) -> Settings:
    return Settings(_env_file=None, jwt_secret_key=SECRET, **overrides)


class TestJWTSettings:
    def test_defaults(self):
        settings = make_settings()
        assert settings.jwt_algorithm == "HS256"
        assert settings.jwt_issuer == "task-management-api"
        assert settings.jwt_audience == "task-management-frontend"
        assert settings.access_token_ttl_seconds == 900
        assert settings.jwt_refresh_token_expire_days == 7
        assert settings.blacklist_fail_closed is False
        assert settings.refresh_token_rotation is False

    def test_short_secret_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            Settings(_env_file=None, jwt_secret_key="too-short")
        assert "jwt_secret_key" in str(exc_info.value)

    def test_algorithm_normalized(self):
        assert make_settings(jwt_algorithm="hs512").jwt_algorithm == "HS512"

    @pytest.mark.parametrize("algorithm", ["none", "RS256", "ES256"])
    def test_unsupported_algorithm_rejected(self, algorithm):
        with pytest.raises(ValidationError) as exc_info:
            make_settings(jwt_algorithm=algorithm)
        assert "jwt_algorithm" in str(exc_info.value)

    def test_signer_from_settings(self):
        signer = TokenSigner.from_settings(
            make_settings(jwt_access_token_expire_minutes=5, jwt_leeway_seconds=10)
        )
        assert signer.access_ttl == timedelta(minutes=5)
        assert signer.refresh_ttl == timedelta(days=7)
        assert signer.leeway == timedelta(seconds=10)

    def test_loaded_from_environment(self):
        with patch.dict(
            os.environ,
            {"JWT_SECRET_KEY": "e" * 40, "JWT_ACCESS_TOKEN_EXPIRE_MINUTES": "30"},
            clear=False,
        ):
            settings = Settings(_env_file=None)
        assert settings.jwt_secret_key == "e" * 40
        assert settings.access_token_ttl_seconds == 1800


class TestGeneralSettings:
    def test_log_level_normalized(self):
        assert make_settings(log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            make_settings(log_level="verbose")

    def test_invalid_log_format(self):
        with pytest.raises(ValidationError):
            make_settings(log_format="xml")

    def test_cors_origins_list(self):
        settings = make_settings(cors_origins="http://a.test, http://b.test,")
        assert settings.cors_origins_list == ["http://a.test", "http://b.test"]

    def test_operation_timeout_must_be_positive(self):
        with pytest.raises(ValidationError):
            make_settings(db_operation_timeout=0)


class TestEngineOptions:
    def test_postgres_gets_pool_settings(self):
        options = engine_options(
            make_settings(
                database_url="postgresql+asyncpg://u:p@db:5432/tasks", db_pool_size=5
            )
        )
        assert options["pool_size"] == 5
        assert options["pool_pre_ping"] is True

    def test_sqlite_skips_pool_settings(self):
        options = engine_options(make_settings(database_url="sqlite+aiosqlite:///:memory:"))
        assert "pool_size" not in options
