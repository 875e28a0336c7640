"""Configuration settings behaviour tests."""

from __future__ import annotations

import pytest

from app.config import DEFAULT_JWT_SECRET, Settings


def test_defaults_match_documented_values() -> None:
    settings = Settings(_env_file=None)

    assert settings.server_port == 3000
    assert settings.api_prefix == "/api/v1"
    assert settings.jwt_secret == DEFAULT_JWT_SECRET
    assert settings.jwt_expires_in == 604_800
    assert settings.bcrypt_rounds == 12
    assert settings.tmdb_api_key is None
    assert str(settings.tmdb_base_url).startswith("https://api.themoviedb.org/3")


def test_api_prefix_is_normalised() -> None:
    """Prefixes gain a leading slash and lose any trailing one."""

    settings = Settings(_env_file=None, API_PREFIX="api/v2/")

    assert settings.api_prefix == "/api/v2"


def test_log_level_and_image_base_are_cleaned() -> None:
    settings = Settings(
        _env_file=None,
        LOG_LEVEL="debug",
        TMDB_IMAGE_BASE_URL="https://images.example.com/t/p/",
    )

    assert settings.log_level == "DEBUG"
    assert settings.tmdb_image_base_url == "https://images.example.com/t/p"


def test_production_requires_real_jwt_secret() -> None:
    with pytest.raises(ValueError, match="JWT_SECRET must be set in production"):
        Settings(_env_file=None, ENVIRONMENT="production")

    settings = Settings(_env_file=None, ENVIRONMENT="production", JWT_SECRET="s3cret")
    assert settings.jwt_secret == "s3cret"


def test_bcrypt_rounds_are_bounded() -> None:
    with pytest.raises(ValueError):
        Settings(_env_file=None, BCRYPT_ROUNDS=2)
