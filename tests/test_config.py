"""Unit tests for environment-driven configuration."""
from __future__ import annotations

import os
from unittest.mock import patch

import pytest

from harvester.config import (
    DATA_DIR_ENV,
    DB_NAME_ENV,
    DEFAULT_DB_NAME,
    DEFAULT_PENDING_TTL_MS,
    DEFAULT_RECENCY_WINDOW_MS,
    DEFAULT_VOYAGER_BASE_URL,
    FALLBACK_FEED_ONLY_ENV,
    INGEST_TOKEN_ENV,
    JSESSIONID_ENV,
    LI_AT_ENV,
    RECENCY_WINDOW_ENV,
    STORAGE_ENV,
    VOYAGER_BASE_URL_ENV,
    get_capture_settings,
    get_ingest_token,
    get_storage_settings,
    get_voyager_config,
)


@pytest.mark.unit
def test_storage_defaults_to_sqlite_in_data_dir(tmp_path):
    with patch.dict(os.environ, {DATA_DIR_ENV: str(tmp_path)}, clear=True):
        settings = get_storage_settings()

    assert settings.backend == "sqlite"
    assert settings.path == tmp_path.resolve() / DEFAULT_DB_NAME


@pytest.mark.unit
def test_storage_backend_and_db_name_overrides(tmp_path):
    env = {DATA_DIR_ENV: str(tmp_path), STORAGE_ENV: " Memory ", DB_NAME_ENV: "other.db"}
    with patch.dict(os.environ, env, clear=True):
        settings = get_storage_settings()

    assert settings.backend == "memory"
    assert settings.path.name == "other.db"


@pytest.mark.unit
def test_invalid_storage_backend_raises():
    with patch.dict(os.environ, {STORAGE_ENV: "redis"}, clear=True):
        with pytest.raises(RuntimeError, match="HARVESTER_STORAGE"):
            get_storage_settings()


@pytest.mark.unit
def test_capture_settings_defaults_and_overrides():
    with patch.dict(os.environ, {}, clear=True):
        defaults = get_capture_settings()
    assert defaults.recency_window_ms == DEFAULT_RECENCY_WINDOW_MS
    assert defaults.pending_ttl_ms == DEFAULT_PENDING_TTL_MS
    assert defaults.fallback_feed_only is True

    with patch.dict(os.environ, {RECENCY_WINDOW_ENV: "2500", FALLBACK_FEED_ONLY_ENV: "off"}, clear=True):
        tuned = get_capture_settings()
    assert tuned.recency_window_ms == 2500
    assert tuned.fallback_feed_only is False


@pytest.mark.unit
@pytest.mark.parametrize(
    "env,match",
    [
        ({RECENCY_WINDOW_ENV: "soon"}, "must be an integer"),
        ({RECENCY_WINDOW_ENV: "-1"}, "must be >= 0"),
        ({FALLBACK_FEED_ONLY_ENV: "maybe"}, "must be a boolean"),
    ],
)
def test_capture_settings_reject_bad_values(env, match):
    with patch.dict(os.environ, env, clear=True):
        with pytest.raises(RuntimeError, match=match):
            get_capture_settings()


@pytest.mark.unit
def test_voyager_config_cookies_and_csrf():
    env = {LI_AT_ENV: "li-token", JSESSIONID_ENV: '"ajax:42"', VOYAGER_BASE_URL_ENV: "https://example.test/"}
    with patch.dict(os.environ, env, clear=True):
        config = get_voyager_config()

    assert config.is_authenticated is True
    assert config.base_url == "https://example.test"
    assert config.csrf_token == "ajax:42"
    assert config.cookies == {"li_at": "li-token", "JSESSIONID": '"ajax:42"'}


@pytest.mark.unit
def test_voyager_config_without_cookies_is_unauthenticated():
    with patch.dict(os.environ, {}, clear=True):
        config = get_voyager_config()

    assert config.base_url == DEFAULT_VOYAGER_BASE_URL
    assert config.is_authenticated is False
    assert config.cookies == {}


@pytest.mark.unit
@pytest.mark.parametrize("raw,expected", [(None, None), ("", None), ("   ", None), (" abc ", "abc")])
def test_ingest_token(raw, expected):
    env = {} if raw is None else {INGEST_TOKEN_ENV: raw}
    with patch.dict(os.environ, env, clear=True):
        assert get_ingest_token() == expected
