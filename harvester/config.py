"""Configuration helpers for the LinkedIn Activity Harvester."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parents[1]
ENV_PATH = PROJECT_ROOT / ".env"

# Load environment variables early so downstream modules can rely on them.
load_dotenv(ENV_PATH, override=False)

DATA_DIR_ENV = "HARVESTER_DATA_DIR"
DB_NAME_ENV = "HARVESTER_DB_NAME"
STORAGE_ENV = "HARVESTER_STORAGE"
LOG_DIR_ENV = "HARVESTER_LOG_DIR"
RECENCY_WINDOW_ENV = "CAPTURE_RECENCY_WINDOW_MS"
PENDING_TTL_ENV = "CAPTURE_PENDING_TTL_MS"
FALLBACK_FEED_ONLY_ENV = "CAPTURE_FALLBACK_FEED_ONLY"
LI_AT_ENV = "LINKEDIN_LI_AT"
JSESSIONID_ENV = "LINKEDIN_JSESSIONID"
VOYAGER_BASE_URL_ENV = "VOYAGER_BASE_URL"
VOYAGER_PAGE_DELAY_ENV = "VOYAGER_PAGE_DELAY_MS"
INGEST_TOKEN_ENV = "HARVESTER_INGEST_TOKEN"

DEFAULT_DATA_DIR = PROJECT_ROOT / "data"
DEFAULT_DB_NAME = "harvester.db"
DEFAULT_STORAGE = "sqlite"
DEFAULT_LOG_DIR = Path("logs")
DEFAULT_RECENCY_WINDOW_MS = 5000
DEFAULT_PENDING_TTL_MS = 10000
DEFAULT_VOYAGER_BASE_URL = "https://www.linkedin.com"
DEFAULT_VOYAGER_PAGE_DELAY_MS = 300

_VALID_STORAGE = {"sqlite", "memory"}
_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class StorageSettings:
    """Where and how the consolidated namespace is persisted."""

    backend: str
    path: Path


@dataclass(frozen=True)
class CaptureSettings:
    """Timing knobs for the decode-fallback heuristic."""

    recency_window_ms: int = DEFAULT_RECENCY_WINDOW_MS
    pending_ttl_ms: int = DEFAULT_PENDING_TTL_MS
    fallback_feed_only: bool = True


@dataclass(frozen=True)
class VoyagerConfig:
    """Session cookies and host used by the direct-call Voyager client."""

    li_at: Optional[str]
    jsessionid: Optional[str]
    base_url: str = DEFAULT_VOYAGER_BASE_URL
    page_delay_ms: int = DEFAULT_VOYAGER_PAGE_DELAY_MS

    @property
    def is_authenticated(self) -> bool:
        return bool(self.li_at)

    @property
    def csrf_token(self) -> str:
        return (self.jsessionid or "").replace('"', "")

    @property
    def cookies(self) -> Dict[str, str]:
        cookies: Dict[str, str] = {}
        if self.li_at:
            cookies["li_at"] = self.li_at
        if self.jsessionid:
            cookies["JSESSIONID"] = self.jsessionid
        return cookies


def _get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value


def _get_int_env(name: str, default: int) -> int:
    raw = _get_env(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer; received '{raw}'.") from exc
    if value < 0:
        raise RuntimeError(f"{name} must be >= 0; received '{raw}'.")
    return value


def _get_bool_env(name: str, default: bool) -> bool:
    raw = _get_env(name)
    if raw is None:
        return default
    text = raw.strip().lower()
    if text in _TRUTHY:
        return True
    if text in _FALSY:
        return False
    raise RuntimeError(f"{name} must be a boolean (true/false); received '{raw}'.")


def get_data_dir() -> Path:
    """Resolve the data directory (shared by the API server and scripts)."""

    raw_path = _get_env(DATA_DIR_ENV, str(DEFAULT_DATA_DIR))
    return Path(raw_path).expanduser().resolve()


def get_log_dir() -> Path:
    raw_path = _get_env(LOG_DIR_ENV, str(DEFAULT_LOG_DIR))
    return Path(raw_path).expanduser()


def get_storage_settings() -> StorageSettings:
    """Resolve the persistence backend from environment with sensible defaults."""

    backend = (_get_env(STORAGE_ENV, DEFAULT_STORAGE) or DEFAULT_STORAGE).strip().lower()
    if backend not in _VALID_STORAGE:
        allowed = ", ".join(sorted(_VALID_STORAGE))
        raise RuntimeError(f"{STORAGE_ENV} must be one of [{allowed}]; received '{backend}'.")
    db_name = _get_env(DB_NAME_ENV, DEFAULT_DB_NAME)
    return StorageSettings(backend=backend, path=get_data_dir() / db_name)


def get_capture_settings() -> CaptureSettings:
    return CaptureSettings(
        recency_window_ms=_get_int_env(RECENCY_WINDOW_ENV, DEFAULT_RECENCY_WINDOW_MS),
        pending_ttl_ms=_get_int_env(PENDING_TTL_ENV, DEFAULT_PENDING_TTL_MS),
        fallback_feed_only=_get_bool_env(FALLBACK_FEED_ONLY_ENV, True),
    )


def get_voyager_config() -> VoyagerConfig:
    """Return Voyager client settings; cookies may be absent (unauthenticated)."""

    base_url = (_get_env(VOYAGER_BASE_URL_ENV, DEFAULT_VOYAGER_BASE_URL) or "").rstrip("/")
    if not base_url:
        raise RuntimeError("VOYAGER_BASE_URL is empty; check your .env or environment")
    return VoyagerConfig(
        li_at=_get_env(LI_AT_ENV),
        jsessionid=_get_env(JSESSIONID_ENV),
        base_url=base_url,
        page_delay_ms=_get_int_env(VOYAGER_PAGE_DELAY_ENV, DEFAULT_VOYAGER_PAGE_DELAY_MS),
    )


def get_ingest_token() -> Optional[str]:
    """Shared secret required on mutating extension routes, when configured."""

    token = _get_env(INGEST_TOKEN_ENV)
    return token.strip() if token and token.strip() else None
