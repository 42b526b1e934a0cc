"""Validation and auth helpers for extension routes."""
from __future__ import annotations

import secrets
from typing import Any, Optional

from flask import Request

from harvester.capture.events import SOURCE_TIERS, TIER_FETCH, RequestDescriptor
from harvester.config import get_ingest_token

TOKEN_HEADER = "X-Harvester-Token"


def parse_json_body(request: Request) -> dict:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValueError("Request body must be a JSON object")
    return payload


def require_key(request: Request, name: str = "key") -> str:
    key = (request.args.get(name) or "").strip()
    if not key:
        raise ValueError(f"{name} query param is required")
    return key


def require_ingest_auth(request: Request) -> None:
    expected_token = get_ingest_token()
    if expected_token is None:
        return
    received_token = (request.headers.get(TOKEN_HEADER) or "").strip()
    if not received_token or not secrets.compare_digest(received_token, expected_token):
        raise PermissionError("missing or invalid harvester token")


def _optional_int(name: str, value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer")
    return value


def parse_capture_descriptor(payload: dict) -> RequestDescriptor:
    """Build a RequestDescriptor from a captured-exchange JSON body."""
    tier = payload.get("tier") or TIER_FETCH
    if tier not in SOURCE_TIERS:
        raise ValueError(f"tier must be one of {list(SOURCE_TIERS)}")
    url = payload.get("url")
    if not isinstance(url, str) or not url.strip():
        raise ValueError("url is required")
    method = payload.get("method") or "GET"
    if not isinstance(method, str):
        raise ValueError("method must be a string")
    content_type = payload.get("contentType") or "application/json"
    if not isinstance(content_type, str):
        raise ValueError("contentType must be a string")
    return RequestDescriptor(
        tier=tier,
        url=url.strip(),
        method=method.upper(),
        payload=payload.get("payload"),
        status=_optional_int("status", payload.get("status", 200)),
        content_type=content_type,
    )
