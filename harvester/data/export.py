"""JSON and CSV exports of the consolidated namespace."""
from __future__ import annotations

import csv
import io
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from harvester.data.collections import SPECS_BY_KEY

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0.0"

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _millis(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def rows_for(key: str, value: Any) -> Optional[List[Any]]:
    """Return the exportable row list stored under ``key``.

    Bare lists export as-is; collection documents export their items field.
    """
    if isinstance(value, list):
        return value
    spec = SPECS_BY_KEY.get(key)
    if spec is not None and spec.items_field and isinstance(value, dict):
        items = value.get(spec.items_field)
        if isinstance(items, list):
            return items
    return None


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def render_csv(rows: List[Any]) -> str:
    """Render records as CSV: union of keys in first-seen order, every cell quoted."""
    headers: List[str] = []
    seen = set()
    for row in rows:
        if isinstance(row, dict):
            for name in row:
                if name not in seen:
                    seen.add(name)
                    headers.append(name)

    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=headers, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writeheader()
    for row in rows:
        record = row if isinstance(row, dict) else {}
        writer.writerow({name: _cell(record.get(name)) for name in headers})
    return buffer.getvalue()


def export_json(namespace: Dict[str, Any], *, clock: Clock = _utc_now) -> Dict[str, Any]:
    moment = clock()
    document = {"exportedAt": moment.isoformat(), "version": EXPORT_VERSION, "data": namespace}
    return {
        "success": True,
        "filename": f"linkedin-data-{_millis(moment)}.json",
        "content": json.dumps(document, indent=2, ensure_ascii=False),
    }


def export_csv(key: str, value: Any, *, clock: Clock = _utc_now) -> Dict[str, Any]:
    rows = rows_for(key, value)
    if not rows:
        return {"success": False, "error": "No data to export"}
    return {
        "success": True,
        "filename": f"linkedin-{key}-{_millis(clock())}.csv",
        "content": render_csv(rows),
        "rowCount": len(rows),
    }


def write_export(result: Dict[str, Any], output_dir: Path) -> Path:
    """Write a successful export result to ``output_dir`` and return the path."""
    if not result.get("success"):
        raise ValueError(result.get("error") or "export failed")
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / result["filename"]
    path.write_text(result["content"], encoding="utf-8")
    logger.info("export written: %s", path)
    return path
