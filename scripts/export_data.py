"""Write a JSON (whole namespace) or CSV (one key) export of harvested data."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from harvester.api.services.message_router import MessageRouter
from harvester.config import get_storage_settings
from harvester.data.backend import SqliteBackend
from harvester.data.consolidation import ConsolidationStore
from harvester.data.export import write_export
from harvester.logging_utils import setup_console_logging

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--format", choices=["json", "csv"], default="json")
    parser.add_argument("--key", help="Storage key to export (required for --format csv)")
    parser.add_argument("--output-dir", type=Path, default=Path("exports"))
    parser.add_argument("--db", type=Path, help="SQLite file (defaults to HARVESTER_DATA_DIR/HARVESTER_DB_NAME)")
    parser.add_argument("--quiet", action="store_true", help="Only log warnings and errors to the console")
    args = parser.parse_args(argv)
    if args.format == "csv" and not args.key:
        parser.error("--key is required with --format csv")
    return args


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_console_logging(quiet=args.quiet, log_name="export.log")

    db_path = args.db or get_storage_settings().path
    if not db_path.exists():
        logger.error("No harvester database at %s", db_path)
        return 1

    router = MessageRouter(ConsolidationStore(SqliteBackend(db_path)))
    if args.format == "json":
        result = router.handle({"type": "EXPORT_JSON"})
    else:
        result = router.handle({"type": "EXPORT_CSV", "dataKey": args.key})

    if not result.get("success"):
        logger.error("Export failed: %s", result.get("error"))
        return 1

    path = write_export(result, args.output_dir)
    logger.info("Wrote %s", path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
