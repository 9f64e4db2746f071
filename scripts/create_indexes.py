"""
Create all tables and indexes on the configured database.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from conecta.config import get_settings
from conecta.db import SqlDbClient

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Create Conecta tables and indexes")
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="SQLAlchemy URL (defaults to DATABASE_URL)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    database_url = args.database_url or get_settings().database_url
    if not database_url:
        logger.error("No database configured; set DATABASE_URL or pass --database-url")
        return 1

    db = SqlDbClient(database_url)
    for table in db.table_names():
        logger.info("Table ready: %s", table)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
