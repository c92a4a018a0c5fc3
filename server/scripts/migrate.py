"""
Create the users and tasks tables (and their indexes) in DATABASE_URL.

Safe to run repeatedly: existing tables are left untouched.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from taskboard.config import get_settings
from taskboard.db import Base, SqlDbClient


logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--database-url",
        default=None,
        help="SQLAlchemy URL (defaults to DATABASE_URL)",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    database_url = args.database_url or get_settings().database_url
    if not database_url:
        logger.error("DATABASE_URL is not set")
        return 1

    logger.info("Starting database migration")
    try:
        SqlDbClient(database_url)
    except Exception:
        logger.exception("Migration failed")
        return 1
    for table in Base.metadata.sorted_tables:
        logger.info("Table ready: %s", table.name)
    logger.info("Database migration completed")
    return 0


if __name__ == "__main__":
    sys.exit(main())
