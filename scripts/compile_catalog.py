#!/usr/bin/env python3
"""
compile_catalog.py - Compile a course catalog document into catalog.db.

Validates courses, modules, lessons, assessments and questions, runs
integrity checks, and writes a SQLite database for runtime serving.

Usage:
  python scripts/compile_catalog.py data/catalog.yaml
  python scripts/compile_catalog.py data/catalog.yaml --output data/catalog.db
"""

import argparse
import json
import logging
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from coursepilot.classroom import compile_catalog, load_catalog_file
from coursepilot.config import load_settings
from coursepilot.utils import setup_logging

logger = logging.getLogger(__name__)


def main():
    settings = load_settings()

    parser = argparse.ArgumentParser(
        description="Compile a course catalog into catalog.db",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument(
        "catalog",
        type=Path,
        help="Catalog document (.yaml, .yml or .json)"
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=settings.content_db,
        help=f"Output database (default: {settings.content_db})"
    )
    parser.add_argument(
        "--stats",
        type=Path,
        default=None,
        help="Optional path to write compilation stats as JSON"
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Exit non-zero when integrity issues are found"
    )
    args = parser.parse_args()

    setup_logging(settings.log_level)

    logger.info(f"Loading catalog: {args.catalog}")
    catalog = load_catalog_file(args.catalog)

    stats = compile_catalog(catalog, args.output)

    if args.stats:
        args.stats.parent.mkdir(parents=True, exist_ok=True)
        with open(args.stats, "w", encoding="utf-8") as f:
            json.dump(stats, f, indent=2, ensure_ascii=False)
        logger.info(f"Saved stats to: {args.stats}")

    logger.info("=" * 50)
    logger.info("COMPILATION COMPLETE")
    logger.info("=" * 50)
    logger.info(f"Database: {args.output}")
    logger.info(f"Courses: {stats['courses']}")
    logger.info(f"Modules: {stats['modules']}")
    logger.info(f"Lessons: {stats['lessons']}")
    logger.info(f"Assessments: {stats['assessments']} ({stats['questions']} questions)")
    logger.info(f"Estimated study time: {round(stats['estimated_minutes'] / 60, 1)} hours")
    if stats["issues"]:
        logger.warning(f"Integrity issues: {len(stats['issues'])}")
        if args.strict:
            sys.exit(1)


if __name__ == "__main__":
    main()
