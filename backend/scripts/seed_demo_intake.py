#!/usr/bin/env python
"""
Script to seed demo intake runs.

Creates one already-succeeded run per object so the reconciliation view
has real data without an external parser.

Usage:
    python scripts/seed_demo_intake.py OBJ-1 OBJ-2 --variant house
"""
import argparse
import logging
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from backoffice.core.config import get_settings
from backoffice.core.errors import IntakeError
from backoffice.core.logging import configure_logging
from backoffice.db.base import SessionLocal
from backoffice.services.intake_runs import DEMO_DATASETS, IntakeRunService

logger = logging.getLogger("seed_demo_intake")


def seed_objects(object_ids: list[str], variant: str) -> int:
    """Create a demo run for each object. Returns the number created."""
    db = SessionLocal()
    created = 0
    try:
        service = IntakeRunService(db)
        for object_id in object_ids:
            try:
                run = service.create_demo_run(object_id, variant)
            except IntakeError as e:
                logger.error("Skipping %s: %s", object_id, e.message)
                continue
            logger.info("  %s -> run %s", object_id, run.id)
            created += 1
    finally:
        db.close()
    return created


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Seed demo intake runs")
    parser.add_argument("object_ids", nargs="+", help="Object ids to seed")
    parser.add_argument(
        "--variant", choices=sorted(DEMO_DATASETS), default="apartment",
        help="Demo dataset to use",
    )
    args = parser.parse_args()

    configure_logging(get_settings().LOG_LEVEL)
    logger.info("Seeding %d object(s) with '%s' demo data", len(args.object_ids), args.variant)
    created = seed_objects(args.object_ids, args.variant)
    logger.info("Seeding complete: %d run(s) created", created)
    return 0 if created == len(args.object_ids) else 1


if __name__ == "__main__":
    sys.exit(main())
