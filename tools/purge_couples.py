#!/usr/bin/env python3
"""Maintenance helper to permanently delete rejected couple submissions.

Rejected couples stay in the database (and their photos in S3) until an admin
removes them. This script hard-deletes them in batches, removing the stored
renditions as well. It is safe to run repeatedly.

Only pending and rejected couples are purged, and neither is ever shown on the
wall, carousel or album, so running servers need no cache invalidation.
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Iterable

from dotenv import load_dotenv


def _ensure_project_path() -> None:
    project_root = Path(__file__).resolve().parents[1]
    if str(project_root) not in sys.path:
        sys.path.insert(0, str(project_root))


_ensure_project_path()
load_dotenv()

from lovewall import create_app  # noqa: E402
from lovewall.extensions import db  # noqa: E402
from lovewall.models import STATUS_PENDING, STATUS_REJECTED, Couple  # noqa: E402
from lovewall.services import moderation  # noqa: E402

LOGGER = logging.getLogger("purge_couples")


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--status",
        choices=(STATUS_REJECTED, STATUS_PENDING),
        default=STATUS_REJECTED,
        help="Status of the couples to purge (default: rejected)",
    )
    parser.add_argument(
        "--older-than-days",
        type=int,
        default=0,
        help="Only purge couples submitted at least this many days ago",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=100,
        help="Number of couples to delete per database batch (default: 100)",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Optional cap on total couples to delete in this run",
    )
    parser.add_argument(
        "--sleep",
        type=float,
        default=0.0,
        help="Seconds to sleep between batches to throttle S3 requests",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List the couples that would be deleted without deleting them",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging output",
    )
    return parser.parse_args(argv)


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(message)s",
        force=True,
    )


def select_batch(
    status: str, *, cutoff: datetime | None, after_id: int, batch_size: int
) -> list[Couple]:
    query = (
        db.session.query(Couple)
        .filter(Couple.status == status)
        .filter(Couple.id > after_id)
    )
    if cutoff is not None:
        query = query.filter(Couple.created_at <= cutoff)
    return list(query.order_by(Couple.id.asc()).limit(batch_size))


def purge_batch(batch: list[Couple], *, dry_run: bool) -> int:
    purged = 0
    for couple in batch:
        if dry_run:
            LOGGER.info("[dry-run] would delete couple %s (%s)", couple.id, couple.slug)
            purged += 1
            continue
        try:
            moderation.admin_delete(couple.id, logger=LOGGER)
        except moderation.ModerationError:
            LOGGER.exception("Failed to delete couple %s", couple.id)
            continue
        LOGGER.debug("Deleted couple %s (%s)", couple.id, couple.slug)
        purged += 1
    return purged


def purge_couples(
    *,
    status: str,
    older_than_days: int,
    batch_size: int,
    limit: int | None,
    sleep_seconds: float,
    dry_run: bool,
) -> int:
    cutoff = None
    if older_than_days > 0:
        cutoff = datetime.now(UTC) - timedelta(days=older_than_days)

    total_purged = 0
    last_id = 0
    while True:
        size = batch_size
        if limit is not None:
            size = min(size, limit - total_purged)
            if size <= 0:
                LOGGER.info("Reached purge limit of %s rows", limit)
                break

        batch = select_batch(status, cutoff=cutoff, after_id=last_id, batch_size=size)
        if not batch:
            break

        LOGGER.info("Processing batch with couple IDs %s-%s", batch[0].id, batch[-1].id)
        last_id = batch[-1].id
        total_purged += purge_batch(batch, dry_run=dry_run)

        if sleep_seconds > 0:
            time.sleep(sleep_seconds)

    LOGGER.info("Purge complete; deleted %s %s couples", total_purged, status)
    return total_purged


def main(argv: Iterable[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging(args.verbose)

    app = create_app()
    with app.app_context():
        purge_couples(
            status=args.status,
            older_than_days=max(args.older_than_days, 0),
            batch_size=max(args.batch_size, 1),
            limit=args.limit,
            sleep_seconds=max(args.sleep, 0.0),
            dry_run=args.dry_run,
        )

    return 0


if __name__ == "__main__":
    sys.exit(main())
