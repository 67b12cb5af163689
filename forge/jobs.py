"""
forge.jobs — Scheduled maintenance entry point
===============================================

Meant to be driven by cron (or any scheduler)::

    python -m forge.jobs daily-reset      # 00:00 UTC every day
    python -m forge.jobs weekly-reset     # 00:00 UTC every Sunday
    python -m forge.jobs archive          # 23:55 UTC every Saturday
    python -m forge.jobs cleanup          # weekly, after archive
    python -m forge.jobs warmup           # after deploys

Wiring:
1. Load .env (secrets).
2. Load config.yaml if present (retention, cache TTLs).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Run the requested job and exit non-zero on failure.
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import UTC, datetime

from dotenv import load_dotenv

from forge.config import load_config
from forge.constants import ARCHIVE_RETENTION_WEEKS
from forge.database.engine import create_db_engine, init_db
from forge.database.models import QuestType
from forge.services import leaderboard_archive, leaderboard_service, xp_service

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("forge")

JOBS = ("daily-reset", "weekly-reset", "archive", "cleanup", "warmup")


def _parse_when(raw: str | None) -> datetime | None:
    if raw is None:
        return None
    when = datetime.fromisoformat(raw)
    return when if when.tzinfo else when.replace(tzinfo=UTC)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="forge-jobs", description=__doc__.split("\n")[1])
    parser.add_argument("job", choices=JOBS)
    parser.add_argument(
        "--at",
        help="ISO timestamp to run the job as of (default: now, UTC)",
    )
    parser.add_argument(
        "--weeks",
        type=int,
        default=None,
        help="Archive retention in weeks for 'cleanup' (default: config or 52)",
    )
    parser.add_argument("--config", default="config.yaml")
    return parser


def run_job(engine, job: str, *, now: datetime | None = None, weeks: int = ARCHIVE_RETENTION_WEEKS) -> bool:
    """Run one job.  Returns True on success."""
    if job == "daily-reset":
        xp_service.reset_quest_eligibility(engine, QuestType.DAILY, now=now)
    elif job == "weekly-reset":
        xp_service.reset_quest_eligibility(engine, QuestType.WEEKLY, now=now)
        leaderboard_service.invalidate_cache(leaderboard_service.WEEKLY)
    elif job == "archive":
        result = leaderboard_archive.archive_weekly_leaderboard(engine, now=now)
        if not result.success:
            logger.error("Weekly archive failed: %s", result.error)
            return False
    elif job == "cleanup":
        leaderboard_archive.cleanup_weekly_archive(engine, weeks, now=now)
    elif job == "warmup":
        leaderboard_service.warmup_cache(engine, now=now)
    else:
        raise ValueError(f"Unknown job: {job!r}")
    return True


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    load_dotenv()

    weeks = args.weeks
    try:
        cfg = load_config(args.config)
    except FileNotFoundError:
        logger.warning("%s not found; using defaults", args.config)
    else:
        leaderboard_service.configure_cache(cfg.leaderboard)
        if weeks is None:
            weeks = cfg.archive_retention_weeks

    engine = create_db_engine()
    init_db(engine)

    logger.info("Running job %s", args.job)
    ok = run_job(engine, args.job, now=_parse_when(args.at), weeks=weeks or ARCHIVE_RETENTION_WEEKS)
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
