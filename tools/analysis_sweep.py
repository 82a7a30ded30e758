#!/usr/bin/env python3
"""Run one analysis job against MongoDB without the HTTP server.

Usage:
    python -m tools.analysis_sweep today              # today's popular games
    python -m tools.analysis_sweep tomorrow           # tomorrow, before the cutoff hour
    python -m tools.analysis_sweep sweep              # fill in missing primary picks
    python -m tools.analysis_sweep match --match-id 123 [--refresh]

Or from project root:
    PYTHONPATH=backend python tools/analysis_sweep.py sweep
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Ensure backend is on sys.path so `matchpick.*` imports work
_backend = Path(__file__).resolve().parent.parent / "backend"
if str(_backend) not in sys.path:
    sys.path.insert(0, str(_backend))

import matchpick.database as _db
from matchpick.middleware.logging import setup_logging
from matchpick.services.analysis_service import get_analysis_service, primary_pick_of
from matchpick.workers.analysis_scheduler import (
    run_today,
    run_tomorrow_morning,
    sweep_missing_picks,
)

JOBS = ("today", "tomorrow", "sweep", "match")


async def run_job(job: str, *, match_id: int | None = None, refresh: bool = False) -> dict:
    await _db.connect_db()
    try:
        if job == "today":
            return await run_today("cli")
        if job == "tomorrow":
            return await run_tomorrow_morning()
        if job == "sweep":
            return await sweep_missing_picks()

        graded = await get_analysis_service().get_or_create(match_id, force_refresh=refresh)
        return {
            "job": job,
            "match_id": match_id,
            "version": graded.get("version"),
            "primary_pick": primary_pick_of(graded),
            "hit_status": graded.get("hit_status"),
        }
    finally:
        await _db.close_db()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run one analysis job once.")
    parser.add_argument("job", choices=JOBS, help="Job to run")
    parser.add_argument("--match-id", type=int, default=None,
                        help="Match to analyse (job 'match' only)")
    parser.add_argument("--refresh", action="store_true",
                        help="Ignore the cache and call the oracle again (job 'match' only)")
    args = parser.parse_args(argv)

    if args.job == "match" and args.match_id is None:
        parser.error("--match-id is required for job 'match'")

    setup_logging()
    summary = asyncio.run(run_job(args.job, match_id=args.match_id, refresh=args.refresh))
    print(json.dumps(summary, ensure_ascii=False, indent=2, default=str))
    return 1 if summary.get("error") else 0


if __name__ == "__main__":
    sys.exit(main())
