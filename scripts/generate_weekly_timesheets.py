#!/usr/bin/env python3
"""
Create the week's empty draft timesheets for active hourly and unit-based workers.
Run from project root: python scripts/generate_weekly_timesheets.py [--company-id ID] [--week-of YYYY-MM-DD]
Meant to run from cron on Monday morning; existing timesheets are left alone.
"""
import sys
import os
import argparse
from datetime import date, datetime

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

import pytz
import structlog

from payhub.config import settings
from payhub.db import SessionLocal
from payhub.logging import setup_logging
from payhub.models.models import Company
from payhub.repositories import Repositories
from payhub.services.permissions import Actor
from payhub.services.timesheet_service import generate_weekly_timesheets

logger = structlog.get_logger("generate_weekly_timesheets")


def run(company_id=None, week_of: date = None) -> dict:
    if week_of is None:
        week_of = datetime.now(pytz.timezone(settings.tz_default)).date()

    db = SessionLocal()
    try:
        repos = Repositories.from_session(db)
        if company_id:
            company_ids = [company_id]
        else:
            company_ids = [c.id for c in db.query(Company).filter(Company.is_active == True).all()]

        totals = {"created": 0, "skipped": 0, "total": 0}
        for cid in company_ids:
            result = generate_weekly_timesheets(repos, cid, week_of, Actor.system())
            for key in totals:
                totals[key] += result[key]
        logger.info("weekly_generation_finished", week_of=week_of.isoformat(), companies=len(company_ids), **totals)
        return totals
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Generate weekly draft timesheets")
    parser.add_argument("--company-id", help="Only this company (default: every active company)")
    parser.add_argument("--week-of", type=date.fromisoformat, help="Any date in the target week (default: today)")
    args = parser.parse_args()

    setup_logging()
    result = run(company_id=args.company_id, week_of=args.week_of)
    print(f"Created {result['created']}, skipped {result['skipped']} of {result['total']} workers")
